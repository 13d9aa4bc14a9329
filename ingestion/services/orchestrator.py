"""Run all source adapters concurrently with a per-adapter timeout."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ingestion.connectors.base import BaseSourceAdapter
from ingestion.models.domain import AdapterResult, CandidateArticle, SourceDiagnostics
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FetchReport:
    articles: List[CandidateArticle] = field(default_factory=list)
    diagnostics: List[SourceDiagnostics] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return bool(self.diagnostics) and all(d.failed for d in self.diagnostics)

    @property
    def errors(self) -> List[str]:
        return [f"{d.source}: {e}" for d in self.diagnostics for e in d.errors]


class FetchOrchestrator:
    """Fan out adapters; a slow or broken adapter never affects the others.

    Diagnostics are returned in adapter order. An adapter that exceeds its
    timeout is reported as failed with zero articles; its worker thread is
    abandoned, not joined.
    """

    def __init__(
        self,
        adapters: Sequence[BaseSourceAdapter],
        *,
        timeout_seconds: float = 30.0,
        max_workers: Optional[int] = None,
    ) -> None:
        self.adapters = list(adapters)
        self.timeout_seconds = float(timeout_seconds)
        self.max_workers = max_workers or max(1, len(self.adapters))

    def run(self) -> FetchReport:
        report = FetchReport()
        if not self.adapters:
            return report

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="adapter")
        started = time.monotonic()
        futures: Dict[int, Future] = {}
        try:
            for index, adapter in enumerate(self.adapters):
                futures[index] = executor.submit(adapter.scrape)

            for index, adapter in enumerate(self.adapters):
                remaining = max(0.0, started + self.timeout_seconds - time.monotonic())
                diag = self._collect(adapter, futures[index], remaining, started, report)
                report.diagnostics.append(diag)
                logger.info(
                    "orchestrator.source_done",
                    extra={
                        "source": diag.source,
                        "articles": diag.articles_scraped,
                        "errors": len(diag.errors),
                        "failed": diag.failed,
                        "duration": round(diag.duration_seconds, 3),
                    },
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return report

    def _collect(
        self,
        adapter: BaseSourceAdapter,
        future: Future,
        timeout: float,
        started: float,
        report: FetchReport,
    ) -> SourceDiagnostics:
        name = getattr(adapter, "name", type(adapter).__name__)
        try:
            result = future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            return SourceDiagnostics(
                source=name,
                errors=[f"{self.timeout_seconds:g}초 제한 시간 초과"],
                duration_seconds=time.monotonic() - started,
                failed=True,
            )
        except Exception as exc:  # noqa: BLE001 - adapter failures are isolated
            logger.warning("orchestrator.source_failed", extra={"source": name, "error": str(exc)})
            return SourceDiagnostics(
                source=name,
                errors=[str(exc) or type(exc).__name__],
                duration_seconds=time.monotonic() - started,
                failed=True,
            )

        if not isinstance(result, AdapterResult):
            return SourceDiagnostics(
                source=name,
                errors=["어댑터 반환값 형식 오류"],
                duration_seconds=time.monotonic() - started,
                failed=True,
            )

        report.articles.extend(result.articles)
        return SourceDiagnostics(
            source=name,
            articles_scraped=len(result.articles),
            errors=list(result.errors),
            duration_seconds=time.monotonic() - started,
            failed=False,
        )
