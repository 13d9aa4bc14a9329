"""Per-candidate pipeline and the full ingestion run.

Normalizer → Location Resolver → Event Store Writer → (new and urgent)
Notification Dispatcher. The store write is committed before any push is
attempted; a push failure never touches the stored event.
"""

from __future__ import annotations

import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from analysis.models.domain import NormalizedContent
from api.models import SubscriberProfile
from ingestion.connectors.base import BaseSourceAdapter
from ingestion.connectors.registry import build_adapters
from ingestion.db.models import Event, JobStage
from ingestion.db.session import session_scope
from ingestion.models.domain import CandidateArticle, EventRecord, IngestionSummary, ResolvedLocation
from ingestion.repositories.events import upsert_event
from ingestion.repositories.job_runs import JobRunRecorder
from ingestion.services.geocoder import LocationResolver
from ingestion.services.orchestrator import FetchOrchestrator
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger
from llm.client.openai_client import LLMError
from publish.notifier import DispatchReport, EventNotice, dispatch_event_notifications, should_notify
from publish.push import PushSender

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]
SubscriberLoader = Callable[[], List[SubscriberProfile]]


class Normalizer(Protocol):
    def normalize(self, candidate: CandidateArticle) -> NormalizedContent: ...  # noqa: D401


@dataclass
class CandidateOutcome:
    source_link: str
    event: Event
    is_new: bool
    notified: bool = False
    dispatch: Optional[DispatchReport] = None


def build_event_record(
    candidate: CandidateArticle,
    normalized: NormalizedContent,
    location: ResolvedLocation,
) -> EventRecord:
    return EventRecord(
        source_link=normalized.source_link or candidate.link,
        title=normalized.title,
        clean_title=normalized.clean_title,
        summary_en=normalized.summary_en,
        summary_hi=normalized.summary_hi,
        category=normalized.category,
        location_text=normalized.location_text,
        latitude=location.latitude,
        longitude=location.longitude,
        geocoded=location.success,
        place_name=location.display_name,
        priority_score=normalized.priority_score,
        keywords=list(normalized.keywords),
        images=list(candidate.images),
        videos=[],
        raw_text=normalized.raw_text,
        incident_date=normalized.incident_date or candidate.published_at,
        published_at=candidate.published_at,
        source=candidate.source,
    )


def _default_subscriber_loader() -> List[SubscriberProfile]:
    from api.repositories import load_subscribers

    return load_subscribers()


def _default_sender() -> PushSender:
    from publish.push import FirebasePushSender

    return FirebasePushSender()


class IngestionPipeline:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        normalizer: Normalizer | None = None,
        resolver: LocationResolver | None = None,
        sender: PushSender | None = None,
        subscriber_loader: SubscriberLoader | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        if normalizer is None:
            from llm.client.openai_client import OpenAIClient

            normalizer = OpenAIClient.from_env()
        self.normalizer = normalizer
        self.resolver = resolver or LocationResolver(self.settings)
        self._sender = sender
        self._load_subscribers = subscriber_loader or _default_subscriber_loader
        self._session_factory = session_factory or (lambda: session_scope(self.settings))

    @property
    def sender(self) -> PushSender:
        if self._sender is None:
            self._sender = _default_sender()
        return self._sender

    def process(self, candidate: CandidateArticle) -> CandidateOutcome:
        """Run one candidate end to end.

        Normalization and storage errors propagate to the caller; geocoding
        degrades to the fallback and dispatch errors are only logged.
        """
        normalized = self.normalizer.normalize(candidate)
        location = self.resolver.resolve(normalized.location_text)
        record = build_event_record(candidate, normalized, location)

        with self._session_factory() as session:
            event, is_new = upsert_event(session, record)
            notice = EventNotice.from_event(event)
        logger.info(
            "pipeline.stored",
            extra={
                "link": record.source_link,
                "event_id": notice.event_id,
                "is_new": is_new,
                "category": record.category,
                "priority": record.priority_score,
                "geocoded": location.success,
            },
        )

        outcome = CandidateOutcome(source_link=record.source_link, event=event, is_new=is_new)
        if not should_notify(record.priority_score, is_new, self.settings.notification_priority_threshold):
            return outcome

        try:
            outcome.dispatch = dispatch_event_notifications(
                notice,
                self._load_subscribers(),
                self.sender,
                radius_km=self.settings.geofence_radius_km,
            )
            outcome.notified = outcome.dispatch.sent > 0
        except Exception:  # noqa: BLE001 - 알림 실패는 저장된 이벤트에 영향을 주지 않는다
            logger.exception("pipeline.dispatch_failed", extra={"event_id": notice.event_id})
        return outcome


def dedupe_candidates(candidates: Sequence[CandidateArticle]) -> List[CandidateArticle]:
    """First candidate per origin link wins."""
    seen: Dict[str, CandidateArticle] = {}
    for candidate in candidates:
        seen.setdefault(candidate.link, candidate)
    return list(seen.values())


def run_ingestion(
    settings: Settings | None = None,
    *,
    adapters: Sequence[BaseSourceAdapter] | None = None,
    pipeline: IngestionPipeline | None = None,
    session_factory: SessionFactory | None = None,
    trace_id: str | None = None,
) -> IngestionSummary:
    """One full ingestion pass; returns the operator summary."""
    config = settings or get_settings()
    factory = session_factory or (lambda: session_scope(config))
    trace = trace_id or uuid.uuid4().hex

    with factory() as job_session, JobRunRecorder(
        job_session, stage=JobStage.INGEST, task_name="run_ingestion", trace_id=trace
    ) as job:
        summary = _run(config, adapters, pipeline, factory, trace)
        job.items_total = summary.total_articles_scraped
        job.items_failed = summary.articles_failed
        if not summary.success:
            job.error_message = "모든 소스 수집 실패"
    return summary


def _run(
    config: Settings,
    adapters: Sequence[BaseSourceAdapter] | None,
    pipeline: IngestionPipeline | None,
    factory: SessionFactory,
    trace: str,
) -> IngestionSummary:
    started = time.monotonic()
    adapter_list = list(adapters) if adapters is not None else build_adapters(config)
    logger.info("ingest.start", extra={"trace_id": trace, "sources": len(adapter_list)})

    runner = pipeline
    setup_error: Optional[str] = None
    if runner is None:
        try:
            runner = IngestionPipeline(config, session_factory=factory)
        except (RuntimeError, LLMError) as exc:
            setup_error = f"파이프라인 초기화 실패: {exc}"
            logger.error("ingest.pipeline_unavailable", extra={"trace_id": trace, "error": str(exc)})

    report = FetchOrchestrator(adapter_list, timeout_seconds=config.source_timeout_seconds).run()
    candidates = dedupe_candidates(report.articles)
    errors: List[str] = ([setup_error] if setup_error else []) + list(report.errors)
    processed = 0
    failed = 0

    if candidates and runner is None:
        failed = len(candidates)
    elif candidates:
        workers = min(config.pipeline_concurrency, len(candidates))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="candidate") as executor:
            futures = [(c, executor.submit(runner.process, c)) for c in candidates]
            for candidate, future in futures:
                try:
                    future.result()
                    processed += 1
                except Exception as exc:  # noqa: BLE001 - 후보 단위 실패는 집계만 한다
                    failed += 1
                    errors.append(f"{candidate.link}: {exc}")
                    logger.warning(
                        "ingest.candidate_failed",
                        extra={"trace_id": trace, "link": candidate.link, "error": str(exc)},
                    )

    total = len(report.articles)
    summary = IngestionSummary(
        success=not (report.all_failed and total == 0),
        sources=report.diagnostics,
        total_articles_scraped=total,
        articles_processed=processed,
        articles_failed=failed,
        errors=errors,
        duration_seconds=round(time.monotonic() - started, 3),
    )
    logger.info(
        "ingest.done",
        extra={
            "trace_id": trace,
            "success": summary.success,
            "scraped": total,
            "processed": processed,
            "failed": failed,
            "duration": summary.duration_seconds,
        },
    )
    return summary
