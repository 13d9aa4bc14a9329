from __future__ import annotations

import threading
from typing import List

from ingestion.connectors.base import BaseSourceAdapter, ConnectorError
from ingestion.models.domain import AdapterResult, CandidateArticle
from ingestion.services.orchestrator import FetchOrchestrator


def _candidate(link: str) -> CandidateArticle:
    return CandidateArticle(title=f"Story {link}", body="b" * 60, source_link=link)


class StaticAdapter(BaseSourceAdapter):
    def __init__(self, name: str, links: List[str], errors: List[str] | None = None) -> None:
        super().__init__()
        self.name = name
        self._links = links
        self._errors = errors or []

    def scrape(self) -> AdapterResult:
        return AdapterResult(
            source=self.name,
            articles=[_candidate(link) for link in self._links],
            errors=list(self._errors),
        )

    def _collect(self, errors):  # pragma: no cover - scrape overridden
        return []


class BrokenAdapter(StaticAdapter):
    def scrape(self) -> AdapterResult:
        raise ConnectorError("listing page unreachable")


class MalformedAdapter(StaticAdapter):
    def scrape(self):  # type: ignore[override]
        return ["not", "a", "result"]


class HangingAdapter(StaticAdapter):
    def __init__(self, name: str, release: threading.Event) -> None:
        super().__init__(name, [])
        self._release = release

    def scrape(self) -> AdapterResult:
        self._release.wait(5)
        return AdapterResult(source=self.name, articles=[_candidate("https://late.example/1")])


def test_aggregates_successful_adapters_in_order():
    report = FetchOrchestrator(
        [
            StaticAdapter("A", ["https://a.example/1", "https://a.example/2"], errors=["one page skipped"]),
            StaticAdapter("B", ["https://b.example/1"]),
        ]
    ).run()

    assert [a.link for a in report.articles] == [
        "https://a.example/1",
        "https://a.example/2",
        "https://b.example/1",
    ]
    assert [(d.source, d.articles_scraped, d.failed) for d in report.diagnostics] == [("A", 2, False), ("B", 1, False)]
    assert report.diagnostics[0].errors == ["one page skipped"]
    assert report.all_failed is False


def test_exception_and_malformed_output_are_isolated():
    report = FetchOrchestrator(
        [
            BrokenAdapter("Broken", []),
            MalformedAdapter("Malformed", []),
            StaticAdapter("Ok", ["https://ok.example/1"]),
        ]
    ).run()

    assert [a.link for a in report.articles] == ["https://ok.example/1"]
    broken, malformed, ok = report.diagnostics
    assert broken.failed and "unreachable" in broken.errors[0]
    assert malformed.failed and malformed.articles_scraped == 0
    assert not ok.failed
    assert report.all_failed is False
    assert any(e.startswith("Broken:") for e in report.errors)


def test_timeout_marks_only_slow_adapter_failed():
    release = threading.Event()
    try:
        report = FetchOrchestrator(
            [HangingAdapter("Slow", release), StaticAdapter("Fast", ["https://fast.example/1"])],
            timeout_seconds=0.2,
        ).run()
    finally:
        release.set()

    slow, fast = report.diagnostics
    assert slow.failed and slow.articles_scraped == 0
    assert not fast.failed and fast.articles_scraped == 1
    assert [a.link for a in report.articles] == ["https://fast.example/1"]


def test_all_failed_flag():
    report = FetchOrchestrator([BrokenAdapter("X", []), BrokenAdapter("Y", [])]).run()
    assert report.all_failed is True
    assert report.articles == []


def test_no_adapters_is_empty_report():
    report = FetchOrchestrator([]).run()
    assert report.diagnostics == []
    assert report.all_failed is False
