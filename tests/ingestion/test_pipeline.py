from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Sequence, Union

import pytest

from analysis.models.domain import NormalizedContent
from api.models import SubscriberProfile
from ingestion.connectors.base import BaseSourceAdapter, ConnectorError
from ingestion.db.models import Event, JobRun, JobStage, JobStatus
from ingestion.models.domain import AdapterResult, CandidateArticle
from ingestion.services.geocoder import LocationResolver
from ingestion.services.pipeline import IngestionPipeline, dedupe_candidates, run_ingestion
from ingestion.services.rate_limiter import MinIntervalRateLimiter
from llm.client.openai_client import NormalizationError
from publish.push import PushMessage, SendOutcome

LANDSLIDE_LINK = "https://news.example/a/landslide"
PUBLISHED = datetime(2025, 5, 1, 8, 0, tzinfo=timezone.utc)


def _candidate(link: str = LANDSLIDE_LINK, title: str = "Landslide on Mall Road") -> CandidateArticle:
    return CandidateArticle(
        title=title,
        body="Heavy rain triggered a landslide on Mall Road in Almora early on Monday morning.",
        source_link=link,
        images=["https://cdn.example/1.jpg"],
        published_at=PUBLISHED,
        source="Desk",
    )


def _normalized(**overrides) -> NormalizedContent:
    payload = {
        "title": "Landslide on Mall Road",
        "clean_title": "Landslide blocks Mall Road in Almora",
        "summary_en": "A landslide blocked Mall Road after heavy rain.",
        "summary_hi": "भारी बारिश के बाद माल रोड पर भूस्खलन।",
        "category": "accident",
        "location_text": "Mall Road",
        "priority_score": 4,
        "keywords": ["landslide", "Mall Road"],
        "incident_date": "",
    }
    payload.update(overrides)
    return NormalizedContent.model_validate(payload)


class FakeNormalizer:
    def __init__(self, responses: Dict[str, Union[NormalizedContent, List[NormalizedContent], Exception]]):
        self.responses = responses
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def normalize(self, candidate: CandidateArticle) -> NormalizedContent:
        with self._lock:
            self.calls.append(candidate.link)
            response = self.responses[candidate.link]
            if isinstance(response, list):
                response = response.pop(0)
        if isinstance(response, Exception):
            raise response
        return response.model_copy(
            update={"source_link": candidate.link, "raw_text": f"{response.title} {response.summary_en}"}
        )


class FakeSearch:
    def __init__(self, results: List[dict]):
        self.results = results
        self.queries: List[str] = []

    def __call__(self, query: str) -> List[dict]:
        self.queries.append(query)
        return list(self.results)


class RecordingSender:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[tuple[List[str], PushMessage]] = []

    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[SendOutcome]:
        self.calls.append((list(tokens), message))
        if self.fail:
            raise RuntimeError("push service unavailable")
        return [SendOutcome(token=t, success=True, message_id=f"msg-{t}") for t in tokens]


class StaticAdapter(BaseSourceAdapter):
    def __init__(self, name: str, candidates: List[CandidateArticle]):
        super().__init__()
        self.name = name
        self._candidates = candidates

    def scrape(self) -> AdapterResult:
        return AdapterResult(source=self.name, articles=list(self._candidates))

    def _collect(self, errors):  # pragma: no cover - scrape overridden
        return []


class BrokenAdapter(StaticAdapter):
    def scrape(self) -> AdapterResult:
        raise ConnectorError("listing page unreachable")


MALL_ROAD = [{"lat": "29.5973", "lon": "79.6586", "display_name": "Mall Road, Almora, Uttarakhand, India"}]

SUBSCRIBERS = [
    SubscriberProfile(
        user_id="near-accident",
        categories=["accident"],
        home_latitude=29.60,
        home_longitude=79.66,
        notifications_enabled=True,
        device_token="tok-near",
    ),
    SubscriberProfile(
        user_id="weather-only",
        categories=["weather"],
        notifications_enabled=True,
        device_token="tok-weather",
    ),
    SubscriberProfile(
        user_id="delhi",
        categories=["accident"],
        home_latitude=28.6139,
        home_longitude=77.209,
        notifications_enabled=True,
        device_token="tok-delhi",
    ),
    SubscriberProfile(user_id="muted", categories=[], notifications_enabled=False, device_token="tok-muted"),
    SubscriberProfile(user_id="anywhere", categories=[], notifications_enabled=True, device_token="tok-any"),
]


@pytest.fixture()
def build_pipeline(make_settings, session_factory):
    def _build(responses, *, search_results=MALL_ROAD, sender=None, subscriber_loader=None, **settings_overrides):
        settings = make_settings(pipeline_concurrency=1, **settings_overrides)
        resolver = LocationResolver(
            settings,
            rate_limiter=MinIntervalRateLimiter(0.0),
            search=FakeSearch(search_results),
            sleep=lambda _s: None,
        )
        pipeline = IngestionPipeline(
            settings,
            normalizer=FakeNormalizer(responses),
            resolver=resolver,
            sender=sender or RecordingSender(),
            subscriber_loader=subscriber_loader or (lambda: list(SUBSCRIBERS)),
            session_factory=session_factory,
        )
        return settings, pipeline

    return _build


def test_urgent_new_event_notifies_eligible_subscribers(build_pipeline, session_factory):
    sender = RecordingSender()
    _, pipeline = build_pipeline({LANDSLIDE_LINK: _normalized()}, sender=sender)

    outcome = pipeline.process(_candidate())

    assert outcome.is_new is True
    assert outcome.notified is True
    assert len(sender.calls) == 1
    tokens, message = sender.calls[0]
    assert tokens == ["tok-near", "tok-any"]
    assert message.title == "ACCIDENT: Mall Road"
    assert message.body == "Landslide on Mall Road"
    assert message.data["type"] == "event_notification"
    assert message.data["eventId"] == str(outcome.event.id)
    assert outcome.dispatch.sent == 2 and outcome.dispatch.failed == 0

    with session_factory() as session:
        stored = session.query(Event).one()
        assert stored.source_link == LANDSLIDE_LINK
        assert stored.geocoded is True
        assert (stored.latitude, stored.longitude) == (29.5973, 79.6586)
        assert stored.raw_text.startswith("Landslide on Mall Road ")
        assert stored.images == ["https://cdn.example/1.jpg"]
        assert stored.incident_date.replace(tzinfo=None) == PUBLISHED.replace(tzinfo=None)


def test_same_link_twice_keeps_one_event_and_notifies_once(build_pipeline, session_factory):
    sender = RecordingSender()
    responses = {LANDSLIDE_LINK: [_normalized(), _normalized(title="Mall Road cleared after landslide")]}
    _, pipeline = build_pipeline(responses, sender=sender)

    first = pipeline.process(_candidate())
    second = pipeline.process(_candidate(title="Mall Road cleared"))

    assert first.is_new is True
    assert second.is_new is False
    assert second.notified is False
    assert len(sender.calls) == 1
    with session_factory() as session:
        rows = session.query(Event).all()
        assert len(rows) == 1
        assert rows[0].title == "Mall Road cleared after landslide"


def test_geocoder_no_results_stores_event_at_fallback(build_pipeline, session_factory):
    settings, pipeline = build_pipeline(
        {LANDSLIDE_LINK: _normalized(location_text="Unknown Place, Almora", priority_score=2)},
        search_results=[],
    )

    outcome = pipeline.process(_candidate())

    assert outcome.is_new is True
    with session_factory() as session:
        stored = session.query(Event).one()
        assert stored.geocoded is False
        assert (stored.latitude, stored.longitude) == (settings.fallback_latitude, settings.fallback_longitude)


def test_low_priority_event_is_not_dispatched(build_pipeline):
    sender = RecordingSender()
    _, pipeline = build_pipeline({LANDSLIDE_LINK: _normalized(priority_score=3)}, sender=sender)

    outcome = pipeline.process(_candidate())

    assert outcome.is_new is True
    assert outcome.notified is False
    assert sender.calls == []


def test_dispatch_failures_do_not_undo_store(build_pipeline, session_factory):
    _, pipeline = build_pipeline({LANDSLIDE_LINK: _normalized(priority_score=5)}, sender=RecordingSender(fail=True))

    outcome = pipeline.process(_candidate())

    assert outcome.dispatch.sent == 0
    assert outcome.dispatch.failed == 2
    assert outcome.notified is False

    def broken_loader():
        raise RuntimeError("subscriber store offline")

    other = "https://news.example/a/other"
    _, pipeline = build_pipeline({other: _normalized(priority_score=5)}, subscriber_loader=broken_loader)
    outcome = pipeline.process(_candidate(link=other))

    assert outcome.notified is False
    with session_factory() as session:
        assert session.query(Event).count() == 2


def test_normalization_failure_propagates_without_store(build_pipeline, session_factory):
    _, pipeline = build_pipeline({LANDSLIDE_LINK: NormalizationError("invalid JSON")})

    with pytest.raises(NormalizationError):
        pipeline.process(_candidate())
    with session_factory() as session:
        assert session.query(Event).count() == 0


def test_dedupe_keeps_first_candidate_per_link():
    a = _candidate(title="first")
    b = _candidate(title="second")
    c = _candidate(link="https://news.example/a/2")

    assert [x.title for x in dedupe_candidates([a, b, c])] == ["first", "Landslide on Mall Road"]


def test_run_ingestion_summarizes_and_records_job(build_pipeline, session_factory):
    failing = "https://news.example/a/bad"
    settings, pipeline = build_pipeline(
        {
            LANDSLIDE_LINK: _normalized(priority_score=2),
            failing: NormalizationError("model returned prose"),
        }
    )
    adapters = [
        StaticAdapter("Desk", [_candidate(), _candidate(link=failing)]),
        StaticAdapter("Pages", [_candidate(title="duplicate copy")]),
        BrokenAdapter("Broken", []),
    ]

    summary = run_ingestion(settings, adapters=adapters, pipeline=pipeline, session_factory=session_factory)

    assert summary.success is True
    assert summary.total_articles_scraped == 3
    assert summary.articles_processed == 1
    assert summary.articles_failed == 1
    assert [(s.source, s.failed) for s in summary.sources] == [("Desk", False), ("Pages", False), ("Broken", True)]
    assert any(failing in e for e in summary.errors)
    assert any(e.startswith("Broken:") for e in summary.errors)

    with session_factory() as session:
        assert session.query(Event).count() == 1
        job = session.query(JobRun).one()
        assert job.stage == JobStage.INGEST
        assert job.status == JobStatus.SUCCEEDED
        assert job.items_total == 3
        assert job.items_failed == 1
        assert job.finished_at is not None


def test_run_ingestion_reports_failure_when_every_source_fails(build_pipeline, session_factory):
    settings, pipeline = build_pipeline({})

    summary = run_ingestion(
        settings,
        adapters=[BrokenAdapter("A", []), BrokenAdapter("B", [])],
        pipeline=pipeline,
        session_factory=session_factory,
    )

    assert summary.success is False
    assert summary.total_articles_scraped == 0
    assert len(summary.errors) == 2


def test_run_ingestion_without_llm_credentials_still_returns_summary(
    monkeypatch, tmp_path, make_settings, session_factory
):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    settings = make_settings()
    adapters = [StaticAdapter("Desk", [_candidate(), _candidate(link="https://news.example/a/2")])]

    summary = run_ingestion(settings, adapters=adapters, session_factory=session_factory)

    assert summary.success is True
    assert summary.total_articles_scraped == 2
    assert summary.articles_processed == 0
    assert summary.articles_failed == 2
    assert summary.errors[0].startswith("파이프라인 초기화 실패")
    assert [s.source for s in summary.sources] == ["Desk"]

    with session_factory() as session:
        assert session.query(Event).count() == 0
        job = session.query(JobRun).one()
        assert job.status == JobStatus.SUCCEEDED
        assert job.items_total == 2
        assert job.items_failed == 2
