from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ingestion.db.models import Event, JobRun, JobStage, JobStatus
from ingestion.models.domain import EventRecord
from ingestion.repositories.events import upsert_event
from ingestion.services.retention import run_retention_sweep

NOW = datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc)


def _record(link: str) -> EventRecord:
    return EventRecord(
        source_link=link,
        title="Old news",
        clean_title="Old news",
        summary_en="Summary.",
        summary_hi="सारांश।",
        category="public",
        latitude=29.5971,
        longitude=79.659,
        priority_score=1,
        keywords=["old"],
        incident_date=NOW,
    )


def test_sweep_deletes_only_events_past_window(make_settings, session_factory):
    with session_factory() as session:
        upsert_event(session, _record("https://news.example/16d"), now=NOW - timedelta(days=16))
        upsert_event(session, _record("https://news.example/14d"), now=NOW - timedelta(days=14))
        upsert_event(session, _record("https://news.example/today"), now=NOW)

    result = run_retention_sweep(make_settings(), session_factory=session_factory, now=NOW)

    assert result.events_deleted == 1
    assert result.cutoff == NOW - timedelta(days=15)
    with session_factory() as session:
        links = {e.source_link for e in session.query(Event).all()}
        assert links == {"https://news.example/14d", "https://news.example/today"}
        job = session.query(JobRun).one()
        assert job.stage == JobStage.CLEANUP
        assert job.status == JobStatus.SUCCEEDED
        assert job.items_total == 1


def test_sweep_on_empty_store_is_noop(make_settings, session_factory):
    result = run_retention_sweep(make_settings(retention_days=3), session_factory=session_factory, now=NOW)

    assert result.events_deleted == 0
    assert result.cutoff == NOW - timedelta(days=3)
