"""Retention sweep: delete events past the retention window."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from ingestion.db.models import JobStage
from ingestion.db.session import session_scope
from ingestion.models.domain import RetentionResult
from ingestion.repositories.events import delete_events_older_than
from ingestion.repositories.job_runs import JobRunRecorder
from ingestion.services.pipeline import SessionFactory
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


def run_retention_sweep(
    settings: Settings | None = None,
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> RetentionResult:
    config = settings or get_settings()
    factory = session_factory or (lambda: session_scope(config))
    current = now or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=config.retention_days)

    with factory() as session, JobRunRecorder(
        session, stage=JobStage.CLEANUP, task_name="run_retention_sweep", trace_id=uuid.uuid4().hex
    ) as job:
        deleted = delete_events_older_than(session, cutoff)
        job.items_total = deleted

    logger.info("cleanup.done", extra={"deleted": deleted, "cutoff": cutoff.isoformat()})
    return RetentionResult(events_deleted=deleted, cutoff=cutoff, timestamp=current)
