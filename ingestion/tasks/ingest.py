"""Celery task for the periodic ingestion run."""

from __future__ import annotations

from typing import Any, Dict

from celery import shared_task

from ingestion.db.models import Base
from ingestion.db.session import get_engine
from ingestion.services.pipeline import run_ingestion
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


def _ensure_schema() -> None:
    # 로컬 실행/테스트용 (idempotent). 운영 스키마는 alembic이 관리한다.
    Base.metadata.create_all(bind=get_engine())


def ingest_core() -> Dict[str, Any]:
    """Run one ingestion pass and return the JSON-ready summary."""
    _ensure_schema()
    summary = run_ingestion()
    if not summary.success:
        logger.error("ingest.all_sources_failed", extra={"errors": summary.errors[:10]})
    return summary.model_dump(mode="json")


@shared_task(name="ingestion.tasks.ingest.run_ingestion_task")
def run_ingestion_task() -> Dict[str, Any]:
    return ingest_core()
