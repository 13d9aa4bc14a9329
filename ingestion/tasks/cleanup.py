"""Celery task for the daily retention sweep."""

from __future__ import annotations

from typing import Any, Dict

from celery import shared_task

from ingestion.services.retention import run_retention_sweep
from ingestion.tasks.ingest import _ensure_schema


def cleanup_core() -> Dict[str, Any]:
    _ensure_schema()
    return run_retention_sweep().model_dump(mode="json")


@shared_task(name="ingestion.tasks.cleanup.run_retention_task")
def run_retention_task() -> Dict[str, Any]:
    return cleanup_core()
