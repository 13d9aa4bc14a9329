"""Celery 애플리케이션 부트스트랩."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict

from celery import Celery
from celery.schedules import crontab, schedule as celery_schedule

from .settings import Settings, get_settings
from .utils.logging import configure_logging

_CELERY_APP: Celery | None = None

INGEST_TASK = "ingestion.tasks.ingest.run_ingestion_task"
CLEANUP_TASK = "ingestion.tasks.cleanup.run_retention_task"


def create_celery_app(settings: Settings | None = None) -> Celery:
    """설정을 기반으로 Celery 인스턴스를 생성한다."""
    config = settings or get_settings()
    configure_logging(config.structlog_level, json_enabled=config.log_json)

    app = Celery(
        "ingestion",
        broker=config.redis_url,
        backend=config.redis_url,
        include=["ingestion.tasks.ingest", "ingestion.tasks.cleanup"],
    )
    app.conf.update(
        task_default_queue="ingestion.default",
        task_default_exchange="ingestion",
        task_default_routing_key="ingestion.default",
        task_soft_time_limit=config.celery_task_soft_time_limit,
        worker_concurrency=config.celery_worker_concurrency,
        beat_schedule=_build_beat_schedule(config),
        timezone="UTC",
        enable_utc=True,
        worker_send_task_events=True,
        task_send_sent_event=True,
    )

    _install_signal_handlers(app)
    return app


def get_celery_app() -> Celery:
    """싱글톤 Celery 인스턴스를 반환한다."""
    global _CELERY_APP
    if _CELERY_APP is None:
        _CELERY_APP = create_celery_app()
    return _CELERY_APP


def _build_beat_schedule(settings: Settings) -> Dict[str, Dict[str, Any]]:
    # 이전 실행이 끝나기 전에 다음 실행이 겹치지 않도록 만료 시간을 주기와 맞춘다
    interval = timedelta(minutes=settings.ingestion_interval_minutes)
    return {
        "ingest.every_interval": {
            "task": INGEST_TASK,
            "schedule": celery_schedule(interval),
            "options": {"queue": "ingestion.ingest", "expires": interval.total_seconds()},
        },
        "cleanup.daily": {
            "task": CLEANUP_TASK,
            "schedule": crontab(minute=0, hour=settings.cleanup_hour_utc),
            "options": {"queue": "ingestion.cleanup"},
        },
    }


def _install_signal_handlers(app: Celery) -> None:
    from celery import signals

    logger = logging.getLogger("ingestion.worker")

    @signals.worker_shutdown.connect  # type: ignore[attr-defined]
    def _on_worker_shutdown(sender=None, **kwargs):  # noqa: ANN001
        logger.info("Celery worker shutdown detected", extra={"sender": sender})
