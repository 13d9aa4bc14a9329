"""Job run bookkeeping."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ingestion.db.models import JobRun, JobStage, JobStatus


class JobRunRecorder:
    """Context manager to record job run lifecycle."""

    def __init__(
        self,
        session: Session,
        *,
        stage: JobStage,
        task_name: str,
        trace_id: str | None = None,
    ) -> None:
        self._session = session
        self._job = JobRun(
            stage=stage,
            status=JobStatus.RUNNING,
            task_name=task_name,
            trace_id=trace_id,
            started_at=datetime.now(timezone.utc),
        )

    def __enter__(self) -> JobRun:
        self._session.add(self._job)
        # RUNNING 상태를 먼저 커밋해 이후 실패해도 기록이 남도록 한다
        self._session.commit()
        return self._job

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if exc is None:
            self._job.status = JobStatus.SUCCEEDED
        else:
            self._job.status = JobStatus.FAILED
            self._job.error_message = str(exc)[:512]
        self._job.finished_at = datetime.now(timezone.utc)
        self._session.add(self._job)
        try:
            self._session.commit()
        except Exception:  # pragma: no cover - 원래 예외를 가리지 않는다
            self._session.rollback()
            if exc is None:
                raise
