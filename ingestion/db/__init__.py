"""Database utilities for the ingestion service."""

from .models import Base, Event, JobRun, JobStage, JobStatus  # noqa: F401
from .session import get_engine, get_sessionmaker, session_scope  # noqa: F401

__all__ = [
    "Base",
    "Event",
    "JobRun",
    "JobStage",
    "JobStatus",
    "get_engine",
    "get_sessionmaker",
    "session_scope",
]
