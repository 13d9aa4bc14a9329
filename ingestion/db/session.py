"""Engine and session helpers shared by the event store and the subscriber store."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ingestion.settings import Settings, get_settings

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_ENGINE: Engine | None = None
_SESSIONMAKER: sessionmaker[Session] | None = None
_CURRENT_DSN: str | None = None
_LOCK = threading.Lock()


def build_engine(dsn: str, **kwargs: Any) -> Engine:
    """create_engine with the connect args each backend needs.

    SQLite connections are used from pipeline worker threads and concurrent
    writers wait on the file lock instead of failing immediately.
    """
    connect_args: Dict[str, Any] = {}
    if dsn.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
    return create_engine(dsn, future=True, connect_args=connect_args, **kwargs)


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, future=True)


def get_engine(settings: Settings | None = None) -> Engine:
    """Return a memoized engine for the configured event store DSN."""
    return _ensure(settings or get_settings())[0]


def get_sessionmaker(settings: Settings | None = None) -> sessionmaker[Session]:
    """Return a memoized sessionmaker."""
    return _ensure(settings or get_settings())[1]


def _ensure(config: Settings) -> tuple[Engine, sessionmaker[Session]]:
    global _ENGINE, _SESSIONMAKER, _CURRENT_DSN

    with _LOCK:
        if _ENGINE is None or _SESSIONMAKER is None or _CURRENT_DSN != config.postgres_dsn:
            if _ENGINE is not None:
                _ENGINE.dispose()
            _ENGINE = build_engine(config.postgres_dsn)
            _SESSIONMAKER = build_sessionmaker(_ENGINE)
            _CURRENT_DSN = config.postgres_dsn
        return _ENGINE, _SESSIONMAKER


@contextmanager
def session_scope(settings: Settings | None = None) -> Iterator[Session]:
    """Provide a transactional scope for DB operations."""
    session = get_sessionmaker(settings)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
