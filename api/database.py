from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ingestion.db.session import build_engine

from . import db_models

DEFAULT_SQLITE_PATH = Path("./var/storage/subscribers.db")


def _make_engine() -> Engine:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        DEFAULT_SQLITE_PATH.parent.mkdir(parents=True, exist_ok=True)
        database_url = f"sqlite:///{DEFAULT_SQLITE_PATH}"
    return build_engine(database_url, echo=False, pool_pre_ping=True)


engine = _make_engine()
SessionLocal = sessionmaker(
    bind=engine, autocommit=False, autoflush=False, future=True
)


def init_db() -> None:
    db_models.Base.metadata.create_all(bind=engine)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
