from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import pytest
from sqlalchemy.orm import Session

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ingestion.db.models import Base  # noqa: E402
from ingestion.db.session import build_engine, build_sessionmaker  # noqa: E402
from ingestion.services.rate_limiter import reset_rate_limiters  # noqa: E402
from ingestion.settings import Settings, reset_settings_cache  # noqa: E402
from llm.settings import reset_llm_settings_cache  # noqa: E402
from publish.settings import reset_push_settings_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_caches():
    reset_settings_cache()
    reset_llm_settings_cache()
    reset_push_settings_cache()
    reset_rate_limiters()
    yield
    reset_settings_cache()
    reset_llm_settings_cache()
    reset_push_settings_cache()
    reset_rate_limiters()


@pytest.fixture()
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'events.db'}"


@pytest.fixture()
def make_settings(sqlite_url: str):
    def _make(**overrides) -> Settings:
        values = {
            "redis_url": "redis://localhost:6379/0",
            "postgres_dsn": sqlite_url,
            "cron_secret": "cron-secret",
            "geocoder_min_interval_seconds": 0.001,
            "source_retry_base_delay_seconds": 0.001,
            "geocoder_retry_base_delay_seconds": 0.001,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture()
def session_factory(sqlite_url: str):
    """Transactional scope over a fresh SQLite file, same contract as session_scope."""
    engine = build_engine(sqlite_url)
    Base.metadata.create_all(bind=engine)
    maker = build_sessionmaker(engine)

    @contextmanager
    def _scope() -> Iterator[Session]:
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    yield _scope
    engine.dispose()
