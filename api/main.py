from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

from dotenv import load_dotenv

# 프로젝트 루트의 .env 파일 명시적 로딩
project_root = Path(__file__).parent.parent
env_path = project_root / ".env"

if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI

from ingestion.db.models import Base as EventBase
from ingestion.db.session import get_engine
from ingestion.settings import get_settings
from ingestion.utils.logging import configure_logging

from .database import init_db
from .routes import router

logger = logging.getLogger(__name__)

init_db()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.structlog_level, json_enabled=settings.log_json)
    # 로컬 실행/테스트용. 운영 스키마는 alembic이 관리한다.
    EventBase.metadata.create_all(bind=get_engine(settings))
    logger.info("api.startup")
    yield
    logger.info("api.shutdown")


app = FastAPI(title="Almora Radar Ingestion API", version="0.1.0", lifespan=lifespan)

app.include_router(router)


@app.get("/healthz", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Almora Radar ingestion API server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    args = parser.parse_args(argv)

    import uvicorn

    logger.info("api.serve", extra={"host": args.host, "port": args.port})
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
