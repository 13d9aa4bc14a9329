from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Dict, Generator, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from analysis.models.domain import CATEGORIES
from ingestion.db.session import session_scope
from ingestion.models.domain import CandidateArticle, IngestionSummary, RetentionResult
from ingestion.repositories.events import get_event, list_events
from ingestion.services.pipeline import IngestionPipeline, run_ingestion
from ingestion.services.retention import run_retention_sweep
from ingestion.settings import get_settings
from llm.client.openai_client import LLMError
from publish.notifier import DispatchReport, EventNotice, dispatch_event_notifications, should_notify
from publish.push import FirebasePushSender, PushSender

from .auth import require_cron_secret
from .models import (
    EventDetail,
    EventListResponse,
    NotifyRequest,
    NotifyResponse,
    ProcessRequest,
    ProcessResponse,
    SubscriberProfile,
)
from .repositories import load_subscribers, to_event_detail, to_event_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

MAX_PAGE_SIZE = 50


def event_session_dependency() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session


def get_ingestion_runner() -> Callable[[], IngestionSummary]:
    return run_ingestion


def get_retention_runner() -> Callable[[], RetentionResult]:
    return run_retention_sweep


def get_pipeline() -> IngestionPipeline:
    return IngestionPipeline()


def get_push_sender() -> PushSender:
    return FirebasePushSender()


def get_subscriber_loader() -> Callable[[], List[SubscriberProfile]]:
    return load_subscribers


Notifier = Callable[[EventNotice], DispatchReport]


def get_notifier(
    sender: Annotated[PushSender, Depends(get_push_sender)],
    loader: Annotated[Callable[[], List[SubscriberProfile]], Depends(get_subscriber_loader)],
) -> Notifier:
    settings = get_settings()

    def _notify(notice: EventNotice) -> DispatchReport:
        if not should_notify(notice.priority_score, True, settings.notification_priority_threshold):
            logger.info(
                "api.notify_below_threshold",
                extra={"event_id": notice.event_id, "priority": notice.priority_score},
            )
            return DispatchReport()
        return dispatch_event_notifications(notice, loader(), sender, radius_km=settings.geofence_radius_km)

    return _notify


EventSessionDep = Annotated[Session, Depends(event_session_dependency)]
CronGuard = Depends(require_cron_secret)


def _internal_error(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "message": str(exc) or type(exc).__name__,
        },
    )


@router.post("/ingest", dependencies=[CronGuard])
def ingest_route(
    runner: Annotated[Callable[[], IngestionSummary], Depends(get_ingestion_runner)],
):
    try:
        summary = runner()
    except Exception as exc:  # noqa: BLE001
        logger.exception("api.ingest_failed")
        return _internal_error(exc)
    return summary.model_dump(mode="json")


@router.post("/cleanup", dependencies=[CronGuard])
def cleanup_route(
    runner: Annotated[Callable[[], RetentionResult], Depends(get_retention_runner)],
):
    try:
        result = runner()
    except Exception as exc:  # noqa: BLE001
        logger.exception("api.cleanup_failed")
        return _internal_error(exc)
    return result.model_dump(mode="json")


@router.post("/process", dependencies=[CronGuard], response_model=ProcessResponse)
def process_route(
    payload: ProcessRequest,
    pipeline: Annotated[IngestionPipeline, Depends(get_pipeline)],
):
    candidate = CandidateArticle(
        title=payload.title,
        body=payload.content,
        images=payload.images,
        source_link=payload.source_link,
        **({"published_at": payload.publish_time} if payload.publish_time else {}),
    )
    try:
        outcome = pipeline.process(candidate)
    except LLMError as exc:
        logger.warning("api.process_normalization_failed", extra={"link": candidate.link, "error": str(exc)})
        raise HTTPException(status_code=502, detail=f"Normalization failed: {exc}") from exc

    body = ProcessResponse(is_new=outcome.is_new, notified=outcome.notified, event=to_event_detail(outcome.event))
    return JSONResponse(status_code=201 if outcome.is_new else 200, content=body.model_dump(mode="json"))


@router.post("/notify", dependencies=[CronGuard])
def notify_route(
    payload: Annotated[Dict[str, Any], Body()],
    notifier: Annotated[Notifier, Depends(get_notifier)],
):
    """Manual fan-out for one event. Priority below the threshold sends nothing."""
    try:
        request = NotifyRequest.model_validate(payload)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        return JSONResponse(
            status_code=400,
            content={
                "error": "Bad Request",
                "message": f"Missing or invalid required fields: {', '.join(fields)}",
            },
        )

    notice = EventNotice(
        event_id=request.event_id,
        title=request.title,
        category=request.category,
        location_text=request.location,
        latitude=request.coords.lat,
        longitude=request.coords.lng,
        priority_score=request.priority_score,
    )
    logger.info("api.notify", extra={"event_id": notice.event_id, "priority": notice.priority_score})
    try:
        report = notifier(notice)
    except Exception as exc:  # noqa: BLE001
        logger.exception("api.notify_failed", extra={"event_id": notice.event_id})
        return _internal_error(exc)

    body = NotifyResponse(
        notifications_sent=report.sent,
        notifications_failed=report.failed,
        timestamp=datetime.now(timezone.utc),
    )
    return body.model_dump(mode="json", by_alias=True)


def _parse_near(near: Optional[str]) -> Optional[tuple[float, float]]:
    if not near:
        return None
    try:
        lat_str, lng_str = near.split(",")
        lat, lng = float(lat_str), float(lng_str)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="near must be 'lat,lng'.") from exc
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise HTTPException(status_code=400, detail="near is out of range.")
    return lat, lng


@router.get("/events", response_model=EventListResponse)
def list_events_route(
    session: EventSessionDep,
    category: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    near: str | None = Query(default=None, description="lat,lng"),
    radius_km: float = Query(default=50.0, gt=0, le=500),
    limit: int = Query(default=20, ge=1),
    skip: int = Query(default=0, ge=0),
) -> EventListResponse:
    if category and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown category: {category}")
    page_size = min(limit, MAX_PAGE_SIZE)
    events, has_more = list_events(
        session,
        category=category,
        start=start_date,
        end=end_date,
        near=_parse_near(near),
        radius_km=radius_km,
        limit=page_size,
        skip=skip,
    )
    return EventListResponse(
        events=[to_event_summary(e) for e in events],
        count=len(events),
        limit=page_size,
        skip=skip,
        has_more=has_more,
    )


@router.get("/events/{event_id}", response_model=EventDetail)
def get_event_route(event_id: uuid.UUID, session: EventSessionDep) -> EventDetail:
    event = get_event(session, event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found.")
    return to_event_detail(event)
