"""Event store: atomic upsert by origin link, reads and retention deletes."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ingestion.db.models import Event
from ingestion.models.domain import EventRecord
from ingestion.utils.geo import bounding_box, haversine_km

_CONTENT_COLUMNS = tuple(name for name in EventRecord.model_fields if name != "source_link")


def _dialect_insert(session: Session) -> Any:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"upsert를 지원하지 않는 DB: {dialect}")
    return insert


def upsert_event(session: Session, record: EventRecord, *, now: Optional[datetime] = None) -> Tuple[Event, bool]:
    """Insert or replace keyed by source_link in one INSERT … ON CONFLICT statement.

    On conflict every content column is replaced, updated_at is set to now,
    created_at is left untouched and revision is bumped. The returned flag is
    True only when this call created the row.
    """
    ts = now or datetime.now(timezone.utc)
    values = record.model_dump()
    insert = _dialect_insert(session)

    stmt = insert(Event).values(
        id=uuid.uuid4(),
        created_at=ts,
        updated_at=ts,
        revision=1,
        **values,
    )
    update_set = {name: stmt.excluded[name] for name in _CONTENT_COLUMNS}
    update_set["updated_at"] = ts
    update_set["revision"] = Event.revision + 1
    stmt = stmt.on_conflict_do_update(index_elements=["source_link"], set_=update_set).returning(
        Event.id, Event.revision
    )

    row = session.execute(stmt).one()
    event = session.get(Event, row.id, populate_existing=True)
    if event is None:
        raise RuntimeError(f"upsert 직후 이벤트를 읽지 못했습니다: {record.source_link}")
    return event, row.revision == 1


def get_event(session: Session, event_id: uuid.UUID) -> Optional[Event]:
    return session.get(Event, event_id)


def get_event_by_link(session: Session, source_link: str) -> Optional[Event]:
    return session.scalars(select(Event).where(Event.source_link == source_link)).first()


def list_events(
    session: Session,
    *,
    category: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    near: Optional[Tuple[float, float]] = None,
    radius_km: float = 50.0,
    limit: int = 20,
    skip: int = 0,
) -> Tuple[List[Event], bool]:
    """Newest first. Returns (page, has_more)."""
    stmt = select(Event)
    if category:
        stmt = stmt.where(Event.category == category)
    if start is not None:
        stmt = stmt.where(Event.created_at >= start)
    if end is not None:
        stmt = stmt.where(Event.created_at <= end)
    stmt = stmt.order_by(Event.created_at.desc(), Event.id)

    if near is None:
        rows = list(session.scalars(stmt.offset(skip).limit(limit + 1)))
        return rows[:limit], len(rows) > limit

    # bbox는 인덱스용 사전 필터, 정확한 거리는 haversine으로 확인
    lat, lng = near
    box = bounding_box(lat, lng, radius_km)
    stmt = stmt.where(
        Event.latitude.between(box.south, box.north),
        Event.longitude.between(box.west, box.east),
    )
    matched = [e for e in session.scalars(stmt) if haversine_km(lat, lng, e.latitude, e.longitude) <= radius_km]
    page = matched[skip : skip + limit]
    return page, len(matched) > skip + limit


def delete_events_older_than(session: Session, cutoff: datetime) -> int:
    result = session.execute(delete(Event).where(Event.created_at < cutoff))
    return int(result.rowcount or 0)
