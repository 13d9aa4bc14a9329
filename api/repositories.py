from __future__ import annotations

from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ingestion.db.models import Event

from . import db_models
from .models import EventDetail, EventSummary, SubscriberProfile


def to_subscriber_profile(row: db_models.SubscriberPreference) -> SubscriberProfile:
    return SubscriberProfile(
        user_id=row.user_id,
        categories=list(row.categories or []),
        home_latitude=row.home_latitude,
        home_longitude=row.home_longitude,
        notifications_enabled=bool(row.notifications_enabled),
        device_token=row.device_token,
    )


def load_notifiable_subscribers(session: Session) -> List[SubscriberProfile]:
    """opt-in AND 토큰 보유 구독자. 카테고리/지오펜스는 호출 측에서 거른다."""
    rows = session.scalars(
        select(db_models.SubscriberPreference).where(
            db_models.SubscriberPreference.notifications_enabled.is_(True),
            db_models.SubscriberPreference.device_token.is_not(None),
            db_models.SubscriberPreference.device_token != "",
        )
    )
    return [to_subscriber_profile(row) for row in rows]


def load_subscribers() -> List[SubscriberProfile]:
    from .database import get_session

    with get_session() as session:
        return load_notifiable_subscribers(session)


def to_event_summary(event: Event) -> EventSummary:
    return EventSummary.model_validate(event)


def to_event_detail(event: Event) -> EventDetail:
    return EventDetail.model_validate(event)
