from __future__ import annotations

import math
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from analysis.models.domain import CATEGORIES


class SubscriberProfile(BaseModel):
    """Read-only view of a subscriber's notification preferences."""

    user_id: str
    categories: list[str] = Field(default_factory=list, description="비어 있으면 모든 카테고리")
    home_latitude: Optional[float] = None
    home_longitude: Optional[float] = None
    notifications_enabled: bool = False
    device_token: Optional[str] = None

    @property
    def home(self) -> Optional[tuple[float, float]]:
        if self.home_latitude is None or self.home_longitude is None:
            return None
        if not (math.isfinite(self.home_latitude) and math.isfinite(self.home_longitude)):
            return None
        return self.home_latitude, self.home_longitude


class EventSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    clean_title: str
    summary_en: str
    summary_hi: str
    category: str
    location_text: str
    latitude: float
    longitude: float
    priority_score: int
    keywords: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)
    source_link: str
    incident_date: datetime
    created_at: datetime
    updated_at: datetime


class EventDetail(EventSummary):
    place_name: Optional[str] = None
    geocoded: bool = False
    raw_text: str = ""
    published_at: Optional[datetime] = None
    source: Optional[str] = None


class EventListResponse(BaseModel):
    events: list[EventSummary]
    count: int
    limit: int
    skip: int
    has_more: bool


class ProcessRequest(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    source_link: HttpUrl
    images: list[str] = Field(default_factory=list)
    publish_time: Optional[datetime] = None

    @field_validator("title", "content")
    @classmethod
    def _strip(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("빈 문자열은 허용되지 않습니다.")
        return s


class ProcessResponse(BaseModel):
    success: bool = True
    is_new: bool
    notified: bool = False
    event: EventDetail


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class NotifyRequest(BaseModel):
    """수동 알림 트리거 요청 (camelCase 필드)."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(..., min_length=1, alias="eventId")
    title: str = Field(..., min_length=1)
    category: str
    location: str = Field(..., min_length=1)
    coords: Coordinates
    priority_score: int = Field(..., ge=1, le=5, alias="priorityScore")

    @field_validator("category")
    @classmethod
    def _known_category(cls, v: str) -> str:
        if v not in CATEGORIES:
            raise ValueError(f"알 수 없는 카테고리: {v}")
        return v


class NotifyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    notifications_sent: int = Field(0, alias="notificationsSent")
    notifications_failed: int = Field(0, alias="notificationsFailed")
    timestamp: datetime
