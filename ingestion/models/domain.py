"""Domain DTOs for ingestion pipeline."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CandidateArticle(BaseModel):
    """Raw article extracted by a source adapter, not yet normalized.

    `source_link` is the identity of everything downstream: two candidates
    with the same link collapse into one stored event.
    """

    title: str = Field(..., max_length=1024)
    body: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    published_at: datetime = Field(default_factory=_utcnow, description="발행 시각 (없으면 수집 시각)")
    source_link: HttpUrl
    source: Optional[str] = Field(default=None, description="어댑터 이름")

    @field_validator("title", "body")
    @classmethod
    def _strip(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("빈 문자열은 허용되지 않습니다.")
        return s

    @field_validator("published_at")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def link(self) -> str:
        return str(self.source_link)


class ResolvedLocation(BaseModel):
    """Geocoding outcome; always present, even on failure."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    display_name: str
    success: bool

    @field_validator("latitude", "longitude")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("좌표는 유한한 값이어야 합니다.")
        return v


class AdapterResult(BaseModel):
    """What one adapter produced in one run."""

    source: str
    articles: List[CandidateArticle] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class SourceDiagnostics(BaseModel):
    source: str
    articles_scraped: int = 0
    errors: List[str] = Field(default_factory=list)
    duration_seconds: float = 0.0
    failed: bool = False
    timestamp: datetime = Field(default_factory=_utcnow)


class IngestionSummary(BaseModel):
    """Operator-facing result of one ingestion run."""

    success: bool
    sources: List[SourceDiagnostics] = Field(default_factory=list)
    total_articles_scraped: int = 0
    articles_processed: int = 0
    articles_failed: int = 0
    errors: List[str] = Field(default_factory=list)
    duration_seconds: float = 0.0
    timestamp: datetime = Field(default_factory=_utcnow)


class RetentionResult(BaseModel):
    events_deleted: int
    cutoff: datetime
    timestamp: datetime = Field(default_factory=_utcnow)


class EventRecord(BaseModel):
    """Fully-formed event content handed to the store writer."""

    source_link: str = Field(..., min_length=1)
    title: str
    clean_title: str
    summary_en: str
    summary_hi: str
    category: str
    location_text: str = ""
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    geocoded: bool = False
    place_name: Optional[str] = None
    priority_score: int = Field(..., ge=1, le=5)
    keywords: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    raw_text: str = ""
    incident_date: datetime
    published_at: Optional[datetime] = None
    source: Optional[str] = None
