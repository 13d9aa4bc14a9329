"""DTO/스키마: 정규화(LLM) 출력 정의.

Pydantic v2 스키마로 LLM 응답을 엄격하게 검증한다. 허용되지 않는 값은
보정하지 않고 검증 실패로 처리한다.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional, Tuple

from dateutil import parser as date_parser
from pydantic import BaseModel, Field, field_validator, model_validator

CATEGORIES: Tuple[str, ...] = (
    "accident",
    "crime",
    "wildlife",
    "festival",
    "celebrity",
    "emergency",
    "weather",
    "public",
)
Category = Literal["accident", "crime", "wildlife", "festival", "celebrity", "emergency", "weather", "public"]

REQUIRED_FIELDS: Tuple[str, ...] = (
    "title",
    "clean_title",
    "summary_en",
    "summary_hi",
    "category",
    "location_text",
    "priority_score",
    "keywords",
    "incident_date",
)


class NormalizedContent(BaseModel):
    """LLM 정규화 결과 표준 스키마."""

    title: str = Field(..., max_length=1024)
    clean_title: str = Field(..., max_length=1024)
    summary_en: str
    summary_hi: str
    category: Category
    location_text: str = Field(..., description="자유 형식 위치 설명 (빈 문자열 허용)")
    priority_score: int = Field(..., ge=1, le=5)
    keywords: List[str]
    incident_date: Optional[datetime] = Field(default=None, description="파싱 불가 시 None")

    # 검증 후 정규화기가 채운다
    source_link: str = ""
    raw_text: str = ""

    @model_validator(mode="before")
    @classmethod
    def _required_present(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("LLM 응답은 JSON 객체여야 합니다.")
        for name in REQUIRED_FIELDS:
            if data.get(name) is None:
                raise ValueError(f"필수 필드 누락: {name}")
        return data

    @field_validator("title", "clean_title", "summary_en", "summary_hi")
    @classmethod
    def _strip_nonempty(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("필드는 공백일 수 없습니다.")
        return s

    @field_validator("location_text")
    @classmethod
    def _strip_location(cls, v: str) -> str:
        return v.strip()

    @field_validator("priority_score", mode="before")
    @classmethod
    def _strict_int(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("priority_score는 정수여야 합니다.")
        if isinstance(v, float):
            if not v.is_integer():
                raise ValueError("priority_score는 정수여야 합니다.")
            return int(v)
        return v

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords_cleanup(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            raise ValueError("keywords는 배열이어야 합니다.")
        cleaned: List[str] = []
        seen: set[str] = set()
        for kw in v:
            if not isinstance(kw, str):
                raise ValueError(f"keywords 항목은 문자열이어야 합니다: {kw!r}")
            s = kw.strip()
            if not s or s.lower() in seen:
                continue
            cleaned.append(s)
            seen.add(s.lower())
        if not cleaned:
            raise ValueError("keywords는 비어 있을 수 없습니다.")
        return cleaned

    @field_validator("incident_date", mode="before")
    @classmethod
    def _parse_incident_date(cls, v: Any) -> Optional[datetime]:
        if isinstance(v, datetime):
            parsed = v
        elif isinstance(v, str) and v.strip():
            try:
                parsed = date_parser.parse(v.strip())
            except (ValueError, OverflowError):
                return None
        else:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
