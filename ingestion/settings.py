"""Configuration models for the ingestion service."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List, Literal, Optional, Set

from pydantic import (
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


SourceKind = Literal["structured", "generic", "social", "instagram", "youtube"]


class SiteProfile(BaseModel):
    """단일 사이트의 수집 프로필 (선택자는 비우면 기본 휴리스틱 사용)."""

    name: str = Field(..., description="사이트 표시 이름.")
    url: str = Field(..., description="목록(섹션) 페이지 URL.")
    link_selectors: List[str] = Field(default_factory=list, description="기사 링크 선택자 (순서대로 시도).")
    title_selectors: List[str] = Field(default_factory=list)
    body_selectors: List[str] = Field(default_factory=list)
    image_selectors: List[str] = Field(default_factory=list)
    date_selectors: List[str] = Field(default_factory=list)

    @field_validator("name", "url")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        s = value.strip()
        if not s:
            raise ValueError("name/url은 공백일 수 없습니다.")
        return s


class SourceConfig(BaseModel):
    """Represents one source adapter configuration."""

    name: str = Field(..., description="소스 식별자 (진단/로그에 사용).")
    kind: SourceKind = Field(..., description="어댑터 유형.")
    sites: List[SiteProfile] = Field(default_factory=list, description="structured/generic용 사이트 목록.")
    pages: List[str] = Field(default_factory=list, description="social용 공개 페이지 URL 목록.")
    queries: List[str] = Field(default_factory=list, description="instagram 해시태그 또는 youtube 검색어 목록.")
    max_articles: PositiveInt = Field(10, description="실행당 상세 페이지 최대 수집 수 (사이트/페이지 단위).")
    enabled: bool = Field(True, description="소스 사용 여부.")

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("source name은 공백일 수 없습니다.")
        return name


def default_sources() -> List[SourceConfig]:
    return [
        SourceConfig(
            name="Amar Ujala Kumaon",
            kind="structured",
            max_articles=10,
            sites=[
                SiteProfile(
                    name="Amar Ujala Kumaon",
                    url="https://www.amarujala.com/uttarakhand/kumaon",
                    link_selectors=["article a", ".article-card a", ".news-card a", "h2 a", "h3 a"],
                    title_selectors=["h1.article-title", "h1.headline", 'h1[itemprop="headline"]', "article h1", "h1"],
                    body_selectors=[".article-content", ".story-content", '[itemprop="articleBody"]', ".article-body", "article p"],
                )
            ],
        ),
        SourceConfig(
            name="Dainik Jagran Almora",
            kind="structured",
            max_articles=10,
            sites=[
                SiteProfile(
                    name="Dainik Jagran Almora",
                    url="https://www.jagran.com/uttarakhand/almora-news-hindi.html",
                    link_selectors=[".topicList a", ".listing a", "article a", "h2 a", "h3 a"],
                    title_selectors=["h1.articleHd", "h1.title", 'h1[itemprop="headline"]', "article h1", "h1"],
                    body_selectors=[".articleBody", ".article-body", '[itemprop="articleBody"]', ".ArticleDetail p", "article p"],
                )
            ],
        ),
        SourceConfig(
            name="Local News Sites",
            kind="generic",
            max_articles=5,
            sites=[
                SiteProfile(name="Almora Live", url="https://almoralive.com", link_selectors=["article a", ".post a", ".news-item a"]),
                SiteProfile(name="Kumaon Jagran", url="https://kumaunjagran.in", link_selectors=["article a", ".post-item a"]),
                SiteProfile(name="Uttarakhand Today", url="https://uttarakhandtoday.com", link_selectors=["article a", ".news-card a"]),
            ],
        ),
        SourceConfig(
            name="Facebook Public Pages",
            kind="social",
            max_articles=5,
            pages=[
                "https://www.facebook.com/AlmoraNews",
                "https://www.facebook.com/KumaonNews",
                "https://www.facebook.com/UttarakhandNews",
            ],
        ),
        SourceConfig(
            name="Instagram Hashtags",
            kind="instagram",
            max_articles=5,
            queries=["almora", "kumaon", "uttarakhand", "almoranews"],
        ),
        SourceConfig(
            name="YouTube News",
            kind="youtube",
            max_articles=3,
            queries=["Almora news", "Kumaon news", "Uttarakhand news Almora"],
        ),
    ]


class Settings(BaseSettings):
    """Ingestion용 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    redis_url: str = Field(..., alias="INGESTION_REDIS_URL", description="Celery 브로커/백엔드 Redis DSN.")
    postgres_dsn: str = Field(..., alias="POSTGRES_DSN", description="이벤트 저장소 DB 연결 문자열.")
    cron_secret: Optional[SecretStr] = Field(None, alias="CRON_SECRET", description="트리거 엔드포인트 Bearer 비밀값.")

    sources: List[SourceConfig] = Field(
        default_factory=default_sources,
        alias="SOURCES",
        description="JSON 배열 형태의 소스 어댑터 설정.",
    )
    source_timeout_seconds: PositiveFloat = Field(30.0, alias="SOURCE_TIMEOUT_SECONDS", description="어댑터별 전체 실행 제한(초).")
    source_request_timeout_seconds: PositiveFloat = Field(
        10.0, alias="SOURCE_REQUEST_TIMEOUT_SECONDS", description="단일 HTTP 요청 타임아웃(초)."
    )
    source_max_attempts: PositiveInt = Field(3, alias="SOURCE_MAX_ATTEMPTS", description="문서 fetch 최대 시도 횟수.")
    source_retry_base_delay_seconds: PositiveFloat = Field(
        1.0, alias="SOURCE_RETRY_BASE_DELAY_SECONDS", description="fetch 재시도 지수 백오프 시작값(초)."
    )
    source_user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        alias="SOURCE_USER_AGENT",
    )
    source_min_body_chars: PositiveInt = Field(50, alias="SOURCE_MIN_BODY_CHARS", description="후보 기사 본문 최소 길이.")
    pipeline_concurrency: PositiveInt = Field(4, alias="PIPELINE_CONCURRENCY", description="후보 기사 동시 처리 수.")

    geocoder_endpoint: str = Field(
        "https://nominatim.openstreetmap.org/search",
        alias="GEOCODER_ENDPOINT",
        description="Nominatim 호환 검색 엔드포인트.",
    )
    geocoder_user_agent: str = Field("AlmoraRadar/1.0", alias="GEOCODER_USER_AGENT")
    geocoder_min_interval_seconds: PositiveFloat = Field(
        1.0, alias="GEOCODER_MIN_INTERVAL_SECONDS", description="프로세스 전역 지오코딩 최소 호출 간격(초)."
    )
    geocoder_max_retries: int = Field(3, ge=0, alias="GEOCODER_MAX_RETRIES")
    geocoder_retry_base_delay_seconds: PositiveFloat = Field(1.0, alias="GEOCODER_RETRY_BASE_DELAY_SECONDS")
    geocoder_timeout_seconds: PositiveFloat = Field(10.0, alias="GEOCODER_TIMEOUT_SECONDS")

    region_anchor: str = Field("almora", alias="REGION_ANCHOR", description="위치 문자열에 이미 포함되었는지 확인할 지역 키워드.")
    region_qualifier: str = Field("Almora, Uttarakhand, India", alias="REGION_QUALIFIER")
    fallback_latitude: float = Field(29.5971, ge=-90.0, le=90.0, alias="FALLBACK_LATITUDE")
    fallback_longitude: float = Field(79.659, ge=-180.0, le=180.0, alias="FALLBACK_LONGITUDE")

    notification_priority_threshold: int = Field(4, ge=1, le=5, alias="NOTIFICATION_PRIORITY_THRESHOLD")
    geofence_radius_km: PositiveFloat = Field(50.0, alias="GEOFENCE_RADIUS_KM")

    retention_days: PositiveInt = Field(15, alias="RETENTION_DAYS", description="이벤트 보존 기간(일).")
    ingestion_interval_minutes: PositiveInt = Field(30, alias="INGESTION_INTERVAL_MINUTES")
    cleanup_hour_utc: int = Field(0, ge=0, le=23, alias="CLEANUP_HOUR_UTC")

    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="구조화 로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    celery_worker_concurrency: PositiveInt = Field(
        2,
        alias="CELERY_WORKER_CONCURRENCY",
        description="Celery 워커 동시 실행 수.",
    )
    celery_task_soft_time_limit: PositiveInt = Field(
        900,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    @field_validator("sources", mode="before")
    @classmethod
    def _parse_sources(cls, value: Any) -> Any:
        if value in (None, ""):
            return default_sources()
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("SOURCES는 JSON 배열이어야 합니다.") from exc
            return parsed
        if isinstance(value, list):
            return value
        raise ValueError("SOURCES는 리스트 형태여야 합니다.")

    @field_validator("sources")
    @classmethod
    def _validate_unique_sources(cls, value: List[SourceConfig]) -> List[SourceConfig]:
        seen: Set[str] = set()
        for source in value:
            if source.name in seen:
                raise ValueError(f"중복된 소스 이름이 존재합니다: {source.name}")
            seen.add(source.name)
        return value

    @field_validator("postgres_dsn")
    @classmethod
    def _validate_postgres_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("POSTGRES_DSN은 유효한 DSN 문자열이어야 합니다.")
        return value

    @field_validator("region_anchor")
    @classmethod
    def _anchor_lower(cls, value: str) -> str:
        return value.strip().lower()


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
