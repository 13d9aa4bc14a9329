"""Build adapter instances from configured sources."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ingestion.settings import Settings, SourceConfig
from ingestion.utils.logging import get_logger

from .base import BaseSourceAdapter, HttpGetFn
from .instagram import InstagramHashtagAdapter
from .news_site import GenericHtmlSiteAdapter, StructuredNewsSiteAdapter
from .social import SocialPageAdapter
from .youtube import YouTubeSearchAdapter

logger = get_logger(__name__)


def _common_kwargs(settings: Settings, source: SourceConfig, http_get: Optional[HttpGetFn]) -> Dict[str, Any]:
    return {
        "http_get": http_get,
        "max_attempts": settings.source_max_attempts,
        "retry_base_delay": settings.source_retry_base_delay_seconds,
        "max_articles": source.max_articles,
        "min_body_chars": settings.source_min_body_chars,
        "request_timeout": settings.source_request_timeout_seconds,
        "user_agent": settings.source_user_agent,
    }


def build_adapter(settings: Settings, source: SourceConfig, http_get: Optional[HttpGetFn] = None) -> BaseSourceAdapter:
    kwargs = _common_kwargs(settings, source, http_get)
    if source.kind == "structured":
        if len(source.sites) != 1:
            raise ValueError(f"structured 소스는 사이트가 정확히 1개여야 합니다: {source.name}")
        return StructuredNewsSiteAdapter(source.name, source.sites[0], **kwargs)
    if source.kind == "generic":
        return GenericHtmlSiteAdapter(source.name, source.sites, **kwargs)
    if source.kind == "social":
        return SocialPageAdapter(source.name, source.pages, **kwargs)
    if source.kind == "instagram":
        return InstagramHashtagAdapter(source.name, source.queries, **kwargs)
    if source.kind == "youtube":
        return YouTubeSearchAdapter(source.name, source.queries, **kwargs)
    raise ValueError(f"지원하지 않는 소스 유형: {source.kind}")


def build_adapters(settings: Settings, http_get: Optional[HttpGetFn] = None) -> List[BaseSourceAdapter]:
    """Enabled sources only, in configuration order."""
    adapters: List[BaseSourceAdapter] = []
    for source in settings.sources:
        if not source.enabled:
            logger.info("registry.source_disabled", extra={"source": source.name})
            continue
        adapters.append(build_adapter(settings, source, http_get))
    return adapters
