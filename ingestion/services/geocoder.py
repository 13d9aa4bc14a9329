"""Free-text location → coordinates via a Nominatim-compatible search API."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from ingestion.models.domain import ResolvedLocation
from ingestion.services.rate_limiter import MinIntervalRateLimiter, get_rate_limiter
from ingestion.settings import Settings, get_settings
from ingestion.utils.geo import is_valid_coordinates
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


class GeocodingError(Exception):
    """Transport or non-2xx failure from the geocoding service (retryable)."""


# Returns the raw match list for a query; raise GeocodingError on failure.
SearchFn = Callable[[str], List[Dict[str, Any]]]


def qualify_location(text: str, anchor: str, qualifier: str) -> str:
    """Append the regional qualifier unless the text already names the region."""
    cleaned = " ".join((text or "").split())
    if not cleaned:
        return ""
    if anchor and anchor in cleaned.lower():
        return cleaned
    return f"{cleaned}, {qualifier}"


class LocationResolver:
    """Always returns a ResolvedLocation; failures degrade to the fallback coordinate."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        rate_limiter: MinIntervalRateLimiter | None = None,
        search: Optional[SearchFn] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.rate_limiter = rate_limiter or get_rate_limiter(
            "geocoder", self.settings.geocoder_min_interval_seconds
        )
        self._search = search or self._http_search
        self._sleep = sleep

    @property
    def fallback(self) -> ResolvedLocation:
        return ResolvedLocation(
            latitude=self.settings.fallback_latitude,
            longitude=self.settings.fallback_longitude,
            display_name=self.settings.region_qualifier,
            success=False,
        )

    def resolve(self, location_text: str | None) -> ResolvedLocation:
        query = qualify_location(
            location_text or "", self.settings.region_anchor, self.settings.region_qualifier
        )
        if not query:
            logger.info("geocode.fallback", extra={"reason": "empty_input"})
            return self.fallback

        try:
            matches = self._search_with_retry(query)
        except GeocodingError as exc:
            logger.warning("geocode.fallback", extra={"query": query, "reason": "exhausted", "error": str(exc)})
            return self.fallback
        except Exception:  # noqa: BLE001 - resolution never fails the pipeline
            logger.exception("geocode.fallback", extra={"query": query, "reason": "unexpected"})
            return self.fallback

        if not matches:
            logger.info("geocode.fallback", extra={"query": query, "reason": "no_results"})
            return self.fallback

        first = matches[0]
        try:
            lat = float(first.get("lat"))
            lng = float(first.get("lon"))
        except (TypeError, ValueError, AttributeError):
            logger.warning("geocode.fallback", extra={"query": query, "reason": "unparsable"})
            return self.fallback
        if not is_valid_coordinates(lat, lng):
            logger.warning("geocode.fallback", extra={"query": query, "reason": "out_of_range", "lat": lat, "lng": lng})
            return self.fallback

        display = str(first.get("display_name") or query)
        logger.info("geocode.resolved", extra={"query": query, "lat": lat, "lng": lng})
        return ResolvedLocation(latitude=lat, longitude=lng, display_name=display, success=True)

    def _search_with_retry(self, query: str) -> List[Dict[str, Any]]:
        max_retries = self.settings.geocoder_max_retries
        base = self.settings.geocoder_retry_base_delay_seconds
        attempt = 0
        while True:
            self.rate_limiter.acquire()
            try:
                return self._search(query)
            except GeocodingError as exc:
                if attempt >= max_retries:
                    raise
                delay = base * (2 ** attempt)
                logger.warning(
                    "geocode.retry",
                    extra={"query": query, "attempt": attempt + 1, "delay": delay, "error": str(exc)},
                )
                self._sleep(delay)
                attempt += 1

    def _http_search(self, query: str) -> List[Dict[str, Any]]:
        try:
            resp = httpx.get(
                self.settings.geocoder_endpoint,
                params={"q": query, "format": "json", "limit": 1, "addressdetails": 1},
                headers={"User-Agent": self.settings.geocoder_user_agent},
                timeout=self.settings.geocoder_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise GeocodingError(f"지오코딩 호출 오류: {exc}") from exc
        if resp.status_code < 200 or resp.status_code >= 300:
            raise GeocodingError(f"지오코딩 HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise GeocodingError("지오코딩 응답 JSON 파싱 실패") from exc
        return payload if isinstance(payload, list) else []
