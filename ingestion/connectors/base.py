"""Source adapter abstraction, errors, and helpers."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup
from pydantic import ValidationError

from ingestion.connectors import extractors
from ingestion.models.domain import AdapterResult, CandidateArticle
from ingestion.settings import SiteProfile
from ingestion.utils.logging import get_logger
from ingestion.utils.text import clean_inline, clean_text

logger = get_logger(__name__)


class ConnectorError(Exception):
    """Base connector error."""


class TransientError(ConnectorError):
    """Retryable error (e.g., rate limit, network hiccup)."""


class PermanentError(ConnectorError):
    """Non-retryable error (e.g., 4xx semantics)."""


# Returns the document body for a URL; raise TransientError/PermanentError on failure.
HttpGetFn = Callable[[str], str]
SleepFn = Callable[[float], None]


class BaseSourceAdapter(ABC):
    """Fetch-with-retry, validation and diagnostics shared by all adapters.

    Subclasses implement `_collect`, which returns raw drafts (dicts with
    title/body/images/published_at/source_link). Drafts that fail validation
    are dropped with a diagnostic; the run continues.
    """

    name: str = "source"

    def __init__(
        self,
        *,
        http_get: Optional[HttpGetFn] = None,
        max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        max_articles: int = 10,
        min_body_chars: int = 50,
        request_timeout: float = 10.0,
        user_agent: str = "Mozilla/5.0",
        sleep: SleepFn = time.sleep,
    ) -> None:
        self._http_get = http_get
        self.max_attempts = max(1, int(max_attempts))
        self.retry_base_delay = float(retry_base_delay)
        self.max_articles = int(max_articles)
        self.min_body_chars = int(min_body_chars)
        self.request_timeout = float(request_timeout)
        self.user_agent = user_agent
        self._sleep = sleep

    def scrape(self) -> AdapterResult:
        """Run one collection pass. Fetch errors on the entry page propagate."""
        errors: List[str] = []
        drafts = self._collect(errors)
        articles: List[CandidateArticle] = []
        fetched_at = datetime.now(timezone.utc)
        for draft in drafts:
            candidate = self._validate(draft, errors, fetched_at)
            if candidate is not None:
                articles.append(candidate)
        return AdapterResult(source=self.name, articles=articles, errors=errors)

    @abstractmethod
    def _collect(self, errors: List[str]) -> List[Dict[str, Any]]:
        """Return raw article drafts; append recoverable problems to errors."""

    # ---- fetching ---------------------------------------------------------

    def fetch_document(self, url: str) -> str:
        attempts = 0
        while True:
            attempts += 1
            try:
                return self._get(url)
            except TransientError as exc:
                if attempts >= self.max_attempts:
                    raise
                delay = self.retry_base_delay * (2 ** (attempts - 1))
                logger.warning(
                    "adapter.fetch_retry",
                    extra={"source": self.name, "url": url, "attempt": attempts, "delay": delay, "error": str(exc)},
                )
                self._sleep(delay)

    def _get(self, url: str) -> str:
        if self._http_get is not None:
            return self._http_get(url)
        try:
            resp = httpx.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.request_timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException as exc:
            raise TransientError(f"{url} 타임아웃") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"{url} 호출 오류: {exc}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientError(f"HTTP {resp.status_code}: {url}")
        if resp.status_code >= 400:
            raise PermanentError(f"HTTP {resp.status_code}: {url}")
        return resp.text

    def fetch_soup(self, url: str) -> BeautifulSoup:
        return BeautifulSoup(self.fetch_document(url), "html.parser")

    # ---- shared site scraping --------------------------------------------

    def scrape_site(self, site: SiteProfile, errors: List[str], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Listing page → article links (capped) → one draft per detail page."""
        listing = self.fetch_soup(site.url)
        links = extractors.first_match(extractors.link_strategies(site.link_selectors), listing, site.url) or []
        cap = self.max_articles if limit is None else limit
        logger.info("adapter.links_found", extra={"source": self.name, "site": site.name, "links": len(links)})

        drafts: List[Dict[str, Any]] = []
        for link in links[:cap]:
            try:
                draft = self.extract_article(self.fetch_soup(link), link, site)
            except ConnectorError as exc:
                errors.append(f"{site.name}: 기사 수집 실패 {link}: {exc}")
                continue
            if draft is None:
                errors.append(f"{site.name}: 제목/본문 없음 {link}")
                continue
            drafts.append(draft)
        return drafts

    def extract_article(self, soup: BeautifulSoup, url: str, site: SiteProfile) -> Optional[Dict[str, Any]]:
        title = extractors.first_match(extractors.title_strategies(site.title_selectors), soup, url)
        if not title:
            return None
        body = extractors.first_match(extractors.body_strategies(site.body_selectors), soup, url)
        if not body:
            return None
        images = extractors.first_match(extractors.image_strategies(site.image_selectors), soup, url) or []
        published = extractors.first_match(extractors.date_strategies(site.date_selectors), soup, url)
        return {
            "title": title,
            "body": body,
            "images": images,
            "published_at": published,
            "source_link": url,
        }

    # ---- validation -------------------------------------------------------

    def _validate(
        self, draft: Dict[str, Any], errors: List[str], fetched_at: datetime
    ) -> Optional[CandidateArticle]:
        title = clean_inline(str(draft.get("title") or ""))
        body = clean_text(str(draft.get("body") or ""))
        link = str(draft.get("source_link") or "").strip()
        if not title:
            errors.append(f"제목 누락: {link or '(no link)'}")
            return None
        if len(body) < self.min_body_chars:
            errors.append(f"본문이 너무 짧음({len(body)}자): {link or title}")
            return None
        try:
            return CandidateArticle(
                title=title,
                body=body,
                images=list(draft.get("images") or []),
                published_at=draft.get("published_at") or fetched_at,
                source_link=link,
                source=self.name,
            )
        except ValidationError as exc:
            errors.append(f"후보 검증 실패 ({link or title}): {exc.errors()[0].get('msg')}")
            return None
