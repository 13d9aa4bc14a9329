"""Public social page adapter (server-rendered HTML only)."""

from __future__ import annotations

import hashlib
import re
from typing import Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from ingestion.utils.logging import get_logger
from ingestion.utils.text import clean_inline

from . import extractors
from .base import BaseSourceAdapter, ConnectorError

logger = get_logger(__name__)

POST_CONTAINER_SELECTORS = [
    '[data-testid="post_message"]',
    '[role="article"]',
    ".userContentWrapper",
    "._5pbx",
]
PERMALINK_SELECTORS = [
    'a[href*="/posts/"]',
    'a[href*="story_fbid"]',
    'a[href*="/permalink/"]',
    'a[href*="/videos/"]',
]
POST_TIME_SELECTORS = ["abbr[data-utime]", "time[datetime]"]
_SENTENCE_RE = re.compile(r"[.!?।]")


def post_title(text: str) -> str:
    """First sentence when it is a sensible headline, else the first 100 chars."""
    first = _SENTENCE_RE.split(text, maxsplit=1)[0].strip()
    if 10 < len(first) < 150:
        return first
    return text[:100].strip() + "..."


def is_post_image(url: str) -> bool:
    return "fbcdn.net" in url or extractors.is_image_url(url)


class SocialPageAdapter(BaseSourceAdapter):
    """Reads post containers from public page HTML.

    Posts without a permalink get a stable synthetic link (page URL plus a
    content hash fragment) so re-discovering the same post maps to the same
    event.
    """

    def __init__(self, name: str, pages: Sequence[str], **kwargs: Any) -> None:
        kwargs.setdefault("max_articles", 5)
        super().__init__(**kwargs)
        self.name = name
        self.pages = list(pages)

    def _collect(self, errors: List[str]) -> List[Dict[str, Any]]:
        drafts: List[Dict[str, Any]] = []
        failures = 0
        for page_url in self.pages:
            try:
                soup = self.fetch_soup(page_url)
            except ConnectorError as exc:
                failures += 1
                errors.append(f"{page_url} 수집 실패: {exc}")
                continue
            drafts.extend(self._posts(soup, page_url))
        if self.pages and failures == len(self.pages):
            raise ConnectorError(f"{self.name}: 모든 페이지 수집 실패")
        return drafts

    def _posts(self, soup: BeautifulSoup, page_url: str) -> List[Dict[str, Any]]:
        containers: List[Tag] = []
        for selector in POST_CONTAINER_SELECTORS:
            containers = soup.select(selector)
            if containers:
                break
        drafts: List[Dict[str, Any]] = []
        for post in containers[: self.max_articles]:
            text = clean_inline(post.get_text(" ", strip=True))
            if len(text) < self.min_body_chars:
                continue
            drafts.append(
                {
                    "title": post_title(text),
                    "body": text,
                    "images": self._images(post, page_url),
                    "published_at": self._published(post),
                    "source_link": self._permalink(post, page_url, text),
                }
            )
        logger.info("adapter.posts_found", extra={"source": self.name, "page": page_url, "posts": len(drafts)})
        return drafts

    def _images(self, post: Tag, page_url: str) -> List[str]:
        images: List[str] = []
        for img in post.find_all("img"):
            src = img.get("src") or img.get("data-src")
            if not src:
                continue
            absolute = extractors.resolve_url(str(src), page_url)
            if absolute and absolute not in images and is_post_image(absolute):
                images.append(absolute)
        return images

    def _published(self, post: Tag):
        wrapper = BeautifulSoup(str(post), "html.parser")
        return extractors.first_match(extractors.date_strategies(POST_TIME_SELECTORS), wrapper, "")

    def _permalink(self, post: Tag, page_url: str, text: str) -> str:
        for selector in PERMALINK_SELECTORS:
            anchor: Optional[Tag] = post.select_one(selector)
            if anchor is not None and anchor.get("href"):
                absolute = extractors.resolve_url(str(anchor["href"]), page_url)
                if absolute:
                    return absolute
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]
        return f"{page_url.rstrip('/')}#post-{digest}"
