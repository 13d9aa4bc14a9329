"""Instagram hashtag adapter (public explore pages, JSON-LD only).

Without a logged-in session the explore page usually carries little more
than a login wall. Whatever posts are embedded as JSON-LD are read; an
empty page is logged and is not treated as a failure.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional, Sequence
from urllib.parse import quote

from bs4 import BeautifulSoup

from ingestion.utils.logging import get_logger
from ingestion.utils.text import clean_text

from . import extractors
from .base import BaseSourceAdapter, ConnectorError

logger = get_logger(__name__)

INSTAGRAM_BASE_URL = "https://www.instagram.com"
_CAPTION_KEYS = ("articleBody", "caption", "description", "text")
_DATE_KEYS = ("uploadDate", "datePublished", "dateCreated")


def caption_title(caption: str) -> str:
    """First line of the caption when it reads like a headline, else 100 chars."""
    first_line = caption.split("\n", 1)[0].strip()
    if 10 < len(first_line) < 150:
        return first_line
    return caption[:100].strip() + "..."


def is_instagram_image(url: str) -> bool:
    return "cdninstagram.com" in url or "fbcdn.net" in url or extractors.is_image_url(url)


def hashtag_url(hashtag: str) -> str:
    return f"{INSTAGRAM_BASE_URL}/explore/tags/{quote(hashtag.strip().lstrip('#'))}/"


def _walk_posts(node: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(node, list):
        for item in node:
            yield from _walk_posts(item)
    elif isinstance(node, dict):
        if any(isinstance(node.get(k), str) for k in _CAPTION_KEYS) and isinstance(node.get("url"), str):
            yield node
        for key in ("@graph", "mainEntity", "itemListElement", "item"):
            if key in node:
                yield from _walk_posts(node[key])


class InstagramHashtagAdapter(BaseSourceAdapter):
    def __init__(self, name: str, hashtags: Sequence[str], **kwargs: Any) -> None:
        kwargs.setdefault("max_articles", 5)
        super().__init__(**kwargs)
        self.name = name
        self.hashtags = [h for h in hashtags if h.strip()]

    def _collect(self, errors: List[str]) -> List[Dict[str, Any]]:
        drafts: List[Dict[str, Any]] = []
        failures = 0
        for hashtag in self.hashtags:
            url = hashtag_url(hashtag)
            try:
                soup = self.fetch_soup(url)
            except ConnectorError as exc:
                failures += 1
                errors.append(f"#{hashtag} 수집 실패: {exc}")
                continue
            posts = self._posts(soup, url)
            if not posts:
                logger.warning("adapter.instagram_no_posts", extra={"source": self.name, "hashtag": hashtag})
            drafts.extend(posts)
        if self.hashtags and failures == len(self.hashtags):
            raise ConnectorError(f"{self.name}: 모든 해시태그 수집 실패")
        return drafts

    def _posts(self, soup: BeautifulSoup, page_url: str) -> List[Dict[str, Any]]:
        drafts: List[Dict[str, Any]] = []
        for script in soup.select('script[type="application/ld+json"]'):
            try:
                data = json.loads(script.string or script.get_text() or "")
            except ValueError:
                continue
            for post in _walk_posts(data):
                draft = self._draft(post, page_url)
                if draft is not None:
                    drafts.append(draft)
                if len(drafts) >= self.max_articles:
                    return drafts
        return drafts

    def _draft(self, post: Dict[str, Any], page_url: str) -> Optional[Dict[str, Any]]:
        caption = next((clean_text(post[k]) for k in _CAPTION_KEYS if isinstance(post.get(k), str) and post[k].strip()), "")
        link = extractors.resolve_url(post["url"], page_url)
        if not caption or not link:
            return None
        published = None
        for key in _DATE_KEYS:
            if isinstance(post.get(key), str):
                published = extractors.parse_datetime(post[key])
                if published:
                    break
        return {
            "title": caption_title(caption),
            "body": caption,
            "images": self._images(post.get("image") or post.get("thumbnailUrl"), page_url),
            "published_at": published,
            "source_link": link,
        }

    def _images(self, raw: Any, page_url: str) -> List[str]:
        candidates: List[str] = []
        for item in raw if isinstance(raw, list) else [raw]:
            if isinstance(item, dict):
                item = item.get("url") or item.get("contentUrl")
            if isinstance(item, str):
                candidates.append(item)
        images: List[str] = []
        for src in candidates:
            absolute = extractors.resolve_url(src, page_url)
            if absolute and absolute not in images and is_instagram_image(absolute):
                images.append(absolute)
        return images
