"""Ordered extraction strategies for HTML pages.

Every field (title, body, images, publish time, article links) is read by a
list of strategies tried in order; the first one returning a non-empty value
wins. Strategies are plain callables `(soup, page_url) -> value | None` so
each one can be tested on its own.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, TypeVar
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag
from dateutil import parser as date_parser

from ingestion.utils.text import clean_inline, clean_text

T = TypeVar("T")
Strategy = Callable[[BeautifulSoup, str], Optional[T]]


DEFAULT_TITLE_SELECTORS = [
    "h1.entry-title",
    "h1.post-title",
    "h1.article-title",
    'h1[itemprop="headline"]',
    "article h1",
    ".post-header h1",
    "h1",
]
DEFAULT_BODY_SELECTORS = [
    ".entry-content",
    ".post-content",
    ".article-content",
    '[itemprop="articleBody"]',
    "article .content",
    ".post-body",
    "article p",
]
DEFAULT_IMAGE_SELECTORS = [
    'meta[property="og:image"]',
    "article img",
    ".entry-content img",
    ".post-content img",
    ".featured-image img",
    '[itemprop="image"]',
    "figure img",
]
DEFAULT_DATE_SELECTORS = [
    'meta[property="article:published_time"]',
    "time[datetime]",
    '[itemprop="datePublished"]',
    ".entry-date",
    ".post-date",
    ".published",
]
DEFAULT_LINK_SELECTORS = ["article a", ".post a", ".news-item a", "h2 a", "h3 a"]

INVALID_LINK_PATTERNS = (
    "/author/",
    "/category/",
    "/tag/",
    "/page/",
    "/about",
    "/contact",
    "#",
    "javascript:",
    "mailto:",
)
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")
_IMAGE_ATTRS = ("src", "data-src", "data-lazy-src", "content")


def first_match(strategies: Sequence[Strategy[T]], soup: BeautifulSoup, page_url: str) -> Optional[T]:
    for strategy in strategies:
        value = strategy(soup, page_url)
        if value:
            return value
    return None


def parse_datetime(value: str | None) -> Optional[datetime]:
    """Parse a free-form date string into an aware UTC datetime."""
    if not value or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_url(href: str, base_url: str) -> Optional[str]:
    """Absolute http(s) URL for href relative to base_url, or None."""
    try:
        absolute = urljoin(base_url, href.strip())
    except ValueError:
        return None
    parsed = urlparse(absolute)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute


def is_article_link(href: str) -> bool:
    lowered = href.lower()
    return not any(pattern in lowered for pattern in INVALID_LINK_PATTERNS)


def is_image_url(url: str) -> bool:
    path = urlparse(url).path.lower()
    return any(ext in path for ext in IMAGE_EXTENSIONS)


# ---- strategy factories -------------------------------------------------


def text_of(selector: str) -> Strategy[str]:
    def _strategy(soup: BeautifulSoup, _page_url: str) -> Optional[str]:
        element = soup.select_one(selector)
        if element is None:
            return None
        return clean_inline(element.get_text(" ", strip=True)) or None

    return _strategy


def joined_text_of(selector: str) -> Strategy[str]:
    """All matches of selector joined as paragraphs."""

    def _strategy(soup: BeautifulSoup, _page_url: str) -> Optional[str]:
        parts = [clean_text(el.get_text("\n", strip=True)) for el in soup.select(selector)]
        body = "\n\n".join(p for p in parts if p)
        return body or None

    return _strategy


def images_of(selector: str) -> Strategy[List[str]]:
    def _strategy(soup: BeautifulSoup, page_url: str) -> Optional[List[str]]:
        images: List[str] = []
        for element in soup.select(selector):
            src = _image_source(element)
            if not src:
                continue
            absolute = resolve_url(src, page_url)
            if absolute and absolute not in images and is_image_url(absolute):
                images.append(absolute)
        return images or None

    return _strategy


def datetime_of(selector: str) -> Strategy[datetime]:
    def _strategy(soup: BeautifulSoup, _page_url: str) -> Optional[datetime]:
        element = soup.select_one(selector)
        if element is None:
            return None
        for attr in ("datetime", "content", "data-utime"):
            raw = element.get(attr)
            if raw:
                if attr == "data-utime" and str(raw).isdigit():
                    return datetime.fromtimestamp(int(raw), tz=timezone.utc)
                parsed = parse_datetime(str(raw))
                if parsed:
                    return parsed
        return parse_datetime(element.get_text(" ", strip=True))

    return _strategy


def links_of(selector: str) -> Strategy[List[str]]:
    def _strategy(soup: BeautifulSoup, page_url: str) -> Optional[List[str]]:
        links: List[str] = []
        for element in soup.select(selector):
            href = element.get("href")
            if not href or not is_article_link(href):
                continue
            absolute = resolve_url(href, page_url)
            if absolute and absolute != page_url and absolute not in links:
                links.append(absolute)
        return links or None

    return _strategy


def _image_source(element: Tag) -> Optional[str]:
    for attr in _IMAGE_ATTRS:
        value = element.get(attr)
        if value:
            return str(value)
    return None


# ---- strategy lists -----------------------------------------------------


def title_strategies(selectors: Sequence[str] | None = None) -> List[Strategy[str]]:
    return [text_of(s) for s in (selectors or DEFAULT_TITLE_SELECTORS)]


def body_strategies(selectors: Sequence[str] | None = None) -> List[Strategy[str]]:
    return [joined_text_of(s) for s in (selectors or DEFAULT_BODY_SELECTORS)]


def image_strategies(selectors: Sequence[str] | None = None) -> List[Strategy[List[str]]]:
    return [images_of(s) for s in (selectors or DEFAULT_IMAGE_SELECTORS)]


def date_strategies(selectors: Sequence[str] | None = None) -> List[Strategy[datetime]]:
    return [datetime_of(s) for s in (selectors or DEFAULT_DATE_SELECTORS)]


def link_strategies(selectors: Sequence[str] | None = None) -> List[Strategy[List[str]]]:
    return [links_of(s) for s in (selectors or DEFAULT_LINK_SELECTORS)]
