"""YouTube search adapter reading the embedded `ytInitialData` payload."""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from ingestion.utils.logging import get_logger

from . import extractors
from .base import BaseSourceAdapter, ConnectorError

logger = get_logger(__name__)

YOUTUBE_BASE_URL = "https://www.youtube.com"
VIDEOS_PER_QUERY = 3
_INITIAL_DATA_MARKERS = ("var ytInitialData =", 'window["ytInitialData"] =')
_RELATIVE_RE = re.compile(r"(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE)
_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
    "year": 365 * 86400,
}


def search_url(query: str) -> str:
    # sp=CAI%253D: 업로드 날짜순 정렬
    return f"{YOUTUBE_BASE_URL}/results?search_query={quote_plus(query)}&sp=CAI%253D"


def watch_url(video_id: str) -> str:
    return f"{YOUTUBE_BASE_URL}/watch?v={video_id}"


def parse_published(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """'3 hours ago' / 'Streamed 2 days ago' → aware UTC datetime, else dateutil."""
    if not text:
        return None
    match = _RELATIVE_RE.search(text)
    if match:
        now = now or datetime.now(timezone.utc)
        return now - timedelta(seconds=int(match.group(1)) * _UNIT_SECONDS[match.group(2).lower()])
    return extractors.parse_datetime(text)


def extract_initial_data(html: str) -> Optional[Dict[str, Any]]:
    """Decode the JSON object assigned to ytInitialData, if present."""
    soup = BeautifulSoup(html, "html.parser")
    decoder = json.JSONDecoder()
    for script in soup.find_all("script"):
        content = script.string or script.get_text() or ""
        for marker in _INITIAL_DATA_MARKERS:
            idx = content.find(marker)
            if idx < 0:
                continue
            start = content.find("{", idx + len(marker))
            if start < 0:
                continue
            try:
                data, _ = decoder.raw_decode(content, start)
            except ValueError:
                continue
            if isinstance(data, dict):
                return data
    return None


def _text(node: Any) -> str:
    if not isinstance(node, dict):
        return ""
    runs = node.get("runs")
    if isinstance(runs, list) and runs and isinstance(runs[0], dict):
        return str(runs[0].get("text") or "")
    return str(node.get("simpleText") or "")


def extract_videos(data: Dict[str, Any]) -> List[Dict[str, str]]:
    sections = (
        data.get("contents", {})
        .get("twoColumnSearchResultsRenderer", {})
        .get("primaryContents", {})
        .get("sectionListRenderer", {})
        .get("contents", [])
    )
    videos: List[Dict[str, str]] = []
    for section in sections if isinstance(sections, list) else []:
        items = (section or {}).get("itemSectionRenderer", {}).get("contents", [])
        for item in items if isinstance(items, list) else []:
            renderer = (item or {}).get("videoRenderer")
            if not isinstance(renderer, dict) or not renderer.get("videoId"):
                continue
            thumbnails = renderer.get("thumbnail", {}).get("thumbnails") or [{}]
            videos.append(
                {
                    "video_id": str(renderer["videoId"]),
                    "title": _text(renderer.get("title")),
                    "description": _text(renderer.get("descriptionSnippet")),
                    "thumbnail": str(thumbnails[0].get("url") or ""),
                    "published": _text(renderer.get("publishedTimeText")),
                }
            )
    return videos


class YouTubeSearchAdapter(BaseSourceAdapter):
    """Most recent videos per search query, linked by their watch URL."""

    def __init__(self, name: str, queries: Sequence[str], **kwargs: Any) -> None:
        kwargs.setdefault("max_articles", VIDEOS_PER_QUERY)
        super().__init__(**kwargs)
        self.name = name
        self.queries = [q for q in queries if q.strip()]

    def _collect(self, errors: List[str]) -> List[Dict[str, Any]]:
        drafts: List[Dict[str, Any]] = []
        failures = 0
        for query in self.queries:
            try:
                html = self.fetch_document(search_url(query))
            except ConnectorError as exc:
                failures += 1
                errors.append(f"'{query}' 검색 실패: {exc}")
                continue
            data = extract_initial_data(html)
            if data is None:
                errors.append(f"'{query}': ytInitialData 없음")
                continue
            videos = extract_videos(data)[: self.max_articles]
            if not videos:
                logger.warning("adapter.youtube_no_videos", extra={"source": self.name, "query": query})
            drafts.extend(self._draft(video) for video in videos)
        if self.queries and failures == len(self.queries):
            raise ConnectorError(f"{self.name}: 모든 검색어 수집 실패")
        return drafts

    def _draft(self, video: Dict[str, str]) -> Dict[str, Any]:
        thumbnail = extractors.resolve_url(video["thumbnail"], YOUTUBE_BASE_URL) if video["thumbnail"] else None
        return {
            "title": video["title"],
            "body": video["description"] or video["title"],
            "images": [thumbnail] if thumbnail else [],
            "published_at": parse_published(video["published"]),
            "source_link": watch_url(video["video_id"]),
        }
