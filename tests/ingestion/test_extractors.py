from __future__ import annotations

from datetime import datetime, timezone

from bs4 import BeautifulSoup

from ingestion.connectors import extractors


PAGE_URL = "https://news.example/almora/section"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def test_first_match_takes_first_non_empty_strategy():
    calls = []

    def empty(_soup, _url):
        calls.append("empty")
        return None

    def hit(_soup, _url):
        calls.append("hit")
        return "value"

    def never(_soup, _url):  # pragma: no cover - must not run
        calls.append("never")
        return "other"

    assert extractors.first_match([empty, hit, never], _soup("<p></p>"), PAGE_URL) == "value"
    assert calls == ["empty", "hit"]


def test_title_strategies_prefer_specific_selector():
    soup = _soup("<h1>Site name</h1><h1 class='entry-title'>  Landslide   on Mall Road </h1>")
    title = extractors.first_match(extractors.title_strategies(), soup, PAGE_URL)
    assert title == "Landslide on Mall Road"


def test_body_joins_paragraphs():
    soup = _soup("<article><p>First para.</p><p>Second   para.</p></article>")
    body = extractors.first_match(extractors.body_strategies(["article p"]), soup, PAGE_URL)
    assert body == "First para.\n\nSecond para."


def test_images_resolve_relative_and_skip_non_images():
    soup = _soup(
        "<article>"
        "<img src='/media/a.jpg'><img data-src='https://cdn.example/b.png?w=300'>"
        "<img src='/pixel.gif.php'><img src='/tracker'>"
        "<img src='/media/a.jpg'>"
        "</article>"
    )
    images = extractors.first_match(extractors.image_strategies(["article img"]), soup, PAGE_URL)
    assert images == [
        "https://news.example/media/a.jpg",
        "https://cdn.example/b.png?w=300",
        "https://news.example/pixel.gif.php",
    ]


def test_og_image_wins_over_inline_images():
    soup = _soup(
        "<head><meta property='og:image' content='https://cdn.example/hero.jpg'></head>"
        "<article><img src='/inline.jpg'></article>"
    )
    images = extractors.first_match(extractors.image_strategies(), soup, PAGE_URL)
    assert images == ["https://cdn.example/hero.jpg"]


def test_date_strategies_parse_meta_and_epoch():
    soup = _soup("<meta property='article:published_time' content='2025-03-01T10:30:00+05:30'>")
    parsed = extractors.first_match(extractors.date_strategies(), soup, PAGE_URL)
    assert parsed == datetime(2025, 3, 1, 5, 0, tzinfo=timezone.utc)

    epoch = _soup("<abbr data-utime='1700000000'>yesterday</abbr>")
    parsed = extractors.first_match(extractors.date_strategies(["abbr[data-utime]"]), epoch, PAGE_URL)
    assert parsed == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_parse_datetime_handles_garbage():
    assert extractors.parse_datetime("not a date at all") is None
    assert extractors.parse_datetime("   ") is None
    assert extractors.parse_datetime(None) is None
    naive = extractors.parse_datetime("2025-01-02 03:04:05")
    assert naive is not None and naive.tzinfo is not None


def test_links_filter_navigation_and_duplicates():
    soup = _soup(
        "<article>"
        "<a href='/story/1'>one</a>"
        "<a href='/story/1'>dup</a>"
        "<a href='/category/local'>cat</a>"
        "<a href='/author/ram'>author</a>"
        "<a href='#top'>top</a>"
        "<a href='javascript:void(0)'>js</a>"
        "<a href='mailto:desk@news.example'>mail</a>"
        "<a href='https://other.example/story/2'>two</a>"
        "<a href='/almora/section'>self</a>"
        "</article>"
    )
    links = extractors.first_match(extractors.link_strategies(["article a"]), soup, PAGE_URL)
    assert links == ["https://news.example/story/1", "https://other.example/story/2"]


def test_resolve_url_rejects_non_http():
    assert extractors.resolve_url("ftp://x.example/a", PAGE_URL) is None
    assert extractors.resolve_url("../b", PAGE_URL) == "https://news.example/b"
