from __future__ import annotations

import math
import threading
import time
from typing import Any, Dict, List

import pytest

from ingestion.services.geocoder import GeocodingError, LocationResolver, qualify_location
from ingestion.services.rate_limiter import MinIntervalRateLimiter, get_rate_limiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedSearch:
    def __init__(self, outcomes: List[Any]) -> None:
        self.outcomes = list(outcomes)
        self.queries: List[str] = []

    def __call__(self, query: str) -> List[Dict[str, Any]]:
        self.queries.append(query)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


MALL_ROAD = [{"lat": "29.5973", "lon": "79.6586", "display_name": "Mall Road, Almora, Uttarakhand, India"}]


def _resolver(make_settings, search, **overrides) -> tuple[LocationResolver, List[float]]:
    delays: List[float] = []
    settings = make_settings(geocoder_retry_base_delay_seconds=1.0, **overrides)
    limiter = MinIntervalRateLimiter(0.0)
    return LocationResolver(settings, rate_limiter=limiter, search=search, sleep=delays.append), delays


def test_qualify_location_appends_region_once():
    assert qualify_location("Mall Road", "almora", "Almora, Uttarakhand, India") == "Mall Road, Almora, Uttarakhand, India"
    assert qualify_location("Near ALMORA bus stand", "almora", "Almora, Uttarakhand, India") == "Near ALMORA bus stand"
    assert qualify_location("   ", "almora", "Almora, Uttarakhand, India") == ""


def test_resolves_first_match(make_settings):
    search = ScriptedSearch([MALL_ROAD])
    resolver, _ = _resolver(make_settings, search)

    loc = resolver.resolve("Mall Road")

    assert loc.success is True
    assert (loc.latitude, loc.longitude) == (29.5973, 79.6586)
    assert loc.display_name.startswith("Mall Road")
    assert search.queries == ["Mall Road, Almora, Uttarakhand, India"]


@pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
def test_empty_input_falls_back_without_call(make_settings, text):
    search = ScriptedSearch([])
    resolver, _ = _resolver(make_settings, search)

    loc = resolver.resolve(text)

    assert loc.success is False
    assert (loc.latitude, loc.longitude) == (29.5971, 79.659)
    assert search.queries == []


def test_no_results_falls_back(make_settings):
    resolver, _ = _resolver(make_settings, ScriptedSearch([[]]))

    loc = resolver.resolve("Unknown Place, Almora")

    assert loc.success is False
    assert (loc.latitude, loc.longitude) == (29.5971, 79.659)


@pytest.mark.parametrize(
    "match",
    [
        {"lat": "95.0", "lon": "79.6"},
        {"lat": "29.5", "lon": "-181"},
        {"lat": "nan", "lon": "79.6"},
        {"lat": "inf", "lon": "79.6"},
        {"lat": "abc", "lon": "79.6"},
        {"lon": "79.6"},
    ],
)
def test_invalid_coordinates_fall_back(make_settings, match):
    resolver, _ = _resolver(make_settings, ScriptedSearch([[match]]))

    loc = resolver.resolve("Somewhere")

    assert loc.success is False
    assert math.isfinite(loc.latitude) and -90 <= loc.latitude <= 90
    assert math.isfinite(loc.longitude) and -180 <= loc.longitude <= 180


@pytest.mark.parametrize("failures", [1, 2, 3])
def test_transient_failures_retried_until_success(make_settings, failures):
    search = ScriptedSearch([GeocodingError("HTTP 503")] * failures + [MALL_ROAD])
    resolver, delays = _resolver(make_settings, search)

    loc = resolver.resolve("Mall Road")

    assert loc.success is True
    assert len(search.queries) == failures + 1
    assert delays == [1.0 * (2 ** i) for i in range(failures)]


def test_retries_exhausted_falls_back(make_settings):
    search = ScriptedSearch([GeocodingError("HTTP 500")] * 4)
    resolver, delays = _resolver(make_settings, search)

    loc = resolver.resolve("Mall Road")

    assert loc.success is False
    assert len(search.queries) == 4
    assert delays == [1.0, 2.0, 4.0]


def test_unexpected_error_never_escapes(make_settings):
    resolver, _ = _resolver(make_settings, ScriptedSearch([KeyError("boom")]))

    loc = resolver.resolve("Mall Road")

    assert loc.success is False


def test_rate_limiter_spaces_calls():
    clock = FakeClock()
    limiter = MinIntervalRateLimiter(1.0, clock=clock, sleep=clock.sleep)

    assert limiter.acquire() == 0.0
    clock.now += 0.25
    assert limiter.acquire() == pytest.approx(0.75)
    assert limiter.acquire() == pytest.approx(1.0)
    clock.now += 5
    assert limiter.acquire() == 0.0


def test_rate_limiter_shared_across_threads():
    limiter = MinIntervalRateLimiter(0.05)
    stamps: List[float] = []
    lock = threading.Lock()

    def worker() -> None:
        limiter.acquire()
        with lock:
            stamps.append(time.monotonic())

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stamps.sort()
    gaps = [b - a for a, b in zip(stamps, stamps[1:])]
    assert all(gap >= 0.04 for gap in gaps)


def test_shared_limiter_is_one_per_name():
    first = get_rate_limiter("geocoder", 1.0)

    assert get_rate_limiter("geocoder", 1.0) is first
    assert get_rate_limiter("other", 0.5) is not first
    with pytest.raises(ValueError):
        get_rate_limiter("geocoder", 0.1)
    assert get_rate_limiter("geocoder", 1.0) is first


def test_resolvers_built_from_settings_share_the_limiter(make_settings):
    a = LocationResolver(make_settings(), search=ScriptedSearch([]))
    b = LocationResolver(make_settings(), search=ScriptedSearch([]))

    assert a.rate_limiter is b.rate_limiter
    with pytest.raises(ValueError):
        LocationResolver(make_settings(geocoder_min_interval_seconds=2.0), search=ScriptedSearch([]))
