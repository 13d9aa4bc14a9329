"""Process-wide minimum spacing between outbound calls."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict

from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


class MinIntervalRateLimiter:
    """Serializes callers so consecutive calls are at least `min_interval` apart.

    The sleep happens while holding the lock, so waiting callers queue up in
    arrival order and the spacing holds across threads.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval은 0 이상이어야 합니다.")
        self.min_interval = float(min_interval)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: float | None = None

    def acquire(self) -> float:
        """Block until a call is allowed; return the time waited."""
        with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_call is not None:
                wait = self._last_call + self.min_interval - now
                if wait > 0:
                    self._sleep(wait)
                    waited = wait
                    now = self._clock()
            self._last_call = now
            return waited


_LIMITERS: Dict[str, MinIntervalRateLimiter] = {}
_LIMITERS_LOCK = threading.Lock()


def get_rate_limiter(name: str, min_interval: float) -> MinIntervalRateLimiter:
    """Shared limiter per external dependency name.

    The first caller fixes the interval; asking for the same name with a
    different interval is a configuration error.
    """
    with _LIMITERS_LOCK:
        limiter = _LIMITERS.get(name)
        if limiter is None:
            limiter = MinIntervalRateLimiter(min_interval)
            _LIMITERS[name] = limiter
        elif limiter.min_interval != float(min_interval):
            raise ValueError(
                f"{name} rate limiter는 이미 {limiter.min_interval}s 간격으로 생성되었습니다 (요청: {min_interval}s)"
            )
        return limiter


def reset_rate_limiters() -> None:
    """테스트 용도."""
    with _LIMITERS_LOCK:
        _LIMITERS.clear()
