import time
import random
from typing import Optional


class SimpleRateLimiter:
    """Spaces outbound calls at least 1/requests_per_sec apart."""

    def __init__(self, requests_per_sec: float) -> None:
        if requests_per_sec <= 0:
            raise ValueError("requests_per_sec must be > 0")
        self._min_interval = 1.0 / requests_per_sec
        self._last_call = 0.0

    def wait(self) -> None:
        sleep_for = self._min_interval - (time.monotonic() - self._last_call)
        if sleep_for > 0:
            time.sleep(sleep_for)
        self._last_call = time.monotonic()


def backoff_delay(attempt: int, base: float = 0.5, cap: float = 8.0) -> float:
    t = min(cap, base * (2 ** attempt))
    return t * (0.7 + random.random() * 0.6)


def backoff_sleep(attempt: int, retry_after: Optional[float] = None) -> None:
    # server hint wins over our own schedule
    if retry_after is not None and retry_after > 0:
        time.sleep(retry_after)
        return
    time.sleep(backoff_delay(attempt))
