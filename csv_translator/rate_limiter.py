"""
Pacing between DeepL calls.

The loop calls ``wait()`` after every translate request. FixedDelay sleeps a
fixed interval every time; TokenBucket only blocks once the burst is spent.
"""
import time
from typing import Any, Dict, Optional

DEFAULT_DELAY_S = 0.5


class RateLimiter:
    """Base pacer: never waits."""

    def wait(self) -> None:
        return None


class FixedDelay(RateLimiter):
    """Unconditional sleep after each call."""

    def __init__(self, delay_s: float = DEFAULT_DELAY_S):
        if delay_s < 0:
            raise ValueError(f"delay must be >= 0, got {delay_s}")
        self.delay_s = delay_s

    def wait(self) -> None:
        if self.delay_s > 0:
            time.sleep(self.delay_s)


class TokenBucket(RateLimiter):
    """Allow ``rate_per_s`` calls per second with bursts of up to ``burst``."""

    def __init__(self, rate_per_s: float, burst: int = 1):
        if rate_per_s <= 0:
            raise ValueError(f"rate must be > 0, got {rate_per_s}")
        self.capacity = max(1, int(burst))
        self.fill_rate = float(rate_per_s)
        self.tokens = float(self.capacity)
        self.last = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last
        self.last = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.fill_rate)

    def wait(self) -> None:
        self._refill()
        if self.tokens < 1.0:
            time.sleep((1.0 - self.tokens) / self.fill_rate)
            self._refill()
        self.tokens = max(0.0, self.tokens - 1.0)


def build_rate_limiter(settings: Optional[Dict[str, Any]] = None) -> RateLimiter:
    """
    Build a limiter from the ``rate_limit`` config section.

    policy: fixed (default) | token_bucket | none
    """
    settings = settings or {}
    policy = (settings.get("policy") or "fixed").strip().lower()
    if policy == "fixed":
        return FixedDelay(float(settings.get("delay_s", DEFAULT_DELAY_S)))
    if policy == "token_bucket":
        rate = settings.get("rate_per_s")
        if rate is None:
            raise ValueError("rate_limit.rate_per_s is required for token_bucket")
        return TokenBucket(float(rate), int(settings.get("burst", 1)))
    if policy == "none":
        return RateLimiter()
    raise ValueError(f"Unknown rate_limit policy: {policy}")
