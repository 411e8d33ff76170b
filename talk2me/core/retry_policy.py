"""Backoff Policy — bounded retry decisions shared by every ledger read site.

Invariants:
    - At most max_retries retries after the first attempt (total attempts = max_retries + 1)
    - Only errors whose type is in retry_on are retried; everything else propagates
    - delay_ms() is fixed when multiplier == 1.0, exponential otherwise, capped at max_delay_ms
    - A server-provided retry_after_ms overrides the computed delay

Design Decisions:
    - Policy as data + pure decisions; the async runner (services) owns sleeping,
      so the same policy drives tests without real delays
    - ±jitter only when requested: rate-limit retries use a fixed delay by default
"""

import random
from dataclasses import dataclass

from talk2me.core.errors import RateLimitedError, Talk2MeError


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded retry with fixed or exponential delay."""
    max_retries: int = 1
    base_delay_ms: int = 2_000
    multiplier: float = 1.0
    max_delay_ms: int = 60_000
    jitter: float = 0.0
    retry_on: tuple[type[Talk2MeError], ...] = (RateLimitedError,)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """attempt is 0-based: the attempt that just failed."""
        return attempt < self.max_retries and isinstance(error, self.retry_on)

    def delay_ms(self, attempt: int, error: Exception | None = None) -> int:
        retry_after = getattr(getattr(error, "context", None), "retry_after_ms", None)
        if retry_after:
            return min(self.max_delay_ms, retry_after)
        delay = min(self.max_delay_ms, self.base_delay_ms * (self.multiplier ** attempt))
        if self.jitter:
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)  # nosec B311
        return int(delay)


def rate_limit_policy(delay_ms: int = 2_000, max_retries: int = 1) -> BackoffPolicy:
    """Single retry after a fixed delay — the default for throttled reads."""
    return BackoffPolicy(max_retries=max_retries, base_delay_ms=delay_ms)
