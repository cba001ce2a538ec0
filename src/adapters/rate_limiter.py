"""
In-memory rate limiter for subscription attempts.

Fixed window per key (client IP) plus a cooldown on resubmitting the
same address from the same key. State lives in process memory; a
multi-instance deployment needs a shared store instead. Expired windows
are swept from inside check(), at most once per window length.

Implements RateLimiterPort.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass

from src.adapters.clock import SystemClock
from src.components.subscription.models import RateLimitDecision, SubscriptionConfig
from src.components.subscription.ports import ClockPort

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float
    last_email: str | None = None
    last_email_at: float | None = None


class InMemoryRateLimiter:
    """Per-key fixed window rate limiter."""

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: int = 600,
        same_email_cooldown_seconds: int = 60,
        clock: ClockPort | None = None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.same_email_cooldown_seconds = same_email_cooldown_seconds
        self._clock = clock or SystemClock()
        self._windows: dict[str, _Window] = {}
        self._next_sweep_at = 0.0
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: SubscriptionConfig, clock: ClockPort | None = None
    ) -> InMemoryRateLimiter:
        return cls(
            max_requests=config.rate_limit_max_requests,
            window_seconds=config.rate_limit_window_seconds,
            same_email_cooldown_seconds=config.same_email_cooldown_seconds,
            clock=clock,
        )

    def _now(self) -> float:
        return self._clock.now_utc().timestamp()

    def check(self, key: str, email: str | None = None) -> RateLimitDecision:
        now = self._now()
        with self._lock:
            if now >= self._next_sweep_at:
                self._sweep(now)
            window = self._windows.get(key)

            if (
                window is not None
                and email is not None
                and window.last_email == email
                and window.last_email_at is not None
                and now - window.last_email_at < self.same_email_cooldown_seconds
            ):
                retry = window.last_email_at + self.same_email_cooldown_seconds - now
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    retry_after_seconds=math.ceil(retry),
                    reason="cooldown",
                )

            if window is None or now >= window.reset_at:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[key] = window

            if window.count >= self.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    retry_after_seconds=math.ceil(window.reset_at - now),
                    reason="window",
                )

            window.count += 1
            if email is not None:
                window.last_email = email
                window.last_email_at = now

            return RateLimitDecision(allowed=True, remaining=self.max_requests - window.count)

    def _is_stale(self, window: _Window, now: float) -> bool:
        if now < window.reset_at:
            return False
        return (
            window.last_email_at is None
            or now - window.last_email_at >= self.same_email_cooldown_seconds
        )

    def _sweep(self, now: float) -> int:
        # Caller holds the lock. Runs at most once per window length.
        expired = [k for k, w in self._windows.items() if self._is_stale(w, now)]
        for k in expired:
            del self._windows[k]
        self._next_sweep_at = now + self.window_seconds
        if expired:
            logger.debug("Pruned %d expired rate limit windows", len(expired))
        return len(expired)

    def prune(self) -> int:
        """Drop expired windows now. Returns number removed."""
        with self._lock:
            return self._sweep(self._now())

    def reset(self) -> None:
        """Forget all tracked keys."""
        with self._lock:
            self._windows.clear()
