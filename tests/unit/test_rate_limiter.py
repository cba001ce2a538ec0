"""
Tests for the in-memory subscription rate limiter.
"""

from __future__ import annotations

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.rate_limiter import InMemoryRateLimiter
from src.components.subscription.models import SubscriptionConfig


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def limiter(clock: FrozenClock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(
        max_requests=3, window_seconds=100, same_email_cooldown_seconds=10, clock=clock
    )


class TestWindow:
    def test_allows_up_to_max(self, limiter: InMemoryRateLimiter) -> None:
        remaining = [limiter.check("1.2.3.4").remaining for _ in range(3)]
        assert remaining == [2, 1, 0]

    def test_denies_over_max(self, limiter: InMemoryRateLimiter, clock: FrozenClock) -> None:
        for _ in range(3):
            limiter.check("1.2.3.4")
        clock.advance(40)

        decision = limiter.check("1.2.3.4")
        assert not decision.allowed
        assert decision.reason == "window"
        assert decision.retry_after_seconds == 60

    def test_keys_are_independent(self, limiter: InMemoryRateLimiter) -> None:
        for _ in range(3):
            limiter.check("1.2.3.4")
        assert limiter.check("5.6.7.8").allowed

    def test_window_resets(self, limiter: InMemoryRateLimiter, clock: FrozenClock) -> None:
        for _ in range(3):
            limiter.check("1.2.3.4")
        clock.advance(100)

        decision = limiter.check("1.2.3.4")
        assert decision.allowed
        assert decision.remaining == 2

    def test_denied_requests_do_not_count(
        self, limiter: InMemoryRateLimiter, clock: FrozenClock
    ) -> None:
        for _ in range(5):
            limiter.check("1.2.3.4")
        clock.advance(100)
        assert limiter.check("1.2.3.4").remaining == 2


class TestCooldown:
    def test_same_email_blocked(self, limiter: InMemoryRateLimiter, clock: FrozenClock) -> None:
        assert limiter.check("ip", email="a@example.com").allowed
        clock.advance(2.5)

        decision = limiter.check("ip", email="a@example.com")
        assert not decision.allowed
        assert decision.reason == "cooldown"
        assert decision.retry_after_seconds == 8

    def test_cooldown_expires(self, limiter: InMemoryRateLimiter, clock: FrozenClock) -> None:
        limiter.check("ip", email="a@example.com")
        clock.advance(10)
        assert limiter.check("ip", email="a@example.com").allowed

    def test_other_email_not_blocked(self, limiter: InMemoryRateLimiter) -> None:
        limiter.check("ip", email="a@example.com")
        assert limiter.check("ip", email="b@example.com").allowed

    def test_cooldown_does_not_consume_window(
        self, limiter: InMemoryRateLimiter
    ) -> None:
        limiter.check("ip", email="a@example.com")
        limiter.check("ip", email="a@example.com")  # cooldown
        assert limiter.check("ip", email="b@example.com").remaining == 1

    def test_zero_cooldown_disables(self, clock: FrozenClock) -> None:
        limiter = InMemoryRateLimiter(
            max_requests=3, window_seconds=100, same_email_cooldown_seconds=0, clock=clock
        )
        limiter.check("ip", email="a@example.com")
        assert limiter.check("ip", email="a@example.com").allowed


class TestHousekeeping:
    def test_prune_drops_expired(self, limiter: InMemoryRateLimiter, clock: FrozenClock) -> None:
        limiter.check("old")
        clock.advance(50)
        limiter.check("new")
        clock.advance(60)

        assert limiter.prune() == 1
        assert limiter.prune() == 0

    def test_reset(self, limiter: InMemoryRateLimiter) -> None:
        for _ in range(3):
            limiter.check("ip")
        limiter.reset()
        assert limiter.check("ip").allowed

    def test_check_sweeps_expired_keys(self, clock: FrozenClock) -> None:
        limiter = InMemoryRateLimiter(max_requests=5, window_seconds=600, clock=clock)
        for i in range(1000):
            limiter.check(f"10.0.{i // 256}.{i % 256}")
        clock.advance(3600)

        limiter.check("203.0.113.1")
        assert len(limiter._windows) == 1

    def test_sweep_keeps_live_windows(
        self, limiter: InMemoryRateLimiter, clock: FrozenClock
    ) -> None:
        limiter.check("old")
        clock.advance(150)  # Past one window, so the next check sweeps
        limiter.check("new")
        clock.advance(10)
        limiter.check("other")
        assert set(limiter._windows) == {"new", "other"}

    def test_sweep_keeps_running_cooldown(self, clock: FrozenClock) -> None:
        limiter = InMemoryRateLimiter(
            max_requests=5, window_seconds=10, same_email_cooldown_seconds=60, clock=clock
        )
        limiter.check("ip", email="a@example.com")
        clock.advance(30)
        limiter.check("elsewhere")

        decision = limiter.check("ip", email="a@example.com")
        assert decision.reason == "cooldown"
        assert decision.retry_after_seconds == 30


class TestFromConfig:
    def test_sized_from_subscription_config(self, clock: FrozenClock) -> None:
        config = SubscriptionConfig(
            rate_limit_max_requests=2,
            rate_limit_window_seconds=30,
            same_email_cooldown_seconds=5,
        )
        limiter = InMemoryRateLimiter.from_config(config, clock=clock)

        assert (limiter.max_requests, limiter.window_seconds) == (2, 30)
        assert limiter.same_email_cooldown_seconds == 5
        assert [limiter.check("ip").allowed for _ in range(3)] == [True, True, False]
