"""
Subscription component ports.

Protocol interfaces for subscription service dependencies.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.components.subscription.models import (
    RateLimitDecision,
    Subscription,
    SubscriptionStatus,
)


class SubscriptionRepoPort(Protocol):
    """
    Subscription repository interface.

    Abstracts the hosted email_subscriptions table. Implementations must
    enforce uniqueness on the normalized address.
    """

    def get_by_email(self, email: str) -> Subscription | None:
        """Get subscription by normalized address."""
        ...

    def get_by_unsubscribe_token(self, token: str) -> Subscription | None:
        """Get subscription by unsubscribe token."""
        ...

    def get_by_confirmation_token(self, token: str) -> Subscription | None:
        """Get subscription by confirmation token."""
        ...

    def insert(self, subscription: Subscription) -> Subscription:
        """
        Insert a new subscription.

        Raises:
            DuplicateSubscriptionError: address already stored
        """
        ...

    def save(self, subscription: Subscription) -> Subscription:
        """Update an existing subscription."""
        ...

    def count_by_status(self, status: SubscriptionStatus) -> int:
        """Count subscriptions by status."""
        ...


class RateLimiterPort(Protocol):
    """
    Rate limiter interface for subscription attempts.

    Tracks attempts per key (client IP) and repeat submissions of the
    same address.
    """

    def check(self, key: str, email: str | None = None) -> RateLimitDecision:
        """
        Check and record an attempt.

        Args:
            key: Rate limit key (e.g., IP address)
            email: Normalized address being submitted, if any

        Returns:
            RateLimitDecision; denied attempts are not counted
        """
        ...


class ConfirmationSenderPort(Protocol):
    """Delivers the double opt-in confirmation link."""

    def send_confirmation(self, email: str, confirm_url: str, site_name: str) -> None:
        """Send the confirmation link to a pending subscriber."""
        ...

class ClockPort(Protocol):
    """Time source for rate limit windows and cooldowns."""

    def now_utc(self) -> datetime:
        """Current time, timezone-aware UTC."""
        ...
