"""
Subscription component models.

Data models for e-mail subscription validation and management.

Validation outcome is a tagged union: Accepted | Rejected.
Subscription lifecycle:
- direct: active -> unsubscribed -> active (resubscribe)
- double opt-in: pending -> active (confirm) -> unsubscribed -> pending
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal
from uuid import UUID

# --- Validation Outcome ---


class RejectionReason(Enum):
    """Why a candidate address was rejected. Closed set."""

    EMPTY_OR_WRONG_TYPE = "empty_or_wrong_type"
    MISSING_OR_MULTIPLE_AT = "missing_or_multiple_at"
    EMPTY_LOCAL_OR_DOMAIN = "empty_local_or_domain"
    INVALID_LOCAL_PART = "invalid_local_part"
    INVALID_DOMAIN = "invalid_domain"
    INVALID_CHARACTERS = "invalid_characters"


@dataclass(frozen=True)
class Accepted:
    """Candidate is a usable address."""

    normalized: str  # Lowercase, trimmed
    is_valid: Literal[True] = field(default=True, init=False)


@dataclass(frozen=True)
class Rejected:
    """Candidate is not a usable address."""

    reason: RejectionReason
    is_valid: Literal[False] = field(default=False, init=False)


ValidationResult = Accepted | Rejected


# --- Entity ---


class SubscriptionStatus(Enum):
    """Stored subscription status."""

    PENDING = "pending"  # Awaiting confirmation (double opt-in)
    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"


@dataclass
class Subscription:
    """
    Row of the email_subscriptions table.

    `email` is always the normalized address and is unique.
    """

    id: UUID
    email: str
    unsubscribe_token: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    source: str = "web"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    unsubscribed_at: datetime | None = None
    confirmation_token: str | None = None
    confirmation_expires_at: datetime | None = None


# --- Input Models ---


@dataclass(frozen=True)
class SubscribeInput:
    """Input for a new subscription."""

    email: object  # Untrusted, straight from the request body
    ip_address: str | None = None  # For rate limiting
    source: str = "web"  # e.g. "hero", "footer", "newsletter-kit"


@dataclass(frozen=True)
class UnsubscribeInput:
    """Input for unsubscribing, by address or by token."""

    email: object = None
    token: str | None = None


@dataclass(frozen=True)
class CountInput:
    """Input for the active subscriber count."""


@dataclass(frozen=True)
class ConfirmInput:
    """Input for confirming a pending subscription."""

    token: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class SubscriptionError:
    """Error detail returned to the API layer."""

    code: str
    message: str
    field: str | None = None
    reason: RejectionReason | None = None


@dataclass(frozen=True)
class SubscribeOutput:
    """Output from a subscription attempt."""

    success: bool
    subscription_id: UUID | None = None
    normalized_email: str | None = None
    already_subscribed: bool = False
    needs_confirmation: bool = False
    errors: list[SubscriptionError] = field(default_factory=list)
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class UnsubscribeOutput:
    """Output from an unsubscribe attempt."""

    success: bool
    already_unsubscribed: bool = False
    errors: list[SubscriptionError] = field(default_factory=list)


@dataclass(frozen=True)
class ConfirmOutput:
    """Output from a confirmation attempt."""

    success: bool
    subscription_id: UUID | None = None
    already_confirmed: bool = False
    errors: list[SubscriptionError] = field(default_factory=list)


@dataclass(frozen=True)
class CountOutput:
    """Active subscriber count."""

    count: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    retry_after_seconds: int = 0
    reason: str | None = None  # "window" or "cooldown" when denied


# --- Configuration ---


@dataclass(frozen=True)
class SubscriptionConfig:
    """Subscription policy configuration."""

    max_email_length: int = 254
    blocked_domains: frozenset[str] = frozenset()
    allowed_domains: frozenset[str] = frozenset()  # Empty means any domain
    rate_limit_max_requests: int = 5
    rate_limit_window_seconds: int = 600
    same_email_cooldown_seconds: int = 60
    site_name: str = "Silksong"
    double_opt_in: bool = False
    confirmation_token_expiry_hours: int = 48
    base_url: str = "http://localhost:8000"
    confirmation_path: str = "/api/subscribe/confirm"


# --- Error Types ---


class SubscriptionRepoError(Exception):
    """Base error raised by subscription repositories."""

    pass


class DuplicateSubscriptionError(SubscriptionRepoError):
    """Insert collided with the unique constraint on email."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("Subscription already exists for this address")
