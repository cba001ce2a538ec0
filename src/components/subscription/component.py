"""
Subscription component.

Functional core for newsletter e-mail subscriptions.

Key behaviors:
- validate(): total, pure classification of an untrusted candidate
- Canonical form is trimmed + lowercased, used for storage and dedupe
- Policy checks (length, domain allow/block lists) after validation
- Rate limiting per client IP with same-address cooldown
- Duplicate submissions never create a second row
- Optional double opt-in: new rows stay pending until the emailed link
  is followed (confirmation links expire, 48h by default)

validate() never raises; every input yields Accepted or Rejected.
"""

from __future__ import annotations

import logging
import re
import secrets
import unicodedata
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode
from uuid import uuid4

from src.components.subscription.models import (
    Accepted,
    ConfirmInput,
    ConfirmOutput,
    CountInput,
    CountOutput,
    DuplicateSubscriptionError,
    Rejected,
    RejectionReason,
    SubscribeInput,
    SubscribeOutput,
    Subscription,
    SubscriptionConfig,
    SubscriptionError,
    SubscriptionStatus,
    UnsubscribeInput,
    UnsubscribeOutput,
    ValidationResult,
)
from src.components.subscription.ports import (
    ConfirmationSenderPort,
    RateLimiterPort,
    SubscriptionRepoPort,
)

logger = logging.getLogger(__name__)

# 32 lowercase hex characters
CONFIRMATION_TOKEN_RE = re.compile(r"^[0-9a-f]{32}$")

# User-facing text per rejection reason
REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.EMPTY_OR_WRONG_TYPE: "Email address is required",
    RejectionReason.MISSING_OR_MULTIPLE_AT: "Email address must contain a single @",
    RejectionReason.EMPTY_LOCAL_OR_DOMAIN: "Email address is incomplete",
    RejectionReason.INVALID_LOCAL_PART: "Email address has misplaced dots before the @",
    RejectionReason.INVALID_DOMAIN: "Email domain is not valid",
    RejectionReason.INVALID_CHARACTERS: "Email address contains invalid characters",
}


# --- Pure Functions (Functional Core) ---


def _has_forbidden_chars(part: str) -> bool:
    return any(ch.isspace() or unicodedata.category(ch) == "Cc" for ch in part)


def _is_valid_domain(domain: str) -> bool:
    labels = domain.split(".")
    if len(labels) < 2 or not all(labels):
        return False
    tld = labels[-1]
    return len(tld) >= 2 and tld.isalpha()


def validate(candidate: object) -> ValidationResult:
    """
    Classify a candidate as a usable e-mail address.

    Checks run in a fixed order and the first failure decides the reason.

    Args:
        candidate: Any value, typically a field from a JSON request body

    Returns:
        Accepted with the normalized address, or Rejected with the reason
    """
    if not isinstance(candidate, str) or not candidate.strip():
        return Rejected(RejectionReason.EMPTY_OR_WRONG_TYPE)

    # Checks run on the lowercased form so the result re-validates unchanged
    s = candidate.strip().lower()

    if s.count("@") != 1:
        return Rejected(RejectionReason.MISSING_OR_MULTIPLE_AT)

    local, domain = s.split("@")
    if not local or not domain:
        return Rejected(RejectionReason.EMPTY_LOCAL_OR_DOMAIN)

    if ".." in local or local.startswith(".") or local.endswith("."):
        return Rejected(RejectionReason.INVALID_LOCAL_PART)

    if not _is_valid_domain(domain):
        return Rejected(RejectionReason.INVALID_DOMAIN)

    if _has_forbidden_chars(local) or _has_forbidden_chars(domain):
        return Rejected(RejectionReason.INVALID_CHARACTERS)

    return Accepted(s)


def normalize(address: str) -> str:
    """Canonical storage form of an address (trimmed, lowercased)."""
    return address.strip().lower()


def rejection_message(reason: RejectionReason) -> str:
    """Human-readable message for a rejection reason."""
    return REJECTION_MESSAGES[reason]


def mask_email(email: str) -> str:
    """Mask an address for log output: 'test@example.com' -> 't***@example.com'."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def check_policy(email: str, config: SubscriptionConfig) -> list[SubscriptionError]:
    """
    Apply site policy to an already accepted, normalized address.

    Args:
        email: Normalized address
        config: Subscription policy

    Returns:
        List of errors (empty if the address is allowed)
    """
    if len(email) > config.max_email_length:
        return [SubscriptionError("EMAIL_TOO_LONG", "Email address is too long", "email")]

    domain = email.rsplit("@", 1)[1]
    if domain in config.blocked_domains:
        return [
            SubscriptionError("DOMAIN_NOT_ALLOWED", "This email domain is not allowed", "email")
        ]
    if config.allowed_domains and domain not in config.allowed_domains:
        return [
            SubscriptionError("DOMAIN_NOT_ALLOWED", "This email domain is not allowed", "email")
        ]

    return []


def generate_token(length: int = 32) -> str:
    """Generate a URL-safe unsubscribe token."""
    return secrets.token_urlsafe(length)


def generate_confirmation_token() -> str:
    """Generate a one-time confirmation token (32 hex chars)."""
    return secrets.token_hex(16)


def is_confirmation_expired(subscription: Subscription, now: datetime | None = None) -> bool:
    """True when a pending subscription's confirmation link has lapsed."""
    if subscription.confirmation_expires_at is None:
        return False
    if now is None:
        now = datetime.now(UTC)
    return now > subscription.confirmation_expires_at


def build_confirmation_url(base_url: str, token: str, path: str = "/api/subscribe/confirm") -> str:
    return f"{base_url.rstrip('/')}{path}?{urlencode({'token': token})}"


def create_subscription(email: str, source: str = "web", now: datetime | None = None) -> Subscription:
    """Create a new active subscription for a normalized address."""
    if now is None:
        now = datetime.now(UTC)

    return Subscription(
        id=uuid4(),
        email=email,
        unsubscribe_token=generate_token(),
        status=SubscriptionStatus.ACTIVE,
        source=source,
        created_at=now,
        updated_at=now,
    )


def unsubscribe_subscription(
    subscription: Subscription,
    now: datetime | None = None,
) -> Subscription:
    """Transition active/pending -> unsubscribed. Invalidates any confirmation link."""
    if now is None:
        now = datetime.now(UTC)

    return replace(
        subscription,
        status=SubscriptionStatus.UNSUBSCRIBED,
        updated_at=now,
        unsubscribed_at=now,
        confirmation_token=None,
        confirmation_expires_at=None,
    )


def resubscribe_subscription(
    subscription: Subscription,
    source: str,
    now: datetime | None = None,
) -> Subscription:
    """Transition unsubscribed -> active, keeping the original row."""
    if now is None:
        now = datetime.now(UTC)

    return replace(
        subscription,
        status=SubscriptionStatus.ACTIVE,
        source=source,
        updated_at=now,
        unsubscribed_at=None,
    )


def issue_confirmation(
    subscription: Subscription,
    expiry_hours: int,
    source: str | None = None,
    now: datetime | None = None,
) -> Subscription:
    """
    Put a row into pending with a fresh confirmation token.

    Used for new rows, for returning unsubscribed addresses and for
    pending rows whose previous link has expired.
    """
    if now is None:
        now = datetime.now(UTC)

    return replace(
        subscription,
        status=SubscriptionStatus.PENDING,
        source=source or subscription.source,
        updated_at=now,
        unsubscribed_at=None,
        confirmation_token=generate_confirmation_token(),
        confirmation_expires_at=now + timedelta(hours=expiry_hours),
    )


def confirm_subscription(
    subscription: Subscription,
    now: datetime | None = None,
) -> Subscription:
    """
    Transition pending -> active.

    The token is kept so a repeated click reports already confirmed
    instead of not found.
    """
    if now is None:
        now = datetime.now(UTC)

    return replace(
        subscription,
        status=SubscriptionStatus.ACTIVE,
        updated_at=now,
        confirmation_expires_at=None,
    )


def _send_confirmation(
    subscription: Subscription,
    cfg: SubscriptionConfig,
    sender: ConfirmationSenderPort | None,
) -> None:
    if sender is None or subscription.confirmation_token is None:
        return
    url = build_confirmation_url(cfg.base_url, subscription.confirmation_token, cfg.confirmation_path)
    sender.send_confirmation(subscription.email, url, cfg.site_name)


# --- Run Handlers ---


def run_subscribe(
    inp: SubscribeInput,
    repo: SubscriptionRepoPort,
    *,
    rate_limiter: RateLimiterPort | None = None,
    config: SubscriptionConfig | None = None,
    confirmation_sender: ConfirmationSenderPort | None = None,
) -> SubscribeOutput:
    """
    Handle a subscription request.

    1. Validate and normalize the candidate
    2. Apply domain/length policy
    3. Check rate limit (per IP, plus same-address cooldown)
    4. Insert, or report already subscribed

    With double opt-in enabled, new and returning addresses are stored as
    pending and a confirmation link is sent; a pending address whose link
    is still valid gets ALREADY_PENDING.
    """
    cfg = config or SubscriptionConfig()

    result = validate(inp.email)
    if isinstance(result, Rejected):
        logger.info("Subscription rejected: %s", result.reason.value)
        return SubscribeOutput(
            success=False,
            errors=[
                SubscriptionError(
                    "INVALID_EMAIL",
                    rejection_message(result.reason),
                    "email",
                    result.reason,
                )
            ],
        )

    email = result.normalized

    policy_errors = check_policy(email, cfg)
    if policy_errors:
        logger.info("Subscription refused by policy for %s: %s", mask_email(email), policy_errors[0].code)
        return SubscribeOutput(success=False, normalized_email=email, errors=policy_errors)

    if rate_limiter and inp.ip_address:
        decision = rate_limiter.check(inp.ip_address, email)
        if not decision.allowed:
            logger.warning("Rate limit hit (%s) for %s", decision.reason, inp.ip_address)
            message = (
                "Please wait before subscribing again"
                if decision.reason == "cooldown"
                else "Too many attempts, please try later"
            )
            return SubscribeOutput(
                success=False,
                normalized_email=email,
                errors=[SubscriptionError("RATE_LIMITED", message, None)],
                retry_after_seconds=decision.retry_after_seconds,
            )

    existing = repo.get_by_email(email)
    if existing:
        if existing.status == SubscriptionStatus.ACTIVE:
            return SubscribeOutput(
                success=True,
                subscription_id=existing.id,
                normalized_email=email,
                already_subscribed=True,
            )
        if existing.status == SubscriptionStatus.PENDING and not is_confirmation_expired(existing):
            return SubscribeOutput(
                success=False,
                subscription_id=existing.id,
                normalized_email=email,
                errors=[
                    SubscriptionError(
                        "ALREADY_PENDING",
                        "Confirmation email already sent, please check your inbox",
                        "email",
                    )
                ],
            )
        # Unsubscribed, or pending with a lapsed link
        if cfg.double_opt_in:
            pending = repo.save(
                issue_confirmation(existing, cfg.confirmation_token_expiry_hours, inp.source)
            )
            _send_confirmation(pending, cfg, confirmation_sender)
            logger.info("Confirmation reissued for %s", mask_email(email))
            return SubscribeOutput(
                success=True,
                subscription_id=pending.id,
                normalized_email=email,
                needs_confirmation=True,
            )
        reactivated = repo.save(resubscribe_subscription(existing, inp.source))
        logger.info("Resubscribed %s", mask_email(email))
        return SubscribeOutput(
            success=True,
            subscription_id=reactivated.id,
            normalized_email=email,
        )

    subscription = create_subscription(email, inp.source)
    if cfg.double_opt_in:
        subscription = issue_confirmation(
            subscription, cfg.confirmation_token_expiry_hours, now=subscription.created_at
        )

    try:
        saved = repo.insert(subscription)
    except DuplicateSubscriptionError:
        # Concurrent request stored the same address first
        logger.info("Duplicate insert for %s treated as already subscribed", mask_email(email))
        winner = repo.get_by_email(email)
        return SubscribeOutput(
            success=True,
            subscription_id=winner.id if winner else None,
            normalized_email=email,
            already_subscribed=True,
        )

    logger.info(
        "New %s subscription for %s (source=%s)",
        saved.status.value,
        mask_email(email),
        inp.source,
    )
    if saved.status == SubscriptionStatus.PENDING:
        _send_confirmation(saved, cfg, confirmation_sender)
    return SubscribeOutput(
        success=True,
        subscription_id=saved.id,
        normalized_email=email,
        needs_confirmation=saved.status == SubscriptionStatus.PENDING,
    )


def run_confirm(
    inp: ConfirmInput,
    repo: SubscriptionRepoPort,
    *,
    now: datetime | None = None,
) -> ConfirmOutput:
    """
    Handle a confirmation link.

    Error codes: TOKEN_REQUIRED, TOKEN_INVALID_FORMAT, TOKEN_NOT_FOUND,
    TOKEN_EXPIRED. Confirming twice succeeds with already_confirmed.
    """
    if not inp.token:
        return ConfirmOutput(
            success=False,
            errors=[SubscriptionError("TOKEN_REQUIRED", "Confirmation token is required", "token")],
        )

    if not CONFIRMATION_TOKEN_RE.match(inp.token):
        return ConfirmOutput(
            success=False,
            errors=[
                SubscriptionError(
                    "TOKEN_INVALID_FORMAT", "Invalid confirmation token format", "token"
                )
            ],
        )

    subscription = repo.get_by_confirmation_token(inp.token)
    if subscription is None or subscription.status == SubscriptionStatus.UNSUBSCRIBED:
        return ConfirmOutput(
            success=False,
            errors=[SubscriptionError("TOKEN_NOT_FOUND", "Confirmation token not found", None)],
        )

    if subscription.status == SubscriptionStatus.ACTIVE:
        return ConfirmOutput(success=True, subscription_id=subscription.id, already_confirmed=True)

    if is_confirmation_expired(subscription, now):
        return ConfirmOutput(
            success=False,
            subscription_id=subscription.id,
            errors=[
                SubscriptionError(
                    "TOKEN_EXPIRED",
                    "Confirmation link has expired, please subscribe again",
                    None,
                )
            ],
        )

    confirmed = repo.save(confirm_subscription(subscription, now))
    logger.info("Confirmed subscription for %s", mask_email(confirmed.email))
    return ConfirmOutput(success=True, subscription_id=confirmed.id)


def run_unsubscribe(
    inp: UnsubscribeInput,
    repo: SubscriptionRepoPort,
) -> UnsubscribeOutput:
    """
    Handle an unsubscribe request.

    Looks the row up by token when given, otherwise by address.
    Idempotent: unsubscribing twice succeeds.
    """
    if inp.token:
        subscription = repo.get_by_unsubscribe_token(inp.token)
    else:
        result = validate(inp.email)
        if isinstance(result, Rejected):
            return UnsubscribeOutput(
                success=False,
                errors=[
                    SubscriptionError(
                        "INVALID_EMAIL",
                        rejection_message(result.reason),
                        "email",
                        result.reason,
                    )
                ],
            )
        subscription = repo.get_by_email(result.normalized)

    if subscription is None:
        return UnsubscribeOutput(
            success=False,
            errors=[SubscriptionError("NOT_FOUND", "Subscription not found", None)],
        )

    if subscription.status == SubscriptionStatus.UNSUBSCRIBED:
        return UnsubscribeOutput(success=True, already_unsubscribed=True)

    repo.save(unsubscribe_subscription(subscription))
    logger.info("Unsubscribed %s", mask_email(subscription.email))

    return UnsubscribeOutput(success=True)


def run_count(repo: SubscriptionRepoPort) -> CountOutput:
    """Count active subscriptions."""
    return CountOutput(count=repo.count_by_status(SubscriptionStatus.ACTIVE))


def run(
    inp: SubscribeInput | ConfirmInput | UnsubscribeInput | CountInput,
    *,
    repo: SubscriptionRepoPort,
    rate_limiter: RateLimiterPort | None = None,
    config: SubscriptionConfig | None = None,
    confirmation_sender: ConfirmationSenderPort | None = None,
) -> SubscribeOutput | ConfirmOutput | UnsubscribeOutput | CountOutput:
    """
    Main component entry point.

    Args:
        inp: Input command
        repo: Repository port (Required)
        rate_limiter: Rate limiter port (Optional)
        config: Policy configuration (Optional)
        confirmation_sender: Delivers double opt-in links (Optional)

    Returns:
        Operation result
    """
    if isinstance(inp, SubscribeInput):
        return run_subscribe(
            inp,
            repo,
            rate_limiter=rate_limiter,
            config=config,
            confirmation_sender=confirmation_sender,
        )
    elif isinstance(inp, ConfirmInput):
        return run_confirm(inp, repo)
    elif isinstance(inp, UnsubscribeInput):
        return run_unsubscribe(inp, repo)
    elif isinstance(inp, CountInput):
        return run_count(repo)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
