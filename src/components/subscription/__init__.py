"""
Subscription component.

E-mail subscription validation, normalization and management.
"""

from src.components.subscription.component import (
    CONFIRMATION_TOKEN_RE,
    REJECTION_MESSAGES,
    build_confirmation_url,
    check_policy,
    confirm_subscription,
    create_subscription,
    generate_confirmation_token,
    generate_token,
    is_confirmation_expired,
    issue_confirmation,
    mask_email,
    normalize,
    rejection_message,
    resubscribe_subscription,
    run,
    run_confirm,
    run_count,
    run_subscribe,
    run_unsubscribe,
    unsubscribe_subscription,
    validate,
)
from src.components.subscription.models import (
    Accepted,
    ConfirmInput,
    ConfirmOutput,
    CountInput,
    CountOutput,
    DuplicateSubscriptionError,
    RateLimitDecision,
    Rejected,
    RejectionReason,
    SubscribeInput,
    SubscribeOutput,
    Subscription,
    SubscriptionConfig,
    SubscriptionError,
    SubscriptionRepoError,
    SubscriptionStatus,
    UnsubscribeInput,
    UnsubscribeOutput,
    ValidationResult,
)
from src.components.subscription.ports import (
    ClockPort,
    ConfirmationSenderPort,
    RateLimiterPort,
    SubscriptionRepoPort,
)

__all__ = [
    # Component
    "run",
    "run_subscribe",
    "run_confirm",
    "run_unsubscribe",
    "run_count",
    # Pure functions
    "validate",
    "normalize",
    "rejection_message",
    "mask_email",
    "check_policy",
    "generate_token",
    "generate_confirmation_token",
    "is_confirmation_expired",
    "build_confirmation_url",
    "create_subscription",
    "unsubscribe_subscription",
    "resubscribe_subscription",
    "issue_confirmation",
    "confirm_subscription",
    # Constants
    "REJECTION_MESSAGES",
    "CONFIRMATION_TOKEN_RE",
    # Validation outcome
    "Accepted",
    "Rejected",
    "RejectionReason",
    "ValidationResult",
    # Models
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionConfig",
    "RateLimitDecision",
    # Input/Output
    "SubscribeInput",
    "SubscribeOutput",
    "ConfirmInput",
    "ConfirmOutput",
    "UnsubscribeInput",
    "UnsubscribeOutput",
    "CountInput",
    "CountOutput",
    "SubscriptionError",
    # Errors
    "SubscriptionRepoError",
    "DuplicateSubscriptionError",
    # Ports
    "SubscriptionRepoPort",
    "RateLimiterPort",
    "ConfirmationSenderPort",
    "ClockPort",
]
