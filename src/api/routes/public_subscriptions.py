"""
Public subscription endpoints.

Endpoints:
- POST /api/subscribe - Subscribe an address
- GET /api/subscribe/confirm - Confirm a pending subscription (double opt-in)
- GET /api/subscriptions/count - Active subscriber count
- POST /api/newsletter/unsubscribe - Unsubscribe by address or token
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field

from src.adapters.dev_confirmation_sender import DevConfirmationSender
from src.adapters.rate_limiter import InMemoryRateLimiter
from src.adapters.sqlite_db import SQLiteSubscriptionRepo
from src.api.deps import (
    Settings,
    get_confirmation_sender,
    get_rate_limiter,
    get_rules,
    get_settings,
    get_subscription_config,
    get_subscription_repo,
)
from src.components.subscription import (
    ConfirmInput,
    SubscribeInput,
    SubscriptionConfig,
    SubscriptionError,
    UnsubscribeInput,
    run_confirm,
    run_count,
    run_subscribe,
    run_unsubscribe,
)
from src.rules.models import Rules

router = APIRouter()


# --- Request/Response Models ---


class SubscribeRequest(BaseModel):
    """Request body for subscription."""

    # Left untyped: the validator classifies non-string candidates itself
    email: Any = Field(default=None, description="Email address to subscribe")
    source: str | None = Field(default=None, max_length=50, description="Form placement")


class SubscribeResponse(BaseModel):
    """Response for subscription request."""

    success: bool = Field(..., description="Whether the request was processed successfully")
    message: str = Field(..., description="Human-readable message")
    already_subscribed: bool = False
    needs_confirmation: bool = False


class ConfirmResponse(BaseModel):
    success: bool
    message: str
    already_confirmed: bool = False


class UnsubscribeRequest(BaseModel):
    """Request body for unsubscribe: address or token."""

    email: Any = None
    token: str | None = None


class UnsubscribeResponse(BaseModel):
    success: bool
    message: str


class CountResponse(BaseModel):
    success: bool
    count: int


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    code: str
    reason: str | None = None


# --- Helper Functions ---


def get_client_ip(request: Request, trust_proxy_headers: bool = True) -> str:
    """
    Extract client IP from request.

    Forwarding headers are only meaningful behind a reverse proxy that
    overwrites them; with trust_proxy_headers off they are ignored, so a
    client cannot rotate X-Forwarded-For to dodge the rate limit.
    """
    if trust_proxy_headers:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"


def error_detail(error: SubscriptionError) -> dict[str, Any]:
    """Shape a component error into the HTTP error body."""
    return ErrorResponse(
        error=error.message,
        code=error.code,
        reason=error.reason.value if error.reason else None,
    ).model_dump()


# --- Subscribe Endpoint ---


@router.post(
    "/subscribe",
    response_model=SubscribeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid address"},
        409: {"model": ErrorResponse, "description": "Confirmation already pending"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
    summary="Subscribe to the newsletter",
)
def subscribe(
    request_body: SubscribeRequest,
    request: Request,
    repo: SQLiteSubscriptionRepo = Depends(get_subscription_repo),
    rate_limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    config: SubscriptionConfig = Depends(get_subscription_config),
    rules: Rules = Depends(get_rules),
    settings: Settings = Depends(get_settings),
    sender: DevConfirmationSender = Depends(get_confirmation_sender),
) -> SubscribeResponse:
    """
    Subscribe an address.

    1. Validate and normalize the address
    2. Apply domain/length policy
    3. Check rate limit per client IP
    4. Store, or report already subscribed (never a duplicate row)
    """
    inp = SubscribeInput(
        email=request_body.email,
        ip_address=get_client_ip(request, settings.trust_proxy_headers),
        source=request_body.source or rules.subscription.default_source,
    )
    result = run_subscribe(
        inp, repo, rate_limiter=rate_limiter, config=config, confirmation_sender=sender
    )

    if not result.success:
        error = result.errors[0]
        if error.code == "RATE_LIMITED":
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=error_detail(error),
                headers={"Retry-After": str(result.retry_after_seconds or 60)},
            )
        if error.code == "ALREADY_PENDING":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error_detail(error))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail(error))

    if result.already_subscribed:
        return SubscribeResponse(
            success=True,
            message="You're already subscribed",
            already_subscribed=True,
        )

    if result.needs_confirmation:
        return SubscribeResponse(
            success=True,
            message="Check your inbox to confirm your subscription",
            needs_confirmation=True,
        )

    return SubscribeResponse(
        success=True,
        message=f"Thanks for subscribing to {config.site_name} updates!",
    )


# --- Confirm Endpoint ---

CONFIRM_ERROR_STATUS = {
    "TOKEN_REQUIRED": status.HTTP_400_BAD_REQUEST,
    "TOKEN_INVALID_FORMAT": status.HTTP_400_BAD_REQUEST,
    "TOKEN_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "TOKEN_EXPIRED": status.HTTP_410_GONE,
}


@router.get(
    "/subscribe/confirm",
    response_model=ConfirmResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing or malformed token"},
        404: {"model": ErrorResponse, "description": "Token not found"},
        410: {"model": ErrorResponse, "description": "Confirmation link expired"},
    },
    summary="Confirm a pending subscription",
)
def confirm(
    token: str | None = Query(default=None),
    repo: SQLiteSubscriptionRepo = Depends(get_subscription_repo),
    config: SubscriptionConfig = Depends(get_subscription_config),
) -> ConfirmResponse:
    result = run_confirm(ConfirmInput(token=token), repo)

    if not result.success:
        error = result.errors[0]
        raise HTTPException(
            status_code=CONFIRM_ERROR_STATUS.get(error.code, status.HTTP_400_BAD_REQUEST),
            detail=error_detail(error),
        )

    if result.already_confirmed:
        return ConfirmResponse(
            success=True, message="Subscription already confirmed", already_confirmed=True
        )

    return ConfirmResponse(
        success=True,
        message=f"Thanks for confirming your subscription to {config.site_name} updates!",
    )


# --- Count Endpoint ---


@router.get(
    "/subscriptions/count",
    response_model=CountResponse,
    summary="Active subscriber count",
)
def subscription_count(
    response: Response,
    repo: SQLiteSubscriptionRepo = Depends(get_subscription_repo),
) -> CountResponse:
    result = run_count(repo)

    response.headers["Cache-Control"] = "public, max-age=300"
    return CountResponse(success=True, count=result.count)


# --- Unsubscribe Endpoint ---


@router.post(
    "/newsletter/unsubscribe",
    response_model=UnsubscribeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        404: {"model": ErrorResponse, "description": "Subscription not found"},
    },
    summary="Unsubscribe from the newsletter",
)
def unsubscribe(
    request_body: UnsubscribeRequest,
    repo: SQLiteSubscriptionRepo = Depends(get_subscription_repo),
) -> UnsubscribeResponse:
    """Unsubscribe by token or address. Idempotent."""
    result = run_unsubscribe(UnsubscribeInput(email=request_body.email, token=request_body.token), repo)

    if not result.success:
        error = result.errors[0]
        code = (
            status.HTTP_404_NOT_FOUND
            if error.code == "NOT_FOUND"
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(status_code=code, detail=error_detail(error))

    if result.already_unsubscribed:
        return UnsubscribeResponse(success=True, message="You were already unsubscribed")

    return UnsubscribeResponse(success=True, message="You have been unsubscribed")
