import logging
import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from src.adapters.dev_confirmation_sender import DevConfirmationSender
from src.adapters.rate_limiter import InMemoryRateLimiter
from src.adapters.sqlite_db import SQLiteSubscriptionRepo
from src.components.subscription.models import SubscriptionConfig
from src.rules.loader import load_rules
from src.rules.models import Rules
from src.shell.http.health import DatabaseCheck, HealthCheckRegistry, StartupCheck

logger = logging.getLogger(__name__)


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("NEWSLETTER_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "newsletter.db")
        self.rules_path = Path(
            os.environ.get("NEWSLETTER_RULES_PATH", str(self.base_dir / "rules.yaml"))
        )
        self.environment = os.environ.get("NEWSLETTER_ENV", "development")
        self.log_level = os.environ.get("NEWSLETTER_LOG_LEVEL", "INFO").upper()
        # Only honour X-Forwarded-For/X-Real-IP behind a proxy that overwrites them
        self.trust_proxy_headers = os.environ.get("NEWSLETTER_TRUST_PROXY", "true").lower() not in (
            "0",
            "false",
            "no",
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


def get_subscription_config(rules: Rules = Depends(get_rules)) -> SubscriptionConfig:
    return rules.to_subscription_config()


# --- Repos ---
def get_subscription_repo(settings: Settings = Depends(get_settings)) -> SQLiteSubscriptionRepo:
    return SQLiteSubscriptionRepo(settings.db_path)


# --- Rate limiting ---
# Process-wide singleton; windows must survive across requests.
_rate_limiter_instance: InMemoryRateLimiter | None = None


def get_rate_limiter() -> InMemoryRateLimiter:
    """Get rate limiter singleton, sized from the subscription config."""
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        _rate_limiter_instance = InMemoryRateLimiter.from_config(
            get_rules().to_subscription_config()
        )
    return _rate_limiter_instance


# --- Confirmation delivery ---
_confirmation_sender_instance: DevConfirmationSender | None = None


def get_confirmation_sender() -> DevConfirmationSender:
    """Get the confirmation sender singleton (logs links in this deployment)."""
    global _confirmation_sender_instance
    if _confirmation_sender_instance is None:
        _confirmation_sender_instance = DevConfirmationSender()
    return _confirmation_sender_instance


# --- Health ---
def get_health_registry(
    repo: SQLiteSubscriptionRepo = Depends(get_subscription_repo),
) -> HealthCheckRegistry:
    registry = HealthCheckRegistry()
    registry.register(StartupCheck())
    registry.register(DatabaseCheck(repo.ping))
    return registry
