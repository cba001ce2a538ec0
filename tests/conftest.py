from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.adapters.clock import FrozenClock
from src.adapters.dev_confirmation_sender import DevConfirmationSender
from src.adapters.rate_limiter import InMemoryRateLimiter
from src.adapters.sqlite_db import SQLiteSubscriptionRepo, ensure_schema
from src.api.deps import (
    get_confirmation_sender,
    get_rate_limiter,
    get_rules,
    get_subscription_config,
    get_subscription_repo,
)
from src.api.main import app
from src.components.subscription.models import SubscriptionConfig
from src.rules.loader import load_rules
from src.rules.models import Rules

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def test_db_path(tmp_path) -> str:
    """Temporary database with the subscriptions schema."""
    db_path = str(tmp_path / "newsletter.db")
    ensure_schema(db_path)
    return db_path


@pytest.fixture
def test_repo(test_db_path: str) -> SQLiteSubscriptionRepo:
    return SQLiteSubscriptionRepo(test_db_path)


@pytest.fixture
def test_rules() -> Rules:
    """REAL rules from project root."""
    return load_rules(PROJECT_ROOT / "rules.yaml")


@pytest.fixture
def test_config(test_rules: Rules) -> SubscriptionConfig:
    return test_rules.to_subscription_config()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def test_rate_limiter(test_config: SubscriptionConfig, clock: FrozenClock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter.from_config(test_config, clock=clock)


@pytest.fixture
def test_confirmation_sender() -> DevConfirmationSender:
    return DevConfirmationSender()


@pytest.fixture
def client(
    test_repo: SQLiteSubscriptionRepo,
    test_rules: Rules,
    test_config: SubscriptionConfig,
    test_rate_limiter: InMemoryRateLimiter,
    test_confirmation_sender: DevConfirmationSender,
) -> Generator[TestClient, None, None]:
    """Test client with dependency overrides (lifespan not run)."""
    app.dependency_overrides[get_subscription_repo] = lambda: test_repo
    app.dependency_overrides[get_rules] = lambda: test_rules
    app.dependency_overrides[get_subscription_config] = lambda: test_config
    app.dependency_overrides[get_rate_limiter] = lambda: test_rate_limiter
    app.dependency_overrides[get_confirmation_sender] = lambda: test_confirmation_sender

    yield TestClient(app)

    app.dependency_overrides.clear()
