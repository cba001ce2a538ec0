import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.adapters.sqlite_db import ensure_schema
from src.api.deps import get_health_registry, get_rules, get_settings
from src.shell.http.health import create_health_router, mark_startup_complete

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level)

    # Load rules on startup (fail-fast)
    try:
        rules = get_rules()
        logger.info("Rules v%s loaded from %s", rules.rules_version, settings.rules_path)
    except Exception as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    ensure_schema(settings.db_path)
    mark_startup_complete()

    yield
    logger.info("Shutting down newsletter API")


app = FastAPI(
    title="Silksong Newsletter API",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import public_subscriptions  # noqa: E402

app.include_router(public_subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(
    create_health_router(
        get_health_registry,
        version=VERSION,
        environment=get_settings().environment,
    )
)


# CORS (Allow Frontend)
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host=os.environ.get("NEWSLETTER_HOST", "127.0.0.1"),
        port=int(os.environ.get("NEWSLETTER_PORT", "8000")),
        log_level=get_settings().log_level.lower(),
    )
