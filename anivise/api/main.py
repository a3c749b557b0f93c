"""FastAPI application entry point for the Anivise orchestration core.

Startup refuses to run without a valid SECRETS_ENCRYPTION_KEY. The secret
cache is built once here and shared through app.state.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from anivise.api.assignments import router as assignments_router
from anivise.api.dossiers import router as dossiers_router
from anivise.api.form_fill import router as form_fill_router
from anivise.api.integrations import router as integrations_router
from anivise.api.webhooks import router as webhooks_router
from anivise.config.settings import get_settings
from anivise.vault.cache import SecretCache
from anivise.vault.crypto import load_master_key

APP_VERSION = "0.1.0"

settings = get_settings()

_LOG_NAME_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# --- Structured logging ---
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.ENVIRONMENT == "dev"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value],
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)
logging.basicConfig(level=_LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value])

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # MasterKeyError propagates and aborts startup.
    load_master_key(settings)
    logger.info("startup", environment=settings.ENVIRONMENT.value, version=APP_VERSION)
    yield


# --- FastAPI app ---
app = FastAPI(
    title="Anivise Orchestration API",
    description="Secrets vault, dossier dispatch and token-gated form assignments.",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.state.secret_cache = SecretCache(ttl_seconds=settings.SECRET_CACHE_TTL_S)

# --- CORS middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENVIRONMENT == "dev" else [settings.APP_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Routers ---
# Tenant-scoped routers (all under /v1/organizations/{org_id}/...)
app.include_router(dossiers_router)
app.include_router(assignments_router)

# Public / machine-to-machine / admin routers
app.include_router(form_fill_router)
app.include_router(webhooks_router)
app.include_router(integrations_router)


# --- Infrastructure Endpoints (global) ---


@app.get("/health")
async def health_check() -> dict:
    """Liveness check with database connectivity.

    Returns 200 always (degraded status if components are down).
    """
    checks: dict[str, bool] = {"api": True}

    try:
        from anivise.db.session import async_session_factory
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception:
        checks["database"] = False

    all_ok = all(checks.values())

    return {
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "checks": checks,
    }


@app.get("/api/version")
async def get_version() -> dict[str, str]:
    """Return application name, version, and environment."""
    return {
        "name": "Anivise",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
