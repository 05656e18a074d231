"""FastAPI application wiring for the exercise service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .api.graphql import router as graphql_router
from .config import Settings, get_settings
from .database.backends import open_store
from .database.schema import ensure_schema
from .security.openid_connect import IdTokenVerifier, OpenIdProvider

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def build_id_token_verifier(settings: Settings) -> IdTokenVerifier | None:
    """Return a verifier for the configured issuer, or ``None`` when auth is off."""
    if not settings.oidc_issuer:
        if settings.oidc_required:
            raise RuntimeError("OIDC_REQUIRED is set but OIDC_ISSUER is empty")
        logger.info("OIDC verification disabled")
        return None
    if not settings.oidc_audience:
        logger.warning("OIDC_AUDIENCE is empty; ID token audiences will not be checked")
    provider = OpenIdProvider(settings.oidc_issuer, timeout=settings.oidc_http_timeout)
    return IdTokenVerifier(provider, audience=settings.oidc_audience)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (connection pool, token verifier) for the app lifecycle."""
    store = open_store(
        settings.database_url,
        pool_size=settings.db_pool_size,
        pool_timeout=settings.db_pool_timeout,
    )
    store.open()
    if settings.db_auto_migrate:
        ensure_schema(store)
    verifier = build_id_token_verifier(settings)
    app.state.exercise_store = store
    app.state.id_token_verifier = verifier
    app.state.auth_required = settings.oidc_required
    logger.info("%s %s serving from %s", settings.app_name, settings.version, store.dialect.name)
    try:
        yield
    finally:
        store.close()
        if verifier is not None:
            verifier.provider.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for local frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(graphql_router, prefix="/graphql")
