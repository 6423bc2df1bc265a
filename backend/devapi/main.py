"""
FastAPI application factory.

Run with:
    uvicorn devapi.main:create_app --factory

Lifespan:
  • On startup: build Resources (unless injected), verify DB and Redis.
  • On shutdown: close what this app built.

Routers:
  • /v1        - integrator API (API key + rate limit): usage, users, reviews
  • /developer - self-service portal (session user from the web tier)
  • /cron      - scheduled rollup trigger (shared secret)
  • /health    - shallow liveness probe

Error contract - every error body is {"error": "..."}:
  AuthError 401, RateLimitExceeded 429 (+ retry_after / Retry-After),
  StoreUnavailable 503, invalid body 400, SQLAlchemyError 500,
  HTTPException as raised.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from devapi.auth.errors import AuthError, RateLimitExceeded, StoreUnavailable
from devapi.core.config import Settings
from devapi.core.resources import Resources
from devapi.routers.cron import router as cron_router
from devapi.routers.developer import router as developer_router
from devapi.routers.reviews import router as reviews_router
from devapi.routers.usage import router as usage_router
from devapi.routers.users import router as users_router

logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    owns_resources = app.state.resources is None
    if owns_resources:
        app.state.resources = Resources.from_settings(app.state.settings)
    resources: Resources = app.state.resources
    logger.info("Starting %s (environment=%s)", app.title, app.state.settings.ENVIRONMENT)

    # Startup - verify stores are reachable (non-fatal: requests fail closed)
    try:
        async with resources.engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but authenticated requests will get 503 until it is available."
        )

    try:
        await resources.redis.ping()
        logger.info("Redis connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach Redis on startup. "
            "Rate-limited requests will get 503 until it is available."
        )

    yield  # ← application runs here

    # Shutdown - clean up connection pools we created
    if owns_resources:
        await resources.aclose()


# ── Error handlers ──────────────────────────────────────────
async def _auth_error(_request: Request, _exc: AuthError) -> JSONResponse:
    # Same body for every reason - which check failed is not disclosed.
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": "Invalid or missing API key"},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _rate_limited(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": "Rate limit exceeded", "retry_after": exc.retry_after},
        headers={"Retry-After": str(exc.retry_after)},
    )


async def _store_unavailable(_request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Failing closed: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Service temporarily unavailable"},
    )


async def _database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "Database error on %s %s: %s",
        request.method, request.url.path, exc.__class__.__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _invalid_body(_request: Request, exc: RequestValidationError) -> JSONResponse:
    message = "; ".join(err.get("msg", "Invalid value") for err in exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message or "Invalid request body"},
    )


# ── App ─────────────────────────────────────────────────────
def create_app(
    settings: Settings | None = None,
    resources: Resources | None = None,
) -> FastAPI:
    """
    Build the application.

    Tests pass ready-made `resources` (in-memory SQLite + fake Redis);
    production lets the lifespan build them from settings.
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        description=(
            "Developer API - key issuance, authentication, sliding-window "
            "rate limiting, usage metering and external identities."
        ),
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.resources = resources

    app.add_exception_handler(AuthError, _auth_error)
    app.add_exception_handler(RateLimitExceeded, _rate_limited)
    app.add_exception_handler(StoreUnavailable, _store_unavailable)
    app.add_exception_handler(SQLAlchemyError, _database_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _invalid_body)

    # Mount routers
    app.include_router(usage_router, prefix="/v1")
    app.include_router(users_router, prefix="/v1")
    app.include_router(reviews_router, prefix="/v1")
    app.include_router(developer_router, prefix="/developer")
    app.include_router(cron_router, prefix="/cron")

    # ── Health check ────────────────────────────────────────
    @app.get(
        "/health",
        tags=["System"],
        summary="Liveness probe",
    )
    async def health_check() -> dict[str, str]:
        """Shallow health check - confirms the process is alive."""
        return {"status": "healthy"}

    return app
