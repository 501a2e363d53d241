"""
AstroForge - Asset Platform API

Main application entry point.

Serves the fungible ledger, the asset registry and their shared event
journal over HTTP. Run with:

    uvicorn astroforge.main:app
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import router as api_router
from .observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)
from .platform import Platform, create_platform

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: deploy from environment unless a platform was injected
    if getattr(app.state, "platform", None) is None:
        app.state.platform = create_platform()
    platform = app.state.platform

    journal = platform.store.journal
    if journal.verify_chain_integrity():
        logger.info("Chain integrity verified OK", event_count=journal.event_count)
    else:
        logger.error("Chain integrity check FAILED!")

    logger.info(
        "Application startup complete",
        event_count=journal.event_count,
        token=platform.token.address,
        assets=platform.assets.address,
    )

    yield

    logger.info("Application shutdown complete")


system_router = APIRouter()


@system_router.get("/health", tags=["System"])
async def health():
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    For detailed health, use /health/detailed
    """
    return {"status": "healthy", "service": "astroforge"}


@system_router.get("/health/detailed", tags=["System"])
async def health_detailed(request: Request):
    """
    Detailed health check with journal verification.

    Checks:
    - Service liveness
    - Journal head
    - Fee bridge wiring
    - Chain integrity

    Returns 200 if healthy, 503 if unhealthy.
    """
    health_status = check_health(request.app.state.platform, verify_chain=True)
    return JSONResponse(
        status_code=200 if health_status.healthy else 503,
        content={
            "status": "healthy" if health_status.healthy else "unhealthy",
            "checks": health_status.checks,
            "duration_ms": health_status.duration_ms,
        },
    )


@system_router.get("/metrics", tags=["System"])
async def metrics():
    """
    Get application metrics.

    Returns counters and latency percentiles.
    """
    return get_metrics().get_summary()


def create_app(platform: Optional[Platform] = None) -> FastAPI:
    """Build the HTTP app. Tests pass a pre-built platform."""
    app = FastAPI(
        title="AstroForge",
        description="""
## Role-gated asset platform

- **Velox**: fungible ledger with signature-authenticated claims
- **Holo-V**: asset registry with mint, upgrade, forge and burn

### API Design

**Commands** are single atomic ledger operations. Each either commits
fully or leaves every ledger unchanged.

**Facts** of committed operations are hash-chained in the event journal
(`GET /api/v1/events`).
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.platform = platform

    # Add request context middleware for logging
    app.add_middleware(RequestContextMiddleware)

    # In production, restrict to your actual domain
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(system_router)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
