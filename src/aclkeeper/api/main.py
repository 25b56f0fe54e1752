"""
aclkeeper API Main Application

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from aclkeeper.platform.config import settings
from aclkeeper.platform.logging import configure_logging, get_logger, bind_request_context, clear_request_context
from aclkeeper.platform.metrics import REGISTRY
from aclkeeper.api.routers import permissions
from aclkeeper.api.database import init_database, close_postgres_adapter, get_postgres_adapter
from aclkeeper.api.resources import identity_lookup, resource_lookups

# Configure logging on import
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting aclkeeper API...")
    try:
        init_database()
        logger.info("Database initialized successfully.")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    # Standalone deployments address resources by their ACL id directly
    if resource_lookups.fallback is None:
        resource_lookups.fallback = identity_lookup

    yield

    logger.info("Shutting down aclkeeper API...")
    close_postgres_adapter()
    logger.info("Resources closed.")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Resource access control: bitmask ACLs for users, groups, roles and the public",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(",") if settings.CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# OBSERVABILITY
# =============================================================================

@app.middleware("http")
async def request_log_context(request: Request, call_next):
    clear_request_context()
    bind_request_context(method=request.method, path=request.url.path)
    return await call_next(request)


if settings.METRICS_ENABLED:
    app.mount("/metrics", make_asgi_app(registry=REGISTRY))


# =============================================================================
# HEALTH ENDPOINTS
# =============================================================================


@app.get("/health/live", tags=["Health"])
async def liveness() -> dict:
    """Liveness probe - is the service running?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
def readiness() -> dict:
    """Readiness probe - can the service reach its database?"""
    postgres_healthy = get_postgres_adapter().health_check()
    return {
        "status": "ready" if postgres_healthy else "not_ready",
        "version": settings.VERSION,
        "checks": {
            "postgres": "healthy" if postgres_healthy else "unhealthy",
        },
    }


# =============================================================================
# API ROUTERS
# =============================================================================

app.include_router(permissions.router, prefix="/api/v1/permissions", tags=["Permissions"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aclkeeper.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
