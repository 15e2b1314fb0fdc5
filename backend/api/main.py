"""
Stitchline API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from core.config import get_settings
from core.errors import MarketplaceError

settings = get_settings()
logger = structlog.get_logger()

LEGACY_ROUTE_MAP = {
    "/api/custom-requests": "/api/v1/custom-requests",
    "/api/notifications": "/api/v1/notifications",
}
DEPRECATION_SUNSET = "Thu, 31 Dec 2026 00:00:00 GMT"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Stitchline API starting up", version=settings.app_version)
    yield
    logger.info("Stitchline API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Custom-request negotiation and order deadline engine",
    lifespan=lifespan,
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Render domain errors as ``{"detail", "error_code"}`` with their mapped status."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log("api.domain_error", path=request.url.path, error_code=exc.code, detail=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.code},
    )


@app.middleware("http")
async def legacy_route_alias_middleware(request: Request, call_next):
    """
    Compatibility layer for pre-versioned clients:
      - /api/custom-requests/* -> /api/v1/custom-requests/*
      - /api/notifications/* -> /api/v1/notifications/*
    Adds deprecation headers on legacy route usage.
    """
    original_path = request.scope.get("path", "")
    rewritten_to: str | None = None

    for legacy_prefix, canonical_prefix in LEGACY_ROUTE_MAP.items():
        if original_path == legacy_prefix or original_path.startswith(f"{legacy_prefix}/"):
            suffix = original_path[len(legacy_prefix) :]
            request.scope["path"] = f"{canonical_prefix}{suffix}"
            rewritten_to = request.scope["path"]
            break

    response = await call_next(request)
    if rewritten_to:
        response.headers["Deprecation"] = "true"
        response.headers["Sunset"] = DEPRECATION_SUNSET
        response.headers["X-API-Deprecated"] = "Use /api/v1/* endpoints"
        response.headers["Link"] = f'<{rewritten_to}>; rel="successor-version"'
    return response


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import custom_requests, deadlines, notifications
from notifications.websocket import router as ws_router

app.include_router(custom_requests.router)
app.include_router(notifications.router)
app.include_router(deadlines.router)
app.include_router(ws_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
