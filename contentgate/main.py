"""
ContentGate API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .database import engine, Base
from .engine import shutdown_notification_executor
from .engine.errors import ApprovalEngineError
from .limiter import limiter
from .logging_config import api_logger
from .middleware import SecurityHeadersMiddleware, RequestLoggingMiddleware
from .responses import ApiException, api_exception_handler, engine_error_handler
from .routes import (
    approvals_router,
    auth_router,
    health_router,
    webhooks_router,
    workflows_router,
)
from .worker.timeout_sweeper import get_timeout_sweeper

settings = get_settings()

# Create tables (in production, use Alembic migrations instead)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    # Startup
    if settings.escalation_sweeper_enabled:
        try:
            get_timeout_sweeper().start_background()
        except Exception as e:
            api_logger.warning("Failed to start timeout sweeper", error_message=str(e))

    yield  # App is running

    # Shutdown
    sweeper = get_timeout_sweeper()
    if sweeper.running:
        sweeper.stop()
    shutdown_notification_executor()


app = FastAPI(
    title="ContentGate API",
    description="Multi-step content approval workflows with automated policy checks",
    version="1.0.0",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Error envelope
app.add_exception_handler(ApprovalEngineError, engine_error_handler)
app.add_exception_handler(ApiException, api_exception_handler)

# Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Request logging middleware (only in debug mode)
if settings.debug:
    app.add_middleware(RequestLoggingMiddleware)

# CORS - Properly configured with specific methods
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    max_age=3600,  # Cache preflight requests for 1 hour
)

# Routes
app.include_router(auth_router)
app.include_router(workflows_router)
app.include_router(approvals_router)
app.include_router(webhooks_router)
app.include_router(health_router)


@app.get("/")
def root():
    """Root endpoint redirects to API docs."""
    return {
        "message": "ContentGate API",
        "docs": "/api/docs" if settings.debug else "Disabled in production",
    }


def run():
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run("contentgate.main:app", host=settings.host, port=settings.port)
