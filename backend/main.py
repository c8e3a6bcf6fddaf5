"""Social Analytics Dashboard - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from config import get_settings
from database import engine
from errors import DashboardError
from middleware.rate_limit import limiter, rate_limit_exceeded_handler
from models import Base
from routers import (
    dashboard_router,
    oauth_router,
    reports_router,
    social_accounts_router,
    users_router,
)
from services.oauth_state_store import OAuthStateStore
from services.scheduler import start_scheduler, stop_scheduler

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create tables on startup, cleanup on shutdown."""
    # Startup: create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Pending OAuth attempts live in Redis; connecting accounts fails without it
    if await OAuthStateStore.health_check():
        logger.info("Redis connection established")
    else:
        logger.warning("Redis not available - OAuth connections will fail")

    if not settings.gotrue_jwt_secret:
        logger.warning("GOTRUE_JWT_SECRET is not set - every authenticated request will be rejected")

    start_scheduler()

    yield

    # Shutdown: stop scheduler and close Redis connection pool
    stop_scheduler()
    await OAuthStateStore.close()


app = FastAPI(
    title="Social Analytics Dashboard API",
    description="Cross-platform social media analytics and reporting",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError):
    """Map domain errors onto {"error", "detail"} JSON with the error's status."""
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(dashboard_router)
app.include_router(oauth_router)
app.include_router(reports_router)
app.include_router(social_accounts_router)
app.include_router(users_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "social-analytics-dashboard"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Social Analytics Dashboard API",
        "version": "0.1.0",
        "docs": "/docs",
    }
