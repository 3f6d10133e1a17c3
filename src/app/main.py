"""
EK-SMS Library API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Logging
- Database and Redis connections
- Background job scheduler (daily overdue sweep)
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import API_V1_PREFIX, CORS_EXEMPT_PATHS, api_router
from app.core.auth import get_trigger_caller
from app.core.config import settings
from app.core.cors import PathExemptCORSMiddleware
from app.core.database import close_db, get_db, init_db
from app.core.rate_limit import rate_limit
from app.core.redis import close_redis, get_redis, init_redis
from app.core.scheduler import (
    list_registered_jobs,
    pause_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from app.modules.library.jobs import register_library_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown of Redis, the database and the scheduler.
    """
    print(f"Starting EK-SMS Library API in {settings.python_env} mode...")

    # Redis is optional: the rate limiter falls back to memory
    try:
        await init_redis()
        print("[OK] Redis connected")
    except Exception as e:
        print(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        print("[OK] Database connected")
    except Exception as e:
        print(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    try:
        register_library_jobs()
        await start_scheduler()
        print("[OK] Background scheduler started")
    except Exception as e:
        print(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    print("Shutting down EK-SMS Library API...")

    await stop_scheduler()
    print("[OK] Background scheduler stopped")

    await close_redis()
    await close_db()
    print("[OK] Cleanup complete")


app = FastAPI(
    title="EK-SMS Library API",
    description="EL-KENDEH Smart School Management System - library loan reminders",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix=API_V1_PREFIX)

app.add_middleware(
    PathExemptCORSMiddleware,
    exempt_paths=CORS_EXEMPT_PATHS,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to EK-SMS Library API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint."""
    return {"status": "ready"}


@app.get("/debug/db", tags=["Debug"])
async def debug_db(db: AsyncSession = Depends(get_db)):
    """Test database connection."""
    try:
        result = await db.execute(text("SELECT 1"))
        return {"database": "connected", "result": result.scalar()}
    except Exception as e:
        return {"database": "error", "message": str(e)}


@app.get("/debug/redis", tags=["Debug"])
async def debug_redis():
    """Test Redis connection."""
    try:
        client = await get_redis()
        if client:
            await client.ping()
            return {"redis": "connected"}
        return {"redis": "not initialized"}
    except Exception as e:
        return {"redis": "error", "message": str(e)}


# ============================================
# Background Job Debug Endpoints
# ============================================
# Manual control of background jobs. In production the overdue sweep
# runs automatically on schedule. Job control needs the trigger token.


@app.get("/debug/jobs", tags=["Debug"], dependencies=[Depends(get_trigger_caller)])
async def list_jobs():
    """List all registered background jobs with next run time and pause status."""
    return {"jobs": list_registered_jobs()}


@app.post(
    "/debug/jobs/{job_id}/trigger", tags=["Debug"], dependencies=[Depends(get_trigger_caller)]
)
@rate_limit(
    limit=lambda: settings.sweep_trigger_rate_limit,
    window_seconds=lambda: settings.sweep_trigger_rate_window_seconds,
)
async def trigger_job(request: Request, job_id: str):
    """
    Manually trigger a background job.

    Args:
        job_id: The ID of the job to trigger, e.g. library_check_overdue_books

    Raises:
        HTTPException 400: If job_id is not found.
    """
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post(
    "/debug/jobs/{job_id}/pause", tags=["Debug"], dependencies=[Depends(get_trigger_caller)]
)
async def pause_job_endpoint(job_id: str):
    """Pause a scheduled background job."""
    return {"job_id": job_id, "paused": pause_job(job_id)}


@app.post(
    "/debug/jobs/{job_id}/resume", tags=["Debug"], dependencies=[Depends(get_trigger_caller)]
)
async def resume_job_endpoint(job_id: str):
    """Resume a paused background job."""
    return {"job_id": job_id, "resumed": resume_job(job_id)}
