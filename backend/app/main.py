"""
Locoman Cost Dashboard API
FastAPI backend for logistics process costing: step / employee / resource /
fixed-cost catalogs, project category trees, cost summaries and AI narrative
reports (Gemini 2.5 Flash primary, Groq LLaMA 3.1 70B fallback).
"""
import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.db import init_db, is_configured
from app.services.logging_config import setup_logging
from app.services.middleware import (
    RateLimitMiddleware,
    RequestTimingMiddleware,
    SecurityHeadersMiddleware,
)
from app.services.perf_monitor import tracker as perf_tracker

setup_logging(level=config.LOG_LEVEL, json_output=config.LOG_JSON)
logger = logging.getLogger("locoman-api")

_PROCESS_START = time.monotonic()

if not config.DATABASE_URL:
    logger.warning("MISSING env var: DATABASE_URL — running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info(f"{config.APP_NAME} {config.APP_VERSION} started")
    yield


app = FastAPI(
    title=config.APP_NAME,
    version=config.APP_VERSION,
    description="Process cost calculation and reporting for logistics projects",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware, per_minute=config.RATE_LIMIT_PER_MINUTE)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from app.api.catalog_routes import router as catalog_router  # noqa: E402
from app.api.project_routes import router as project_router  # noqa: E402
from app.api.report_routes import router as report_router  # noqa: E402

app.include_router(catalog_router)
app.include_router(project_router)
app.include_router(report_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": config.APP_VERSION,
        "db_configured": is_configured(),
        "llm_primary": config.LLM_PRIMARY_MODEL,
        "llm_fallback": config.LLM_FALLBACK_MODEL,
    }


@app.get("/metrics")
async def metrics():
    """
    Performance metrics endpoint.

    Summary throughput and duration, report counts and errors, plus
    process uptime and peak memory. Sourced from the in-process
    PerformanceTracker singleton.
    """
    uptime_seconds = round(time.monotonic() - _PROCESS_START, 1)

    memory_mb: float = 0.0
    try:
        import resource  # Unix only
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is in kilobytes on Linux, bytes on macOS
        if sys.platform == "darwin":
            memory_mb = round(usage.ru_maxrss / (1024 * 1024), 2)
        else:
            memory_mb = round(usage.ru_maxrss / 1024, 2)
    except ImportError:
        memory_mb = 0.0

    return {
        "uptime_seconds": uptime_seconds,
        "memory_usage_mb": memory_mb,
        **perf_tracker.get_metrics(),
    }


if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
