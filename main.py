"""
Pulse Trace Service

Collects traces of LLM API calls sent by the Pulse SDK and serves
cost, latency and error analytics over them.

Features:
- Batch Ingestion: POST /v1/traces/batch (up to 100 traces per request)
- Trace Queries: filter by session, provider, model, status, date range
- Sessions: all traces sharing a session id, in call order
- Analytics: totals, cost breakdowns, top models, latency percentiles

Run with:
    uvicorn main:app --reload

Or:
    python main.py
"""

import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("pulse")

from pulse import __version__
from pulse.core.config import config
from pulse.core.errors import PulseError
from pulse.core.storage import InMemoryStorage
from pulse.core.analytics import InMemoryAnalyticsStore

# Import API routers
from pulse.api.traces import router as traces_router
from pulse.api.sessions import router as sessions_router
from pulse.api.analytics import router as analytics_router
from pulse.api.admin import router as admin_router


# =============================================================================
# APPLICATION LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("=" * 60)
    logger.info(f"{config.app_name} Trace Service Starting")
    logger.info(f"   Environment: {config.env.value}")
    logger.info(f"   Debug: {config.debug}")
    logger.info(f"   Admin API: {'enabled' if config.admin_key else 'disabled'}")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down...")


# =============================================================================
# CREATE APPLICATION
# =============================================================================

app = FastAPI(
    title="Pulse - LLM Trace Service",
    description="""
    **Pulse** - Trace collection and analytics for LLM API calls.

    ## Quick Start
    1. Create a project at POST /admin/projects (requires X-Admin-Key)
    2. Initialize the SDK with the returned pulse_sk_ key
    3. Query /v1/traces and /v1/analytics with the same key
    """,
    version=__version__,
    docs_url="/docs" if config.debug else None,
    redoc_url="/redoc" if config.debug else None,
    lifespan=lifespan,
)

# Default in-memory backends
app.state.storage = InMemoryStorage()
app.state.analytics_store = InMemoryAnalyticsStore(app.state.storage)


# =============================================================================
# MIDDLEWARE
# =============================================================================

cors_origins = ["*"] if config.debug else config.cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} "
        f"- {response.status_code} ({duration*1000:.0f}ms)"
    )

    return response


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(PulseError)
async def pulse_error_handler(request: Request, exc: PulseError):
    return JSONResponse(exc.to_response(), status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# =============================================================================
# API ROUTES
# =============================================================================

# Ingestion and trace queries
app.include_router(traces_router)

# Sessions
app.include_router(sessions_router)

# Analytics
app.include_router(analytics_router)

# Admin - project provisioning
app.include_router(admin_router)


# =============================================================================
# CORE ROUTES
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "pulse",
        "version": __version__,
    }


# =============================================================================
# RUN
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=config.port,
        reload=config.debug,
        log_level="info",
    )
