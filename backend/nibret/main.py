"""
Nibret marketplace API - Main Application Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from slowapi.errors import RateLimitExceeded

from nibret.api.v1.router import api_router
from nibret.core.config import settings
from nibret.core.database import init_db
from nibret.core.errors import DomainError, first_error
from nibret.core.logging import RequestContextMiddleware, setup_logging
from nibret.core.metrics import MetricsMiddleware
from nibret.core.rate_limiter import RateLimitMiddleware, _rate_limit_handler, limiter
from nibret.core.redis import close_redis
from nibret.services.activity_queue import activity_queue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown."""
    # Startup
    setup_logging()
    await init_db()
    activity_queue.start()
    yield
    # Shutdown
    await activity_queue.stop()
    await close_redis()


app = FastAPI(
    title="Nibret",
    description="Real-estate marketplace: property catalog, lead pipeline and activity analytics",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.state.limiter = limiter


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = first_error(exc)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

# Middleware (last added runs first)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Mount Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Include API routes
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "nibret-api"}


@app.get("/")
async def root():
    """Root endpoint with system information."""
    return {
        "service": "Nibret Marketplace API",
        "version": "1.0.0",
        "docs": "/api/docs",
        "health": "/health",
        "metrics": "/metrics",
    }
