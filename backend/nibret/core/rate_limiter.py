"""
SlowAPI rate limiting.

Every route gets DEFAULT_RATE_LIMIT per client. The anonymous write paths
(lead intake, activity tracking, registration) additionally share one
PUBLIC_WRITE_RATE_LIMIT budget, so spreading a burst across them does not
multiply the allowance.
"""

from __future__ import annotations

from slowapi import Limiter, extension as slowapi_extension
from slowapi.middleware import SlowAPIMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from nibret.core.config import settings
from nibret.core.logging import client_ip

PUBLIC_WRITE_SCOPE = "public-write"


def _build_limiter() -> Limiter:
    options = {"key_func": client_ip, "default_limits": [settings.DEFAULT_RATE_LIMIT]}
    try:
        return Limiter(storage_uri=str(settings.REDIS_URL), **options)
    except Exception:  # pragma: no cover - fallback when Redis unavailable
        return Limiter(**options)


limiter = _build_limiter()

# Decorated endpoints must accept ``request: Request``.
public_write_limit = limiter.shared_limit(settings.PUBLIC_WRITE_RATE_LIMIT, scope=PUBLIC_WRITE_SCOPE)


def _rate_limit_handler(request: Request, exc: Exception) -> JSONResponse:
    detail = getattr(exc, "detail", str(exc))
    response = JSONResponse(
        {"success": False, "error": f"Rate limit exceeded: {detail}"}, status_code=429
    )
    view_limit = getattr(request.state, "view_rate_limit", None)
    if view_limit is not None:
        response = limiter._inject_headers(response, view_limit)
    return response


slowapi_extension._rate_limit_exceeded_handler = _rate_limit_handler


class RateLimitMiddleware(SlowAPIMiddleware):
    """Applies the default limit; health checks and scrapes are never throttled."""

    exempt_paths = {
        "/metrics",
        "/health",
        f"{settings.API_V1_PREFIX}/health/liveness",
        f"{settings.API_V1_PREFIX}/health/readiness",
    }

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if request.url.path in self.exempt_paths:
            return await call_next(request)
        return await super().dispatch(request, call_next)
