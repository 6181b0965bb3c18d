"""
Logging configuration with structured JSON logging and request context support.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict

from fastapi import Request
from pythonjsonlogger import jsonlogger
from starlette.middleware.base import BaseHTTPMiddleware

from nibret.core.config import settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
user_agent_ctx: ContextVar[str] = ContextVar("user_agent", default="-")
session_id_ctx: ContextVar[str] = ContextVar("session_id", default="anonymous")
client_ip_ctx: ContextVar[str] = ContextVar("client_ip", default="-")
referrer_ctx: ContextVar[str] = ContextVar("referrer", default="")


class RequestContextFilter(logging.Filter):
    """Inject request metadata into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get("-")
        record.user_agent = user_agent_ctx.get("-")
        record.session_id = session_id_ctx.get("anonymous")
        return True


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop when behind the proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "-"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Populate context variables for request scoped logging and activity capture."""

    async def dispatch(self, request: Request, call_next) -> Any:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        user_agent = request.headers.get("user-agent", "unknown")
        session_id = request.headers.get("x-session-id") or "anonymous"
        ip_address = client_ip(request)
        referrer = request.headers.get("referer", "")

        request.state.request_id = request_id
        tokens = [
            (request_id_ctx, request_id_ctx.set(request_id)),
            (user_agent_ctx, user_agent_ctx.set(user_agent)),
            (session_id_ctx, session_id_ctx.set(session_id)),
            (client_ip_ctx, client_ip_ctx.set(ip_address)),
            (referrer_ctx, referrer_ctx.set(referrer)),
        ]

        try:
            response = await call_next(request)
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


def request_context() -> Dict[str, str]:
    """Snapshot of the current request context, used as activity provenance."""
    return {
        "ip_address": client_ip_ctx.get("-"),
        "user_agent": user_agent_ctx.get("-"),
        "referrer": referrer_ctx.get(""),
        "session_id": session_id_ctx.get("anonymous"),
    }


def _build_formatter() -> jsonlogger.JsonFormatter:
    """Create JSON formatter with default field set."""
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s %(pathname)s %(lineno)d "
        "%(request_id)s %(user_agent)s %(session_id)s"
    )


def setup_logging():
    """Configure structured JSON logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter())
    handler.addFilter(RequestContextFilter())
    root_logger.addHandler(handler)

    # Ensure uvicorn loggers propagate to root for consistent formatting.
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    # Quiet noisy libraries while preserving error output.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


__all__ = [
    "RequestContextMiddleware",
    "RequestContextFilter",
    "request_context",
    "setup_logging",
    "request_id_ctx",
    "user_agent_ctx",
    "session_id_ctx",
    "client_ip_ctx",
    "referrer_ctx",
]
