"""
Convenience exports for API v1 endpoint routers.

This allows ``from nibret.api.v1.endpoints import leads_router`` style imports
used by the aggregate router module.
"""

from .analytics import router as analytics_router
from .auth import router as auth_router
from .customers import router as customers_router
from .health import router as health_router
from .leads import router as leads_router
from .properties import router as properties_router

__all__ = [
    "analytics_router",
    "auth_router",
    "customers_router",
    "health_router",
    "leads_router",
    "properties_router",
]
