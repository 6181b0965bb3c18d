"""
API v1 router - aggregates all endpoint routers.
"""

from fastapi import APIRouter

from nibret.api.v1.endpoints import (
    analytics_router,
    auth_router,
    customers_router,
    health_router,
    leads_router,
    properties_router,
)

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(properties_router, prefix="/properties", tags=["properties"])
api_router.include_router(leads_router, prefix="/leads", tags=["leads"])
api_router.include_router(customers_router, prefix="/customers", tags=["customers"])
api_router.include_router(analytics_router, prefix="/analytics", tags=["analytics"])
