"""
Activity tracking and admin analytics endpoints.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.config import settings
from nibret.core.database import get_db
from nibret.core.rate_limiter import public_write_limit
from nibret.core.redis import CacheService, get_redis
from nibret.core.security import CurrentUser, UserRole, get_optional_user, require_role
from nibret.schemas.activity import ActivityPage, ActivityResponse, TrackEvent
from nibret.services.activity_ledger import ActivityLedgerService
from nibret.services.analytics import AnalyticsService

router = APIRouter()

admin_only = require_role(*UserRole.ADMINS)


def get_ledger(db: AsyncSession = Depends(get_db)) -> ActivityLedgerService:
    return ActivityLedgerService(db)


def get_analytics(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> AnalyticsService:
    return AnalyticsService(db, cache=CacheService(redis))


def _dump(activities) -> list:
    return [
        ActivityResponse.model_validate(activity).model_dump(mode="json", by_alias=True)
        for activity in activities
    ]


@router.post("/track", status_code=status.HTTP_202_ACCEPTED)
@public_write_limit
async def track_activity(
    request: Request,
    payload: TrackEvent,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    ledger: ActivityLedgerService = Depends(get_ledger),
) -> Dict[str, Any]:
    """
    Accept a client event. The event is queued, not yet written, when this returns;
    under load it may be dropped without the caller being told.
    """
    activity = ledger.track(payload, actor=user)
    return ActivityResponse.model_validate(activity).model_dump(mode="json", by_alias=True)


@router.get("/dashboard")
async def dashboard(
    days: int = Query(settings.ANALYTICS_DEFAULT_DAYS, ge=1, le=365),
    user: CurrentUser = Depends(admin_only),
    analytics: AnalyticsService = Depends(get_analytics),
):
    return await analytics.dashboard(days)


@router.get("/users/{user_id}")
async def user_analytics(
    user_id: UUID,
    days: int = Query(settings.ANALYTICS_DEFAULT_DAYS, ge=1, le=365),
    user: CurrentUser = Depends(admin_only),
    ledger: ActivityLedgerService = Depends(get_ledger),
):
    summary = await ledger.user_summary(user_id, days)
    target = summary["user"]
    return {
        "user": {
            "id": str(target.id),
            "name": target.full_name,
            "email": target.email,
            "role": target.role,
            "created_at": target.created_at.isoformat() if target.created_at else None,
            "last_login_at": target.last_login_at.isoformat() if target.last_login_at else None,
        },
        "activities": _dump(summary["activities"]),
        "property_interactions": _dump(summary["property_interactions"]),
        "search_history": _dump(summary["search_history"]),
        "summary": summary["summary"],
    }


@router.get("/properties/popular")
async def popular_properties(
    days: int = Query(settings.ANALYTICS_DEFAULT_DAYS, ge=1, le=365),
    user: CurrentUser = Depends(admin_only),
    ledger: ActivityLedgerService = Depends(get_ledger),
):
    return {"properties": await ledger.popular_properties(days), "period_days": days}


@router.get("/searches")
async def search_analytics(
    days: int = Query(settings.ANALYTICS_DEFAULT_DAYS, ge=1, le=365),
    user: CurrentUser = Depends(admin_only),
    ledger: ActivityLedgerService = Depends(get_ledger),
):
    return {"searches": await ledger.search_analytics(days), "period_days": days}


@router.get("/daily")
async def daily_stats(
    days: int = Query(settings.ANALYTICS_DEFAULT_DAYS, ge=1, le=365),
    user: CurrentUser = Depends(admin_only),
    ledger: ActivityLedgerService = Depends(get_ledger),
):
    return {"days": await ledger.daily_stats(days), "period_days": days}


@router.get("/engagement")
async def user_engagement(
    days: int = Query(settings.ANALYTICS_DEFAULT_DAYS, ge=1, le=365),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(admin_only),
    ledger: ActivityLedgerService = Depends(get_ledger),
):
    return {"users": await ledger.user_engagement(days, limit), "period_days": days}


@router.get("/leads/funnel")
async def leads_funnel(
    days: int = Query(settings.ANALYTICS_DEFAULT_DAYS, ge=1, le=365),
    user: CurrentUser = Depends(admin_only),
    analytics: AnalyticsService = Depends(get_analytics),
):
    return await analytics.leads_funnel(days)


@router.get("/activities/recent", response_model=ActivityPage)
async def recent_activities(
    type: Optional[str] = Query(None),
    user_id: Optional[UUID] = Query(None),
    page: int = Query(1),
    limit: int = Query(50),
    user: CurrentUser = Depends(admin_only),
    ledger: ActivityLedgerService = Depends(get_ledger),
):
    filters = {"type": type, "user_id": user_id, "page": page, "limit": limit}
    return await ledger.recent({key: value for key, value in filters.items() if value is not None})


@router.delete("/activities/cleanup")
async def cleanup_activities(
    days: int = Query(settings.ACTIVITY_RETENTION_DAYS, ge=1),
    user: CurrentUser = Depends(require_role(UserRole.SUPER_ADMIN)),
    ledger: ActivityLedgerService = Depends(get_ledger),
):
    """Bulk-delete events older than ``days``."""
    result = await ledger.cleanup(days)
    return {
        "deleted_count": result["deleted_count"],
        "cutoff_date": result["cutoff_date"].isoformat(),
    }
