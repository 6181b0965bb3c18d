"""
Admin dashboard: overview counts plus the ledger and lead-pipeline reports,
cached briefly in Redis.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.config import settings
from nibret.core.redis import CacheService
from nibret.models.activity import Activity
from nibret.models.auth import User
from nibret.models.lead import Lead, LeadStatus
from nibret.models.property import Property
from nibret.schemas.activity import ActivityResponse
from nibret.services.activity_ledger import ActivityLedgerService
from nibret.services.lead_pipeline import LeadPipelineService
from nibret.utils.time import utcnow

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 50
ENGAGEMENT_LIMIT = 20


def growth_percentage(current: int, previous: int) -> float:
    """Change relative to the previous window; 0 when there is no baseline."""
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 2)


class AnalyticsService:
    def __init__(self, db: AsyncSession, cache: Optional[CacheService] = None):
        self.db = db
        self.cache = cache
        self.ledger = ActivityLedgerService(db)
        self.leads = LeadPipelineService(db)

    async def dashboard(self, days: int = settings.ANALYTICS_DEFAULT_DAYS) -> Dict[str, Any]:
        if self.cache is None:
            return await self.build_dashboard(days)
        return await self.cache.get_or_compute(
            self.cache.key("analytics", "dashboard", days),
            lambda: self.build_dashboard(days),
            ttl=settings.ANALYTICS_CACHE_TTL,
        )

    async def build_dashboard(self, days: int) -> Dict[str, Any]:
        end = utcnow()
        start = end - timedelta(days=days)
        previous_start = start - timedelta(days=days)

        total_users = await self.db.scalar(
            select(func.count()).select_from(User).where(User.is_active.is_(True))
        )
        total_properties = await self.db.scalar(select(func.count()).select_from(Property))
        total_leads = await self.db.scalar(select(func.count()).select_from(Lead))
        current_users = await self.db.scalar(
            select(func.count()).select_from(User).where(User.created_at >= start)
        )
        previous_users = await self.db.scalar(
            select(func.count())
            .select_from(User)
            .where(User.created_at >= previous_start, User.created_at < start)
        )

        recent = await self.db.execute(
            select(Activity)
            .where(Activity.timestamp >= start)
            .order_by(Activity.timestamp.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )

        return {
            "overview": {
                "total_users": total_users or 0,
                "total_properties": total_properties or 0,
                "total_leads": total_leads or 0,
                "user_growth": growth_percentage(current_users or 0, previous_users or 0),
            },
            "recent_activities": [
                ActivityResponse.model_validate(activity).model_dump(mode="json", by_alias=True)
                for activity in recent.scalars().all()
            ],
            "popular_properties": await self.ledger.popular_properties(days),
            "search_analytics": await self.ledger.search_analytics(days),
            "daily_stats": await self.ledger.daily_stats(days),
            "user_engagement": await self.ledger.user_engagement(days, limit=ENGAGEMENT_LIMIT),
            "lead_stats": await self.leads.stats(),
            "conversion_funnel": await self.leads.funnel(),
            "period": {
                "days": days,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            },
        }

    async def leads_funnel(self, days: int = settings.ANALYTICS_DEFAULT_DAYS) -> Dict[str, Any]:
        """Status counts for leads created in the window, with each stage's share."""
        counts = await self.leads.status_counts(since=utcnow() - timedelta(days=days))
        total = sum(counts.values())
        funnel = [
            {
                "status": status.value,
                "count": counts[status.value],
                "percentage": round(counts[status.value] / total * 100, 2) if total else 0.0,
            }
            for status in LeadStatus
        ]
        funnel.sort(key=lambda stage: stage["count"], reverse=True)
        return {"funnel": funnel, "total_leads": total, "period_days": days}
