"""
Activity ledger: append-only event capture and the read-side aggregations
behind the admin dashboards.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Date, Select, delete, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.errors import NotFoundError, StorageError, ValidationError, parse_payload
from nibret.core.logging import request_context
from nibret.core.security import CurrentUser
from nibret.models.activity import PROPERTY_INTEREST_TYPES, Activity, ActivityType
from nibret.models.auth import User
from nibret.models.property import Property
from nibret.schemas.activity import RecentActivityFilters, TrackEvent, parse_details
from nibret.services.activity_queue import ActivityQueue, activity_queue
from nibret.utils.pagination import page
from nibret.utils.time import utcnow, window_start

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"
POPULAR_PROPERTIES_LIMIT = 20
SEARCH_ANALYTICS_LIMIT = 50
SEARCH_HISTORY_LIMIT = 20

_DESCRIPTIONS = {
    ActivityType.LOGIN: "{actor} logged in",
    ActivityType.LOGOUT: "{actor} logged out",
    ActivityType.REGISTER: "{actor} registered an account",
    ActivityType.PROPERTY_VIEW: "{actor} viewed property details",
    ActivityType.PROPERTY_CLICK: "{actor} clicked on property",
    ActivityType.SEARCH: '{actor} searched for "{query}"',
    ActivityType.FILTER_APPLIED: "{actor} applied search filters",
    ActivityType.CONTACT_FORM: "{actor} submitted contact form",
    ActivityType.PROPERTY_UPLOAD: "{actor} uploaded a new property",
    ActivityType.PROPERTY_EDIT: "{actor} edited property details",
    ActivityType.PROPERTY_DELETE: "{actor} deleted a property",
    ActivityType.IMAGE_UPLOAD: "{actor} uploaded an image",
    ActivityType.PAGE_VIEW: "{actor} visited {page}",
    ActivityType.ERROR: "Error: {error}",
    ActivityType.LEAD_CREATED: "{actor} submitted a new lead",
    ActivityType.LEAD_UPDATED: "{actor} updated a lead",
    ActivityType.LEAD_STATUS_UPDATED: "{actor} moved a lead from {status_from} to {status_to}",
    ActivityType.LEAD_DELETED: "{actor} deleted a lead",
    ActivityType.LEAD_CONVERTED: "{actor} converted a lead to a customer",
    ActivityType.LEAD_INTERACTION: "{actor} logged a {interaction} with a lead",
    ActivityType.FOLLOW_UP_SCHEDULED: "{actor} scheduled a lead follow-up",
}


def describe(
    activity_type: str,
    actor_name: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    action: Optional[str] = None,
) -> str:
    """Render the admin-feed sentence for an event. Pure; depends only on its arguments."""
    details = details or {}
    actor = actor_name or ANONYMOUS
    try:
        template = _DESCRIPTIONS[ActivityType(activity_type)]
    except ValueError:
        template = None
    if template is None:
        return f"{actor} performed {action or activity_type}"
    return template.format(
        actor=actor,
        query=details.get("search_query") or "properties",
        page=details.get("page_url") or details.get("referrer") or "a page",
        error=details.get("error_message") or "Unknown error",
        status_from=details.get("status_from") or "unknown",
        status_to=details.get("status_to") or "unknown",
        interaction=(details.get("interaction_type") or "interaction").replace("_", " "),
    )


def _actor_name(actor: Optional[CurrentUser]) -> Optional[str]:
    if actor is None:
        return None
    return actor.name or actor.email


def build_activity(
    activity_type: str,
    action: Optional[str] = None,
    actor: Optional[CurrentUser] = None,
    metadata: Optional[Dict[str, Any]] = None,
    description: Optional[str] = None,
    session_id: Optional[str] = None,
    context: Optional[Dict[str, str]] = None,
) -> Activity:
    """
    Validate ``metadata`` for ``activity_type`` and build an unsaved Activity.

    Request provenance from ``context`` (defaults to the current request) fills
    ip address, user agent and referrer when the payload does not carry them.
    """
    context = request_context() if context is None else context
    metadata = dict(metadata or {})
    for key in ("ip_address", "user_agent", "referrer"):
        value = context.get(key)
        if value and value != "-":
            metadata.setdefault(key, value)

    details = parse_details(activity_type, metadata)
    stored = details.model_dump(mode="json", exclude_none=True, exclude={"type"})

    return Activity(
        id=uuid.uuid4(),
        user_id=actor.id if actor else None,
        type=details.type,
        action=action or details.type,
        description=description or describe(details.type, _actor_name(actor), stored, action),
        details=stored,
        property_id=getattr(details, "property_id", None),
        search_query=getattr(details, "search_query", None),
        session_id=session_id or context.get("session_id") or "anonymous",
        timestamp=utcnow(),
    )


def record_activity(
    activity_type: str,
    action: Optional[str] = None,
    actor: Optional[CurrentUser] = None,
    metadata: Optional[Dict[str, Any]] = None,
    queue: Optional[ActivityQueue] = None,
    **kwargs: Any,
) -> bool:
    """
    Fire-and-forget emission used as a side effect of other operations.

    Never raises: invalid payloads and full queues are logged and dropped.
    """
    try:
        activity = build_activity(activity_type, action, actor, metadata, **kwargs)
    except Exception as exc:
        logger.warning("Discarding %s activity: %s", activity_type, exc)
        return False
    return (queue or activity_queue).enqueue(activity)


# Aggregation statements. Each scans only events at or after ``since``.

def user_activity_statement(user_id: UUID, since: datetime) -> Select:
    return (
        select(Activity)
        .where(Activity.user_id == user_id, Activity.timestamp >= since)
        .order_by(Activity.timestamp.desc())
    )


def popular_properties_statement(since: datetime, limit: int = POPULAR_PROPERTIES_LIMIT) -> Select:
    views = func.count(Activity.id).label("views")
    return (
        select(
            Activity.property_id,
            views,
            func.count(distinct(Activity.user_id)).label("unique_users"),
            Property.title,
            Property.address,
            Property.price,
            Property.currency,
        )
        .outerjoin(Property, Property.id == Activity.property_id)
        .where(
            Activity.type.in_(PROPERTY_INTEREST_TYPES),
            Activity.property_id.is_not(None),
            Activity.timestamp >= since,
        )
        .group_by(Activity.property_id, Property.id)
        .order_by(views.desc())
        .limit(limit)
    )


def search_analytics_statement(since: datetime, limit: int = SEARCH_ANALYTICS_LIMIT) -> Select:
    count = func.count(Activity.id).label("count")
    return (
        select(
            Activity.search_query,
            count,
            func.count(distinct(Activity.user_id)).label("unique_users"),
        )
        .where(
            Activity.type == ActivityType.SEARCH.value,
            Activity.search_query.is_not(None),
            Activity.timestamp >= since,
        )
        .group_by(Activity.search_query)
        .order_by(count.desc())
        .limit(limit)
    )


def daily_stats_statement(since: datetime) -> Select:
    day = func.date(Activity.timestamp, type_=Date).label("day")
    return (
        select(
            day,
            func.count(Activity.id).label("total_activities"),
            func.count(distinct(Activity.user_id)).label("unique_users"),
            func.count(distinct(Activity.type)).label("activity_types"),
        )
        .where(Activity.timestamp >= since)
        .group_by(day)
        .order_by(day.desc())
    )


def user_engagement_statement(since: datetime, limit: Optional[int] = None) -> Select:
    total = func.count(Activity.id).label("total_activities")
    stmt = (
        select(
            Activity.user_id,
            User.first_name,
            User.last_name,
            User.email,
            User.role,
            total,
            func.count(distinct(Activity.type)).label("activity_diversity"),
            func.count(distinct(Activity.session_id)).label("session_count"),
            func.min(Activity.timestamp).label("first_activity"),
            func.max(Activity.timestamp).label("last_activity"),
        )
        .join(User, User.id == Activity.user_id)
        .where(Activity.timestamp >= since)
        .group_by(Activity.user_id, User.id)
        .order_by(total.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    return stmt


def cleanup_statement(cutoff: datetime):
    return delete(Activity).where(Activity.timestamp < cutoff)


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value


class ActivityLedgerService:
    """
    Append and query activity events.

    ``log_activity`` writes synchronously and surfaces storage failures;
    ``track`` goes through the bounded queue and never does.
    """

    def __init__(self, db: AsyncSession, queue: Optional[ActivityQueue] = None):
        self.db = db
        self.queue = queue or activity_queue

    async def log_activity(self, activity: Activity) -> Activity:
        self.db.add(activity)
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Failed to store %s activity: %s", activity.type, exc)
            raise StorageError("Failed to store activity") from exc
        return activity

    def track(
        self,
        event: Any,
        actor: Optional[CurrentUser] = None,
        context: Optional[Dict[str, str]] = None,
    ) -> Activity:
        """
        Accept a client-submitted event and queue it.

        Malformed events raise ValidationError; a full queue only drops the event.
        """
        payload = parse_payload(TrackEvent, event)
        try:
            activity = build_activity(
                payload.type.value,
                action=payload.action,
                actor=actor,
                metadata=payload.metadata,
                description=payload.description,
                session_id=payload.session_id,
                context=context,
            )
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            # loc starts with the event type tag of the union variant
            field = ".".join(["metadata", *(str(part) for part in error["loc"][1:])])
            message = error["msg"].removeprefix("Value error, ")
            raise ValidationError(f"{field}: {message}", field=field) from exc
        self.queue.enqueue(activity)
        return activity

    async def user_activity(self, user_id: UUID, days: int = 30) -> List[Activity]:
        result = await self.db.execute(user_activity_statement(user_id, window_start(days)))
        return list(result.scalars().all())

    async def popular_properties(self, days: int = 30) -> List[Dict[str, Any]]:
        result = await self.db.execute(popular_properties_statement(window_start(days)))
        return [
            {
                "property_id": str(row.property_id),
                "title": row.title,
                "address": row.address,
                "price": row.price,
                "currency": row.currency,
                "views": row.views,
                "unique_users": row.unique_users,
            }
            for row in result.all()
        ]

    async def search_analytics(self, days: int = 30) -> List[Dict[str, Any]]:
        result = await self.db.execute(search_analytics_statement(window_start(days)))
        return [
            {"query": row.search_query, "count": row.count, "unique_users": row.unique_users}
            for row in result.all()
        ]

    async def daily_stats(self, days: int = 30) -> List[Dict[str, Any]]:
        result = await self.db.execute(daily_stats_statement(window_start(days)))
        return [
            {
                "date": _iso(row.day),
                "total_activities": row.total_activities,
                "unique_users": row.unique_users,
                "activity_types": row.activity_types,
            }
            for row in result.all()
        ]

    async def user_engagement(self, days: int = 30, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        result = await self.db.execute(user_engagement_statement(window_start(days), limit))
        return [
            {
                "user_id": str(row.user_id),
                "name": f"{row.first_name} {row.last_name}".strip(),
                "email": row.email,
                "role": row.role,
                "total_activities": row.total_activities,
                "activity_diversity": row.activity_diversity,
                "session_count": row.session_count,
                "first_activity": _iso(row.first_activity),
                "last_activity": _iso(row.last_activity),
            }
            for row in result.all()
        ]

    async def recent(self, filters: Any = None):
        filters = parse_payload(RecentActivityFilters, filters or {})
        conditions = []
        if filters.type is not None:
            conditions.append(Activity.type == filters.type.value)
        if filters.user_id is not None:
            conditions.append(Activity.user_id == filters.user_id)

        total = await self.db.scalar(
            select(func.count()).select_from(Activity).where(*conditions)
        )
        result = await self.db.execute(
            select(Activity)
            .where(*conditions)
            .order_by(Activity.timestamp.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return page(result.scalars().all(), total or 0, filters.page, filters.limit)

    async def user_summary(self, user_id: UUID, days: int = 30) -> Dict[str, Any]:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User")

        activities = await self.user_activity(user_id, days)
        interactions = [a for a in activities if a.type in PROPERTY_INTEREST_TYPES]
        searches = await self.db.execute(
            select(Activity)
            .where(Activity.user_id == user_id, Activity.type == ActivityType.SEARCH.value)
            .order_by(Activity.timestamp.desc())
            .limit(SEARCH_HISTORY_LIMIT)
        )
        search_history = list(searches.scalars().all())

        return {
            "user": user,
            "activities": activities,
            "property_interactions": interactions,
            "search_history": search_history,
            "summary": {
                "total_activities": len(activities),
                "property_views": sum(
                    1 for a in interactions if a.type == ActivityType.PROPERTY_VIEW.value
                ),
                "searches": len(search_history),
                "last_activity": activities[0].timestamp if activities else None,
            },
        }

    async def cleanup(self, older_than_days: int) -> Dict[str, Any]:
        """Bulk-delete events older than the cutoff."""
        if older_than_days < 1:
            raise ValidationError("days: must be at least 1", field="days")
        cutoff = window_start(older_than_days)
        try:
            result = await self.db.execute(cleanup_statement(cutoff))
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StorageError("Failed to clean up activities") from exc
        deleted = result.rowcount or 0
        logger.info("Removed %s activities older than %s", deleted, cutoff.isoformat())
        return {"deleted_count": deleted, "cutoff_date": cutoff}
