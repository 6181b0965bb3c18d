"""
Lead pipeline: intake, status lifecycle, interaction log and conversion.

Every status change appends an audit entry to the lead's interaction log.
Conversion is the only way into ``converted`` and is performed as two
independent commits: the customer first, then the lead link.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.config import settings
from nibret.core.database import commit_or_raise
from nibret.core.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    parse_payload,
)
from nibret.core.logging import request_context
from nibret.core.metrics import record_lead_status
from nibret.core.security import CurrentUser
from nibret.models.activity import ActivityType
from nibret.models.auth import User
from nibret.models.customer import Customer, CustomerSource, CustomerStatus
from nibret.models.lead import (
    FUNNEL_STAGES,
    TERMINAL_STATUSES,
    InteractionType,
    Lead,
    LeadInteraction,
    LeadStatus,
)
from nibret.models.property import Property
from nibret.schemas.lead import (
    FollowUpCreate,
    InteractionCreate,
    LeadCreate,
    LeadFilters,
    LeadStatusUpdate,
    LeadUpdate,
    NoteCreate,
)
from nibret.services.activity_ledger import record_activity
from nibret.services.customers import CustomerService, require_staff
from nibret.utils.time import utcnow

logger = logging.getLogger(__name__)

_CUSTOMER_SOURCES = {source.value for source in CustomerSource}


def customer_preferences(lead_preferences: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Map a lead's free-form interest onto customer search preferences."""
    prefs = lead_preferences or {}
    mapped = {
        "property_types": prefs.get("property_type") or None,
        "min_price": prefs.get("budget_min"),
        "max_price": prefs.get("budget_max"),
        "min_beds": prefs.get("bedrooms"),
        "preferred_locations": prefs.get("location_preferences") or None,
    }
    return {key: value for key, value in mapped.items() if value is not None}


def lead_conditions(filters: LeadFilters) -> List[Any]:
    conditions: List[Any] = []
    if filters.status is not None:
        conditions.append(Lead.status == filters.status.value)
    if filters.priority is not None:
        conditions.append(Lead.priority == filters.priority.value)
    if filters.source is not None:
        conditions.append(Lead.source == filters.source.value)
    if filters.assigned_to_id is not None:
        conditions.append(Lead.assigned_to_id == filters.assigned_to_id)
    if filters.search:
        term = f"%{filters.search}%"
        conditions.append(
            or_(
                Lead.first_name.ilike(term),
                Lead.last_name.ilike(term),
                Lead.email.ilike(term),
                Lead.phone.ilike(term),
            )
        )
    return conditions


def upcoming_follow_ups_statement(now: datetime, window_days: int = settings.FOLLOW_UP_WINDOW_DAYS):
    return (
        select(Lead)
        .where(
            Lead.follow_up_date >= now,
            Lead.follow_up_date <= now + timedelta(days=window_days),
        )
        .order_by(Lead.follow_up_date.asc())
    )


def overdue_follow_ups_statement(now: datetime):
    return (
        select(Lead)
        .where(
            Lead.follow_up_date < now,
            Lead.status.not_in(TERMINAL_STATUSES),
        )
        .order_by(Lead.follow_up_date.asc())
    )


def lock_lead_statement(lead_id: UUID):
    return select(Lead.id).where(Lead.id == lead_id).with_for_update()


def next_sequence_statement(lead_id: UUID):
    return select(func.coalesce(func.max(LeadInteraction.sequence), 0) + 1).where(
        LeadInteraction.lead_id == lead_id
    )


class LeadPipelineService:
    """
    Lead operations. Intake is public; everything else requires staff.

    ``recorder`` receives activity events; it must never raise.
    """

    def __init__(self, db: AsyncSession, recorder: Callable[..., Any] = record_activity):
        self.db = db
        self.record = recorder

    async def _commit(self, instance: Any = None) -> None:
        await commit_or_raise(self.db, "lead", instance)

    async def _append(self, lead: Lead, interaction_type: str, description: str, **fields: Any):
        """
        Append to the interaction log under a row lock on the lead.

        The lock is held until the caller commits, so concurrent appends to one
        lead are serialised and each reads the sequence the previous one wrote.
        """
        await self.db.execute(lock_lead_statement(lead.id))
        sequence = await self.db.scalar(next_sequence_statement(lead.id))
        return lead.append_interaction(interaction_type, description, sequence=sequence, **fields)

    def _emit(self, activity_type: ActivityType, lead: Lead, actor: Optional[CurrentUser], **metadata: Any) -> None:
        self.record(
            activity_type.value,
            action=activity_type.value,
            actor=actor,
            metadata={"lead_id": str(lead.id), **metadata},
        )

    async def create(
        self,
        data: Any,
        actor: Optional[CurrentUser] = None,
        context: Optional[Dict[str, str]] = None,
    ) -> Lead:
        """Capture a lead with its request provenance. Staff creators are auto-assigned."""
        payload = parse_payload(LeadCreate, data)
        if payload.interested_property_id is not None:
            if await self.db.get(Property, payload.interested_property_id) is None:
                raise ValidationError(
                    "interested_property_id: property does not exist",
                    field="interested_property_id",
                )

        context = request_context() if context is None else context
        values = payload.model_dump(exclude={"property_preferences", "source", "priority"})
        lead = Lead(
            **values,
            source=payload.source.value,
            priority=payload.priority.value,
            status=LeadStatus.NEW.value,
            property_preferences=(
                payload.property_preferences.model_dump(mode="json", exclude_none=True)
                if payload.property_preferences
                else None
            ),
            ip_address=_known(context.get("ip_address")),
            user_agent=_known(context.get("user_agent")),
            referrer_url=_known(context.get("referrer")),
            assigned_to_id=actor.id if actor is not None and actor.is_staff else None,
        )

        self.db.add(lead)
        await self._commit(lead)
        logger.info("Lead %s created from %s", lead.id, lead.source)
        self._emit(ActivityType.LEAD_CREATED, lead, actor)
        return lead

    async def get(self, lead_id: UUID, actor: CurrentUser) -> Lead:
        require_staff(actor)
        lead = await self.db.get(Lead, lead_id)
        if lead is None:
            raise NotFoundError("Lead")
        return lead

    async def list(self, filters: Any, actor: CurrentUser) -> Tuple[List[Lead], int]:
        require_staff(actor)
        filters = parse_payload(LeadFilters, filters or {})
        conditions = lead_conditions(filters)

        column = getattr(Lead, filters.sort_by)
        order = column.asc() if filters.sort_order == "asc" else column.desc()

        total = await self.db.scalar(select(func.count()).select_from(Lead).where(*conditions))
        result = await self.db.execute(
            select(Lead)
            .where(*conditions)
            .order_by(order, Lead.id)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return list(result.scalars().all()), total or 0

    async def update(self, lead_id: UUID, data: Any, actor: CurrentUser) -> Lead:
        lead = await self.get(lead_id, actor)
        payload = parse_payload(LeadUpdate, data)
        changes = payload.model_dump(mode="json", exclude_unset=True)
        if payload.property_preferences is not None:
            changes["property_preferences"] = payload.property_preferences.model_dump(
                mode="json", exclude_none=True
            )
        if "assigned_to_id" in changes and payload.assigned_to_id is not None:
            if await self.db.get(User, payload.assigned_to_id) is None:
                raise ValidationError("assigned_to_id: user does not exist", field="assigned_to_id")
            changes["assigned_to_id"] = payload.assigned_to_id
        if "interested_property_id" in changes and payload.interested_property_id is not None:
            if await self.db.get(Property, payload.interested_property_id) is None:
                raise ValidationError(
                    "interested_property_id: property does not exist", field="interested_property_id"
                )
            changes["interested_property_id"] = payload.interested_property_id

        for field, value in changes.items():
            setattr(lead, field, value)
        await self._commit(lead)
        self._emit(ActivityType.LEAD_UPDATED, lead, actor)
        return lead

    async def update_status(
        self,
        lead_id: UUID,
        status: Any,
        note: Optional[str] = None,
        actor: Optional[CurrentUser] = None,
    ) -> Lead:
        """
        Move a lead to ``status`` and append an audit entry recording the change.

        Any stage may follow any other, except that ``converted`` is reached
        only through ``convert_to_customer`` and a converted lead stays converted.
        """
        lead = await self.get(lead_id, actor)
        payload = parse_payload(LeadStatusUpdate, {"status": status, "note": note})
        new_status = payload.status.value

        if new_status == LeadStatus.CONVERTED.value and lead.converted_to_customer_id is None:
            raise ValidationError(
                "status: convert the lead to a customer to mark it converted", field="status"
            )
        if lead.converted_to_customer_id is not None and new_status != LeadStatus.CONVERTED.value:
            raise ConflictError("A converted lead cannot change status")

        previous = lead.status
        lead.status = new_status
        await self._append(
            lead,
            InteractionType.NOTE.value,
            payload.note or f"Status changed from {previous} to {new_status}",
            status_from=previous,
            status_to=new_status,
            created_by_id=actor.id,
        )
        await self._commit(lead)
        record_lead_status(new_status)
        logger.info("Lead %s status %s -> %s", lead.id, previous, new_status)
        self._emit(
            ActivityType.LEAD_STATUS_UPDATED, lead, actor,
            status_from=previous, status_to=new_status,
        )
        return lead

    async def add_interaction(self, lead_id: UUID, data: Any, actor: CurrentUser) -> Lead:
        lead = await self.get(lead_id, actor)
        payload = parse_payload(InteractionCreate, data)
        await self._append(
            lead,
            payload.type.value,
            payload.description,
            outcome=payload.outcome.value if payload.outcome else None,
            next_action=payload.next_action,
            next_action_date=payload.next_action_date,
            created_by_id=actor.id,
        )
        await self._commit(lead)
        self._emit(
            ActivityType.LEAD_INTERACTION, lead, actor, interaction_type=payload.type.value
        )
        return lead

    async def add_note(self, lead_id: UUID, content: Any, actor: CurrentUser) -> Lead:
        lead = await self.get(lead_id, actor)
        payload = parse_payload(NoteCreate, {"content": content})
        await self._append(lead, InteractionType.NOTE.value, payload.content, created_by_id=actor.id)
        await self._commit(lead)
        self._emit(
            ActivityType.LEAD_INTERACTION, lead, actor, interaction_type=InteractionType.NOTE.value
        )
        return lead

    async def schedule_follow_up(self, lead_id: UUID, data: Any, actor: CurrentUser) -> Lead:
        lead = await self.get(lead_id, actor)
        payload = parse_payload(FollowUpCreate, data)
        lead.follow_up_date = payload.follow_up_date
        await self._append(
            lead,
            InteractionType.FOLLOW_UP.value,
            payload.description or "Follow-up scheduled",
            next_action_date=payload.follow_up_date,
            created_by_id=actor.id,
        )
        await self._commit(lead)
        self._emit(ActivityType.FOLLOW_UP_SCHEDULED, lead, actor)
        return lead

    async def convert_to_customer(self, lead_id: UUID, actor: CurrentUser) -> Tuple[Lead, Customer]:
        """
        Materialise the lead as a customer and link it.

        The customer is committed before the lead is updated. Re-running after a
        failure between the two commits finds the customer by email or phone and
        completes the link.
        """
        lead = await self.get(lead_id, actor)
        customers = CustomerService(self.db)

        customer = None
        if lead.converted_to_customer_id is not None:
            customer = await self.db.get(Customer, lead.converted_to_customer_id)
            if customer is not None and lead.status == LeadStatus.CONVERTED.value:
                return lead, customer

        if customer is None:
            customer = await customers.find_by_contact(lead.email, lead.phone)
        if customer is None:
            customer = Customer(
                first_name=lead.first_name,
                last_name=lead.last_name,
                email=lead.email,
                phone=lead.phone,
                preferences=customer_preferences(lead.property_preferences),
                notes=lead.notes,
                source=lead.source if lead.source in _CUSTOMER_SOURCES else CustomerSource.OTHER.value,
                status=CustomerStatus.CONVERTED.value,
            )
            self.db.add(customer)
            await self._commit(customer)
            logger.info("Customer %s created from lead %s", customer.id, lead.id)

        previous = lead.status
        lead.converted_to_customer_id = customer.id
        lead.converted_at = utcnow()
        lead.status = LeadStatus.CONVERTED.value
        await self._append(
            lead,
            InteractionType.NOTE.value,
            f"Converted to customer {customer.full_name}",
            status_from=previous,
            status_to=LeadStatus.CONVERTED.value,
            created_by_id=actor.id,
        )
        await self._commit(lead)
        record_lead_status(LeadStatus.CONVERTED.value)
        logger.info("Lead %s converted to customer %s", lead.id, customer.id)
        self._emit(
            ActivityType.LEAD_CONVERTED, lead, actor,
            customer_id=str(customer.id), status_from=previous,
            status_to=LeadStatus.CONVERTED.value,
        )
        return lead, customer

    async def delete(self, lead_id: UUID, actor: CurrentUser) -> None:
        lead = await self.get(lead_id, actor)
        await self.db.delete(lead)
        await self._commit()
        logger.info("Lead %s deleted by %s", lead_id, actor.id)
        self._emit(ActivityType.LEAD_DELETED, lead, actor)

    async def get_by_status(self, status: Any, actor: CurrentUser) -> List[Lead]:
        require_staff(actor)
        payload = parse_payload(LeadFilters, {"status": status})
        if payload.status is None:
            raise ValidationError("status: is required", field="status")
        result = await self.db.execute(
            select(Lead)
            .where(Lead.status == payload.status.value)
            .order_by(Lead.created_at.desc())
        )
        return list(result.scalars().all())

    async def status_counts(self, since: Optional[datetime] = None) -> Dict[str, int]:
        stmt = select(Lead.status, func.count(Lead.id)).group_by(Lead.status)
        if since is not None:
            stmt = stmt.where(Lead.created_at >= since)
        result = await self.db.execute(stmt)
        counts = {status.value: 0 for status in LeadStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def stats(self) -> Dict[str, Any]:
        """Counts per status with conversion rate as a percentage of all leads."""
        counts = await self.status_counts()
        total = sum(counts.values())
        converted = counts[LeadStatus.CONVERTED.value]
        return {
            "total": total,
            **counts,
            "conversion_rate": round(converted / total * 100, 2) if total else 0.0,
        }

    async def funnel(self) -> List[Dict[str, Any]]:
        counts = await self.status_counts()
        return [
            {"stage": stage.value, "count": counts[stage.value]} for stage in FUNNEL_STAGES
        ]

    async def by_source(self) -> List[Dict[str, Any]]:
        count = func.count(Lead.id).label("count")
        result = await self.db.execute(
            select(Lead.source, count).group_by(Lead.source).order_by(count.desc())
        )
        return [{"source": source, "count": total} for source, total in result.all()]

    async def upcoming_follow_ups(self, now: Optional[datetime] = None) -> List[Lead]:
        result = await self.db.execute(upcoming_follow_ups_statement(now or utcnow()))
        return list(result.scalars().all())

    async def overdue_follow_ups(self, now: Optional[datetime] = None) -> List[Lead]:
        result = await self.db.execute(overdue_follow_ups_statement(now or utcnow()))
        return list(result.scalars().all())


def _known(value: Optional[str]) -> Optional[str]:
    return value if value and value != "-" else None
