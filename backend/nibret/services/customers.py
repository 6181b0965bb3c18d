"""
Customer records: staff-managed contacts with standing search preferences.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.database import commit_or_raise
from nibret.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    parse_payload,
)
from nibret.core.security import CurrentUser
from nibret.models.customer import Customer
from nibret.models.lead import Lead
from nibret.schemas.customer import (
    CustomerCreate,
    CustomerFilters,
    CustomerPreferences,
    CustomerUpdate,
)

logger = logging.getLogger(__name__)


def require_staff(actor: Optional[CurrentUser]) -> CurrentUser:
    if actor is None or not actor.is_staff:
        raise AuthorizationError("Staff access required")
    return actor


def contact_match(email: Optional[str], phone: Optional[str]):
    """Predicate matching an existing customer by email or phone."""
    clauses = []
    if email:
        clauses.append(func.lower(Customer.email) == email.lower())
    if phone:
        clauses.append(Customer.phone == phone)
    return or_(*clauses)


class CustomerService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self, instance: Optional[Customer] = None) -> None:
        await commit_or_raise(self.db, "customer", instance)

    async def find_by_contact(
        self,
        email: Optional[str],
        phone: Optional[str],
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Customer]:
        if not email and not phone:
            return None
        stmt = select(Customer).where(contact_match(email, phone))
        if exclude_id is not None:
            stmt = stmt.where(Customer.id != exclude_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalars().first()

    async def create(self, data: Any, actor: CurrentUser) -> Customer:
        require_staff(actor)
        payload = parse_payload(CustomerCreate, data)

        if await self.find_by_contact(payload.email, payload.phone):
            raise ConflictError("A customer with this email or phone already exists")

        customer = Customer(
            **payload.model_dump(mode="json", exclude={"preferences"}),
            preferences=payload.preferences.model_dump(mode="json", exclude_none=True),
        )
        self.db.add(customer)
        await self._commit(customer)
        logger.info("Customer %s created by %s", customer.id, actor.id)
        return customer

    async def get(self, customer_id: UUID, actor: CurrentUser) -> Customer:
        require_staff(actor)
        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer")
        return customer

    async def list(self, filters: Any, actor: CurrentUser) -> Tuple[List[Customer], int]:
        require_staff(actor)
        filters = parse_payload(CustomerFilters, filters or {})
        conditions = []
        if filters.status is not None:
            conditions.append(Customer.status == filters.status.value)
        if filters.source is not None:
            conditions.append(Customer.source == filters.source.value)
        if filters.search:
            term = f"%{filters.search}%"
            conditions.append(
                or_(
                    Customer.first_name.ilike(term),
                    Customer.last_name.ilike(term),
                    Customer.email.ilike(term),
                    Customer.phone.ilike(term),
                )
            )

        total = await self.db.scalar(
            select(func.count()).select_from(Customer).where(*conditions)
        )
        result = await self.db.execute(
            select(Customer)
            .where(*conditions)
            .order_by(Customer.created_at.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return list(result.scalars().all()), total or 0

    async def update(self, customer_id: UUID, data: Any, actor: CurrentUser) -> Customer:
        customer = await self.get(customer_id, actor)
        payload = parse_payload(CustomerUpdate, data)
        changes = payload.model_dump(mode="json", exclude_unset=True)

        if {"email", "phone"} & changes.keys():
            clash = await self.find_by_contact(
                changes.get("email"), changes.get("phone"), exclude_id=customer.id
            )
            if clash is not None:
                raise ConflictError("A customer with this email or phone already exists")

        for field, value in changes.items():
            setattr(customer, field, value)
        await self._commit(customer)
        return customer

    async def update_preferences(self, customer_id: UUID, data: Any, actor: CurrentUser) -> Dict[str, Any]:
        """Merge a partial preference update into the stored preferences."""
        customer = await self.get(customer_id, actor)
        payload = parse_payload(CustomerPreferences, data)
        # Validate the merged result so cross-field bounds still hold.
        parse_payload(CustomerPreferences, {**(customer.preferences or {}), **payload.changes()})
        merged = customer.update_preferences(payload.changes())
        await self._commit(customer)
        logger.info("Customer %s preferences updated", customer.id)
        return merged

    async def delete(self, customer_id: UUID, actor: CurrentUser) -> None:
        customer = await self.get(customer_id, actor)
        linked = await self.db.scalar(
            select(func.count()).select_from(Lead).where(Lead.converted_to_customer_id == customer.id)
        )
        if linked:
            raise ConflictError("Customer is linked to a converted lead")
        await self.db.delete(customer)
        await self._commit()
        logger.info("Customer %s deleted by %s", customer_id, actor.id)
