"""
Property catalog: listing intake, the publication and sale-status state
machines, and the search queries behind the management and public listings.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import Select, and_, extract, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from nibret.core.config import settings
from nibret.core.database import commit_or_raise
from nibret.core.errors import (
    AuthorizationError,
    NotFoundError,
    parse_payload,
)
from nibret.core.metrics import record_listing_transition
from nibret.core.security import CurrentUser
from nibret.models.property import (
    ListingType,
    Property,
    PropertyStatus,
    PublishStatus,
)
from nibret.schemas.property import PropertyCreate, PropertySearch, PropertyUpdate

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_NEARBY_RADIUS_KM = 5.0

# Public status filters also match listings marketed that way.
_WIDENED_STATUS = {
    PropertyStatus.FOR_SALE.value: (ListingType.SALE.value, ListingType.BOTH.value),
    PropertyStatus.FOR_RENT.value: (ListingType.RENT.value, ListingType.BOTH.value),
}


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def search_conditions(filters: PropertySearch) -> List[Any]:
    """Predicates shared by both search surfaces (everything except status)."""
    conditions: List[Any] = []
    if filters.search:
        term = f"%{filters.search}%"
        conditions.append(
            or_(
                Property.title.ilike(term),
                Property.description.ilike(term),
                Property.address.ilike(term),
            )
        )
    if filters.property_type:
        conditions.append(
            Property.property_type.in_([_enum_value(t) for t in filters.property_type])
        )
    if filters.min_price is not None:
        conditions.append(Property.price >= filters.min_price)
    if filters.max_price is not None:
        conditions.append(Property.price <= filters.max_price)
    if filters.bedrooms is not None:
        conditions.append(Property.beds >= filters.bedrooms)
    if filters.bathrooms is not None:
        conditions.append(Property.baths >= filters.bathrooms)
    return conditions


def management_conditions(filters: PropertySearch) -> List[Any]:
    """Staff search: exact status match and no implicit publication scope."""
    conditions = search_conditions(filters)
    if filters.status is not None:
        conditions.append(Property.status == _enum_value(filters.status))
    if filters.publish_status is not None:
        conditions.append(Property.publish_status == _enum_value(filters.publish_status))
    return conditions


def public_status_condition(status: Any):
    """
    Status predicate for the public listing.

    A listing's ``status`` and ``listing_type`` can disagree for dual-purpose
    properties, so for_sale/for_rent also match on how the listing is marketed.
    """
    status = _enum_value(status)
    listing_types = _WIDENED_STATUS.get(status)
    if listing_types is None:
        return Property.status == status
    return or_(Property.status == status, Property.listing_type.in_(listing_types))


def public_conditions(filters: PropertySearch) -> List[Any]:
    conditions = search_conditions(filters)
    conditions.append(Property.publish_status == PublishStatus.PUBLISHED.value)
    if filters.status is not None:
        conditions.append(public_status_condition(filters.status))
    return conditions


def sort_clause(sort: str):
    column = getattr(Property, sort.lstrip("-"))
    return column.desc() if sort.startswith("-") else column.asc()


def management_search_statement(filters: PropertySearch) -> Select:
    return (
        select(Property)
        .where(*management_conditions(filters))
        .order_by(sort_clause(filters.sort), Property.id)
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
    )


def public_search_statement(filters: PropertySearch, limit: Optional[int] = None) -> Select:
    cap = settings.PUBLIC_LISTING_LIMIT
    return (
        select(Property)
        .where(*public_conditions(filters))
        .order_by(Property.is_featured.desc(), Property.created_at.desc())
        .limit(min(limit or cap, cap))
    )


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Coarse proximity box around (lat, lng).

    The radius is divided by the Earth's radius and applied to latitude and
    longitude independently. This is an approximation, not a geodesic distance.
    """
    delta = radius_km / EARTH_RADIUS_KM
    return lat - delta, lat + delta, lng - delta, lng + delta


def nearby_statement(lat: float, lng: float, radius_km: float, published_only: bool = True) -> Select:
    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
    conditions = [
        Property.lat.between(min_lat, max_lat),
        Property.lng.between(min_lng, max_lng),
    ]
    if published_only:
        conditions.append(Property.publish_status == PublishStatus.PUBLISHED.value)
    return (
        select(Property)
        .where(and_(*conditions))
        .order_by(Property.is_featured.desc(), Property.created_at.desc())
        .limit(settings.PUBLIC_LISTING_LIMIT)
    )


def increment_views_statement(property_id: UUID):
    return (
        update(Property)
        .where(Property.id == property_id)
        .values(views=Property.views + 1)
        .returning(Property.views)
        .execution_options(synchronize_session=False)
    )


class PropertyCatalogService:
    """
    Listing operations. Mutations are limited to the owner or an administrator;
    featuring is limited to administrators.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self, instance: Optional[Property] = None) -> None:
        await commit_or_raise(self.db, "property", instance)

    @staticmethod
    def _authorize(prop: Property, actor: Optional[CurrentUser], action: str) -> None:
        if actor is None or not (actor.is_admin or prop.is_owned_by(actor.id)):
            raise AuthorizationError(f"Not authorized to {action} this property")

    async def create(self, data: Any, owner: Optional[CurrentUser]) -> Property:
        if owner is None:
            raise AuthorizationError("Authentication required to create a property")
        payload = parse_payload(PropertyCreate, data)

        values = payload.model_dump(mode="json", exclude={"contact_info", "publish_status"})
        prop = Property(
            **values,
            contact_info=(
                payload.contact_info.model_dump(exclude_none=True)
                if payload.contact_info
                else None
            ),
            publish_status=PublishStatus.DRAFT.value,
            is_featured=False,
            views=0,
            owner_id=owner.id,
        )
        prop.apply_publish_status(payload.publish_status.value)

        self.db.add(prop)
        await self._commit(prop)
        logger.info("Property %s created by %s", prop.id, owner.id)
        return prop

    async def get(self, property_id: UUID) -> Property:
        prop = await self.db.get(Property, property_id)
        if prop is None:
            raise NotFoundError("Property")
        return prop

    async def view(self, property_id: UUID, viewer: Optional[CurrentUser] = None) -> Property:
        """Fetch a listing, counting the view unless the viewer owns it."""
        prop = await self.get(property_id)
        if viewer is None or not prop.is_owned_by(viewer.id):
            await self.increment_views(prop)
        return prop

    async def increment_views(self, prop: Property) -> int:
        result = await self.db.execute(increment_views_statement(prop.id))
        views = result.scalar_one()
        await self._commit()
        set_committed_value(prop, "views", views)
        return views

    async def update(self, property_id: UUID, data: Any, actor: CurrentUser) -> Property:
        prop = await self.get(property_id)
        self._authorize(prop, actor, "update")
        payload = parse_payload(PropertyUpdate, data)

        for field, value in payload.changes().items():
            setattr(prop, field, value)

        await self._commit(prop)
        logger.info("Property %s updated by %s", prop.id, actor.id)
        return prop

    async def delete(self, property_id: UUID, actor: CurrentUser) -> None:
        prop = await self.get(property_id)
        self._authorize(prop, actor, "delete")
        await self.db.delete(prop)
        await self._commit()
        logger.info("Property %s deleted by %s", property_id, actor.id)

    async def _transition(
        self, property_id: UUID, actor: CurrentUser, action: str, transition: str, apply
    ) -> Property:
        prop = await self.get(property_id)
        self._authorize(prop, actor, action)
        if apply(prop):
            await self._commit(prop)
            record_listing_transition(transition)
            logger.info(
                "Property %s %s: status=%s publish_status=%s",
                prop.id, action, prop.status, prop.publish_status,
            )
        return prop

    async def publish(self, property_id: UUID, actor: CurrentUser) -> Property:
        return await self._transition(property_id, actor, "publish", "publish", Property.publish)

    async def archive(self, property_id: UUID, actor: CurrentUser) -> Property:
        return await self._transition(property_id, actor, "archive", "archive", Property.archive)

    async def set_as_draft(self, property_id: UUID, actor: CurrentUser) -> Property:
        return await self._transition(property_id, actor, "modify", "draft", Property.set_as_draft)

    async def toggle_sale_status(self, property_id: UUID, actor: CurrentUser) -> Property:
        return await self._transition(
            property_id, actor, "update", "sale_toggle", lambda prop: bool(prop.toggle_sale_status())
        )

    async def set_featured(self, property_id: UUID, featured: bool, actor: CurrentUser) -> Property:
        if actor is None or not actor.is_admin:
            raise AuthorizationError("Only administrators can feature properties")
        prop = await self.get(property_id)
        if prop.is_featured != featured:
            prop.is_featured = featured
            await self._commit(prop)
            record_listing_transition("feature" if featured else "unfeature")
            logger.info("Property %s featured=%s", prop.id, featured)
        return prop

    async def search(self, filters: Any = None) -> Tuple[List[Property], int]:
        """Management search: paginated, no implicit publication scope."""
        filters = parse_payload(PropertySearch, filters or {})
        total = await self.db.scalar(
            select(func.count()).select_from(Property).where(*management_conditions(filters))
        )
        result = await self.db.execute(management_search_statement(filters))
        return list(result.scalars().all()), total or 0

    async def public_search(self, filters: Any = None) -> List[Property]:
        """Published listings only, featured first then newest, capped."""
        filters = parse_payload(PropertySearch, filters or {})
        result = await self.db.execute(public_search_statement(filters))
        return list(result.scalars().all())

    async def nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float = DEFAULT_NEARBY_RADIUS_KM,
        viewer: Optional[CurrentUser] = None,
    ) -> List[Property]:
        published_only = viewer is None or not viewer.is_staff
        result = await self.db.execute(nearby_statement(lat, lng, radius_km, published_only))
        return list(result.scalars().all())

    async def list_owned(
        self,
        owner: CurrentUser,
        publish_status: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = settings.DEFAULT_PAGE_SIZE,
    ) -> Tuple[List[Property], int]:
        filters = parse_payload(
            PropertySearch,
            {"publish_status": publish_status, "status": status, "page": page, "limit": limit},
        )
        conditions = [Property.owner_id == owner.id, *management_conditions(filters)]
        total = await self.db.scalar(
            select(func.count()).select_from(Property).where(*conditions)
        )
        result = await self.db.execute(
            select(Property)
            .where(*conditions)
            .order_by(Property.created_at.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return list(result.scalars().all()), total or 0

    async def status_breakdown(self, actor: CurrentUser) -> Dict[str, Any]:
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can view property statistics")
        by_status = await self.db.execute(
            select(Property.status, func.count(Property.id), func.avg(Property.price))
            .group_by(Property.status)
        )
        by_type = await self.db.execute(
            select(Property.property_type, func.count(Property.id))
            .group_by(Property.property_type)
        )
        return {
            "status_breakdown": [
                {"status": status, "count": count, "avg_price": float(avg or 0)}
                for status, count, avg in by_status.all()
            ],
            "type_breakdown": [
                {"property_type": ptype, "count": count} for ptype, count in by_type.all()
            ],
        }

    async def monthly_stats(self, actor: CurrentUser, months: int = 12) -> List[Dict[str, Any]]:
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can view property statistics")
        year = extract("year", Property.created_at)
        month = extract("month", Property.created_at)
        result = await self.db.execute(
            select(year.label("year"), month.label("month"), func.count(Property.id), func.avg(Property.price))
            .group_by(year, month)
            .order_by(year.desc(), month.desc())
            .limit(months)
        )
        return [
            {"year": int(y), "month": int(m), "count": count, "avg_price": float(avg or 0)}
            for y, m, count, avg in result.all()
        ]