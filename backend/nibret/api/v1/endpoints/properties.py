"""
Property catalog endpoints: public listing and detail, owner management,
publication transitions and admin statistics.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.config import settings
from nibret.core.database import get_db
from nibret.core.security import (
    CurrentUser,
    UserRole,
    get_current_user,
    get_optional_user,
    require_role,
)
from nibret.models.activity import ActivityType
from nibret.schemas.property import (
    FeatureToggle,
    PropertyCreate,
    PropertyPage,
    PropertyResponse,
    PropertyUpdate,
)
from nibret.services.activity_ledger import record_activity
from nibret.services.property_catalog import DEFAULT_NEARBY_RADIUS_KM, PropertyCatalogService
from nibret.utils import pagination

router = APIRouter()


def get_catalog(db: AsyncSession = Depends(get_db)) -> PropertyCatalogService:
    return PropertyCatalogService(db)


def _search_filters(
    search: Optional[str] = Query(None),
    property_type: Optional[List[str]] = Query(None, description="Property types, repeated or comma separated"),
    type_: Optional[List[str]] = Query(None, alias="type"),
    type_array: Optional[List[str]] = Query(None, alias="type[]"),
    min_price: Optional[float] = Query(None),
    max_price: Optional[float] = Query(None),
    bedrooms: Optional[int] = Query(None),
    bathrooms: Optional[int] = Query(None),
    bedroom: Optional[int] = Query(None),
    bathroom: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    publish_status: Optional[str] = Query(None),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    sort: Optional[str] = Query(None),
) -> dict:
    """
    Raw query parameters; the catalog validates and reports the first bad field.

    ``type`` and ``type[]`` add to ``property_type``; ``bedroom`` and ``bathroom``
    stand in for the plural names when those are absent.
    """
    types = (property_type or []) + (type_ or []) + (type_array or [])
    filters = {
        "search": search,
        "property_type": types or None,
        "min_price": min_price,
        "max_price": max_price,
        "bedrooms": bedrooms if bedrooms is not None else bedroom,
        "bathrooms": bathrooms if bathrooms is not None else bathroom,
        "status": status,
        "publish_status": publish_status,
        "page": page,
        "limit": limit,
        "sort": sort,
    }
    return {key: value for key, value in filters.items() if value is not None}


def _limit(filters: dict) -> int:
    return filters.get("limit") or settings.DEFAULT_PAGE_SIZE


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
async def create_property(
    payload: PropertyCreate,
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    """Create a listing owned by the caller. Listings start as drafts unless published."""
    prop = await catalog.create(payload, user)
    record_activity(
        ActivityType.PROPERTY_UPLOAD.value,
        action="create_property",
        actor=user,
        metadata={"property_id": str(prop.id), "success": True},
    )
    return prop


@router.get("", response_model=List[PropertyResponse])
async def list_public_properties(
    filters: dict = Depends(_search_filters),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    """Published listings, featured first then newest."""
    return await catalog.public_search(filters)


@router.get("/manage", response_model=PropertyPage)
async def search_properties(
    filters: dict = Depends(_search_filters),
    user: CurrentUser = Depends(require_role(*UserRole.STAFF)),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    items, total = await catalog.search(filters)
    return pagination.page(items, total, filters.get("page", 1), _limit(filters))


@router.get("/nearby", response_model=List[PropertyResponse])
async def nearby_properties(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(DEFAULT_NEARBY_RADIUS_KM, gt=0, le=100, description="Radius in km"),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    return await catalog.nearby(lat, lng, radius, viewer=user)


@router.get("/mine", response_model=PropertyPage)
async def my_properties(
    publish_status: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    kwargs = {"publish_status": publish_status, "status": status, "page": page}
    if limit is not None:
        kwargs["limit"] = limit
    items, total = await catalog.list_owned(user, **kwargs)
    return pagination.page(items, total, page, _limit(kwargs))


@router.get("/stats/breakdown")
async def property_breakdown(
    user: CurrentUser = Depends(require_role(*UserRole.ADMINS)),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    return await catalog.status_breakdown(user)


@router.get("/stats/monthly")
async def property_monthly_stats(
    months: int = Query(12, ge=1, le=60),
    user: CurrentUser = Depends(require_role(*UserRole.ADMINS)),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    return await catalog.monthly_stats(user, months)


@router.get("/{property_id}", response_model=PropertyResponse)
async def get_property(
    property_id: UUID,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    """Listing detail. Counts a view unless the caller owns the listing."""
    prop = await catalog.view(property_id, viewer=user)
    record_activity(
        ActivityType.PROPERTY_VIEW.value,
        action="view_property",
        actor=user,
        metadata={"property_id": str(prop.id)},
    )
    return prop


@router.put("/{property_id}", response_model=PropertyResponse)
async def update_property(
    property_id: UUID,
    payload: PropertyUpdate,
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    prop = await catalog.update(property_id, payload, user)
    record_activity(
        ActivityType.PROPERTY_EDIT.value,
        action="update_property",
        actor=user,
        metadata={"property_id": str(prop.id), "success": True},
    )
    return prop


@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    property_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    await catalog.delete(property_id, user)
    record_activity(
        ActivityType.PROPERTY_DELETE.value,
        action="delete_property",
        actor=user,
        metadata={"property_id": str(property_id), "success": True},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{property_id}/status", response_model=PropertyResponse)
async def toggle_sale_status(
    property_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    """Flip for_sale <-> sold and for_rent <-> rented."""
    return await catalog.toggle_sale_status(property_id, user)


@router.post("/{property_id}/publish", response_model=PropertyResponse)
async def publish_property(
    property_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    return await catalog.publish(property_id, user)


@router.post("/{property_id}/archive", response_model=PropertyResponse)
async def archive_property(
    property_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    return await catalog.archive(property_id, user)


@router.post("/{property_id}/draft", response_model=PropertyResponse)
async def draft_property(
    property_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    return await catalog.set_as_draft(property_id, user)


@router.patch("/{property_id}/feature", response_model=PropertyResponse)
async def feature_property(
    property_id: UUID,
    payload: FeatureToggle,
    user: CurrentUser = Depends(require_role(*UserRole.ADMINS)),
    catalog: PropertyCatalogService = Depends(get_catalog),
):
    return await catalog.set_featured(property_id, payload.is_featured, user)
