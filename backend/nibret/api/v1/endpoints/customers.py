"""
Customer endpoints (staff only).
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.config import settings
from nibret.core.database import get_db
from nibret.core.security import CurrentUser, UserRole, require_role
from nibret.schemas.customer import (
    CustomerCreate,
    CustomerPage,
    CustomerPreferences,
    CustomerResponse,
    CustomerUpdate,
)
from nibret.services.customers import CustomerService
from nibret.utils import pagination

router = APIRouter()

staff_only = require_role(*UserRole.STAFF)


def get_customers(db: AsyncSession = Depends(get_db)) -> CustomerService:
    return CustomerService(db)


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreate,
    user: CurrentUser = Depends(staff_only),
    customers: CustomerService = Depends(get_customers),
):
    return await customers.create(payload, user)


@router.get("", response_model=CustomerPage)
async def list_customers(
    status: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE),
    user: CurrentUser = Depends(staff_only),
    customers: CustomerService = Depends(get_customers),
):
    filters = {"status": status, "source": source, "search": search, "page": page, "limit": limit}
    items, total = await customers.list(
        {key: value for key, value in filters.items() if value is not None}, user
    )
    return pagination.page(items, total, page, limit)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: UUID,
    user: CurrentUser = Depends(staff_only),
    customers: CustomerService = Depends(get_customers),
):
    return await customers.get(customer_id, user)


@router.put("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: UUID,
    payload: CustomerUpdate,
    user: CurrentUser = Depends(staff_only),
    customers: CustomerService = Depends(get_customers),
):
    return await customers.update(customer_id, payload, user)


@router.patch("/{customer_id}/preferences")
async def update_customer_preferences(
    customer_id: UUID,
    payload: CustomerPreferences,
    user: CurrentUser = Depends(staff_only),
    customers: CustomerService = Depends(get_customers),
) -> Dict[str, Any]:
    """Merge the supplied keys into the stored preferences; omitted keys are kept."""
    preferences = await customers.update_preferences(customer_id, payload, user)
    return {"preferences": preferences}


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(
    customer_id: UUID,
    user: CurrentUser = Depends(staff_only),
    customers: CustomerService = Depends(get_customers),
):
    await customers.delete(customer_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
