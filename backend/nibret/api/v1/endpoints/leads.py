"""
Lead pipeline endpoints. Intake is public and rate limited; the rest is staff only.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.config import settings
from nibret.core.database import get_db
from nibret.core.rate_limiter import public_write_limit
from nibret.core.security import CurrentUser, UserRole, get_optional_user, require_role
from nibret.schemas.customer import CustomerResponse
from nibret.schemas.lead import (
    FollowUpCreate,
    InteractionCreate,
    LeadCreate,
    LeadPage,
    LeadResponse,
    LeadStatusUpdate,
    LeadUpdate,
    NoteCreate,
)
from nibret.services.lead_pipeline import LeadPipelineService
from nibret.utils import pagination

router = APIRouter()

staff_only = require_role(*UserRole.STAFF)


def get_pipeline(db: AsyncSession = Depends(get_db)) -> LeadPipelineService:
    return LeadPipelineService(db)


@router.post("", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
@public_write_limit
async def create_lead(
    request: Request,
    payload: LeadCreate,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    """Contact-form intake. Request provenance is captured from the current request."""
    return await pipeline.create(payload, actor=user)


@router.get("", response_model=LeadPage)
async def list_leads(
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    assigned_to_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    filters = {
        "status": status,
        "priority": priority,
        "source": source,
        "assigned_to_id": assigned_to_id,
        "search": search,
        "page": page,
        "limit": limit,
        "sort_by": sort_by,
        "sort_order": sort_order,
    }
    items, total = await pipeline.list(
        {key: value for key, value in filters.items() if value is not None}, user
    )
    return pagination.page(items, total, page, limit)


@router.get("/stats")
async def lead_stats(
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.stats()


@router.get("/funnel")
async def lead_funnel(
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.funnel()


@router.get("/by-source")
async def leads_by_source(
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.by_source()


@router.get("/follow-ups/upcoming", response_model=List[LeadResponse])
async def upcoming_follow_ups(
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    """Follow-ups due within the next week."""
    return await pipeline.upcoming_follow_ups()


@router.get("/follow-ups/overdue", response_model=List[LeadResponse])
async def overdue_follow_ups(
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.overdue_follow_ups()


@router.get("/status/{lead_status}", response_model=List[LeadResponse])
async def leads_by_status(
    lead_status: str,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.get_by_status(lead_status, user)


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: UUID,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.get(lead_id, user)


@router.put("/{lead_id}", response_model=LeadResponse)
async def update_lead(
    lead_id: UUID,
    payload: LeadUpdate,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.update(lead_id, payload, user)


@router.patch("/{lead_id}/status", response_model=LeadResponse)
async def update_lead_status(
    lead_id: UUID,
    payload: LeadStatusUpdate,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.update_status(lead_id, payload.status, payload.note, actor=user)


@router.post("/{lead_id}/interactions", response_model=LeadResponse)
async def add_interaction(
    lead_id: UUID,
    payload: InteractionCreate,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.add_interaction(lead_id, payload, user)


@router.post("/{lead_id}/notes", response_model=LeadResponse)
async def add_note(
    lead_id: UUID,
    payload: NoteCreate,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.add_note(lead_id, payload.content, user)


@router.post("/{lead_id}/follow-up", response_model=LeadResponse)
async def schedule_follow_up(
    lead_id: UUID,
    payload: FollowUpCreate,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    return await pipeline.schedule_follow_up(lead_id, payload, user)


@router.post("/{lead_id}/convert")
async def convert_lead(
    lead_id: UUID,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    """Create (or reconcile) the customer for this lead and link it."""
    lead, customer = await pipeline.convert_to_customer(lead_id, user)
    return {
        "lead": LeadResponse.model_validate(lead),
        "customer": CustomerResponse.model_validate(customer),
    }


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead(
    lead_id: UUID,
    user: CurrentUser = Depends(staff_only),
    pipeline: LeadPipelineService = Depends(get_pipeline),
):
    await pipeline.delete(lead_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
