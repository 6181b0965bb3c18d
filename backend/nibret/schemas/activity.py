"""
Activity event schemas.

Event metadata is a tagged union keyed by the activity type: each variant
carries only the fields relevant to that kind of event, plus the request
provenance common to all of them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from nibret.core.config import settings
from nibret.models.activity import ActivityType


class _Provenance(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    ip_address: Optional[str] = Field(None, max_length=64)
    user_agent: Optional[str] = Field(None, max_length=512)
    referrer: Optional[str] = Field(None, max_length=2048)
    page_url: Optional[str] = Field(None, max_length=2048)
    additional_data: Optional[Dict[str, Any]] = None


class SessionEvent(_Provenance):
    type: Literal["login", "logout", "register"]
    success: Optional[bool] = None


class PropertyInterestEvent(_Provenance):
    type: Literal["property_view", "property_click"]
    property_id: UUID


class PropertyChangeEvent(_Provenance):
    type: Literal["property_upload", "property_edit", "property_delete", "image_upload"]
    property_id: Optional[UUID] = None
    success: Optional[bool] = None


class SearchEvent(_Provenance):
    type: Literal["search", "filter_applied"]
    search_query: Optional[str] = Field(None, max_length=500)
    filter_criteria: Optional[Dict[str, Any]] = None


class ContactPayload(BaseModel):
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    message: Optional[str] = Field(None, max_length=2000)


class ContactEvent(_Provenance):
    type: Literal["contact_form"]
    property_id: Optional[UUID] = None
    contact_info: Optional[ContactPayload] = None


class PageViewEvent(_Provenance):
    type: Literal["page_view"]
    duration: Optional[float] = Field(None, ge=0)


class ErrorEvent(_Provenance):
    type: Literal["error"]
    error_message: str = Field("Unknown error", max_length=2000)
    success: bool = False


class LeadEvent(_Provenance):
    type: Literal[
        "lead_created",
        "lead_updated",
        "lead_status_updated",
        "lead_deleted",
        "lead_converted",
        "lead_interaction",
        "follow_up_scheduled",
    ]
    lead_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    status_from: Optional[str] = None
    status_to: Optional[str] = None
    interaction_type: Optional[str] = None


ActivityDetails = Annotated[
    Union[
        SessionEvent,
        PropertyInterestEvent,
        PropertyChangeEvent,
        SearchEvent,
        ContactEvent,
        PageViewEvent,
        ErrorEvent,
        LeadEvent,
    ],
    Field(discriminator="type"),
]

activity_details_adapter: TypeAdapter = TypeAdapter(ActivityDetails)


def parse_details(activity_type: str, metadata: Optional[Dict[str, Any]] = None):
    """Validate ``metadata`` against the variant for ``activity_type``."""
    return activity_details_adapter.validate_python({**(metadata or {}), "type": activity_type})


class TrackEvent(BaseModel):
    """Client-submitted event accepted by the public tracking endpoint."""

    model_config = ConfigDict(str_strip_whitespace=True)

    type: ActivityType
    action: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = Field(None, max_length=255)

    @field_validator("type", mode="before")
    @classmethod
    def normalise_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ActivityResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID]
    type: str
    action: str
    description: str
    details: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    property_id: Optional[UUID]
    search_query: Optional[str]
    session_id: str
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityPage(BaseModel):
    items: List[ActivityResponse]
    total: int
    page: int
    limit: int
    pages: int


class RecentActivityFilters(BaseModel):
    type: Optional[ActivityType] = None
    user_id: Optional[UUID] = None
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=settings.MAX_PAGE_SIZE)
