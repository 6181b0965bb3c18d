"""
Pydantic schemas for the lead pipeline.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from nibret.core.config import settings
from nibret.models.lead import (
    InteractionOutcome,
    InteractionType,
    LeadPriority,
    LeadSource,
    LeadStatus,
)
from nibret.models.property import PropertyType

PHONE_PATTERN = r"^[0-9+\-\s()]+$"

LEAD_SORT_FIELDS = ("created_at", "updated_at", "follow_up_date", "priority", "status")


def _lower(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class PropertyPreferences(BaseModel):
    budget_min: Optional[float] = Field(None, ge=0)
    budget_max: Optional[float] = Field(None, ge=0)
    property_type: List[PropertyType] = Field(default_factory=list)
    bedrooms: Optional[int] = Field(None, ge=0, le=20)
    bathrooms: Optional[int] = Field(None, ge=0, le=20)
    location_preferences: List[str] = Field(default_factory=list)
    special_requirements: Optional[str] = Field(None, max_length=1000)

    @field_validator("property_type", mode="before")
    @classmethod
    def normalise_types(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        return [_lower(item) for item in value or []]

    @model_validator(mode="after")
    def check_budget(self) -> "PropertyPreferences":
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("budget_min must not exceed budget_max")
        return self


class _LeadContact(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @field_validator("source", "priority", "status", mode="before", check_fields=False)
    @classmethod
    def normalise_enum(cls, value: Any) -> Any:
        return _lower(value)

    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def normalise_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class LeadCreate(_LeadContact):
    """Public or staff intake payload."""

    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=50, pattern=PHONE_PATTERN)
    source: LeadSource = LeadSource.WEBSITE
    priority: LeadPriority = LeadPriority.MEDIUM
    interested_property_id: Optional[UUID] = None
    property_preferences: Optional[PropertyPreferences] = None
    message: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=2000)
    follow_up_date: Optional[datetime] = None
    utm_source: Optional[str] = Field(None, max_length=255)
    utm_medium: Optional[str] = Field(None, max_length=255)
    utm_campaign: Optional[str] = Field(None, max_length=255)


class LeadUpdate(_LeadContact):
    """Partial staff update of contact, preference and routing fields."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=50, pattern=PHONE_PATTERN)
    source: Optional[LeadSource] = None
    priority: Optional[LeadPriority] = None
    interested_property_id: Optional[UUID] = None
    property_preferences: Optional[PropertyPreferences] = None
    message: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=2000)
    assigned_to_id: Optional[UUID] = None

    @field_validator("first_name", "last_name", "email", "phone", "source", "priority")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("may not be null")
        return value


class LeadStatusUpdate(_LeadContact):
    status: LeadStatus
    note: Optional[str] = Field(None, max_length=2000)


class InteractionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: InteractionType
    description: str = Field(..., min_length=1, max_length=2000)
    outcome: Optional[InteractionOutcome] = None
    next_action: Optional[str] = Field(None, max_length=512)
    next_action_date: Optional[datetime] = None

    @field_validator("type", "outcome", mode="before")
    @classmethod
    def normalise_enum(cls, value: Any) -> Any:
        return _lower(value)


class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class FollowUpCreate(BaseModel):
    follow_up_date: datetime
    description: Optional[str] = Field(None, max_length=2000)


class LeadFilters(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: Optional[LeadStatus] = None
    priority: Optional[LeadPriority] = None
    source: Optional[LeadSource] = None
    assigned_to_id: Optional[UUID] = None
    search: Optional[str] = Field(None, max_length=200)
    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @field_validator("status", "priority", "source", "search", mode="before")
    @classmethod
    def blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("status", "priority", "source", mode="before")
    @classmethod
    def normalise_enum(cls, value: Any) -> Any:
        return _lower(value)

    @field_validator("sort_by")
    @classmethod
    def check_sort_by(cls, value: str) -> str:
        if value not in LEAD_SORT_FIELDS:
            raise ValueError(f"must be one of {', '.join(LEAD_SORT_FIELDS)}")
        return value

    @field_validator("sort_order")
    @classmethod
    def check_sort_order(cls, value: str) -> str:
        value = value.lower()
        if value not in ("asc", "desc"):
            raise ValueError("must be 'asc' or 'desc'")
        return value


class InteractionResponse(BaseModel):
    id: UUID
    sequence: int
    interaction_type: str
    description: str
    outcome: Optional[str]
    next_action: Optional[str]
    next_action_date: Optional[datetime]
    status_from: Optional[str]
    status_to: Optional[str]
    created_by_id: Optional[UUID]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class LeadResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: str
    phone: str
    source: str
    status: str
    priority: str
    interested_property_id: Optional[UUID]
    property_preferences: Optional[dict]
    message: Optional[str]
    notes: Optional[str]
    follow_up_date: Optional[datetime]
    assigned_to_id: Optional[UUID]
    converted_to_customer_id: Optional[UUID]
    converted_at: Optional[datetime]
    utm_source: Optional[str]
    utm_medium: Optional[str]
    utm_campaign: Optional[str]
    interactions: List[InteractionResponse] = Field(default_factory=list)
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class LeadPage(BaseModel):
    items: List[LeadResponse]
    total: int
    page: int
    limit: int
    pages: int
