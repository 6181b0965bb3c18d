"""
Pydantic schemas for customer records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from nibret.core.config import settings
from nibret.models.customer import CustomerSource, CustomerStatus
from nibret.models.property import PropertyType
from nibret.schemas.lead import PHONE_PATTERN


class CustomerPreferences(BaseModel):
    """Standing search preferences. Every field is optional so partial merges validate."""

    property_types: Optional[List[PropertyType]] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    min_beds: Optional[int] = Field(None, ge=0, le=20)
    max_beds: Optional[int] = Field(None, ge=0, le=20)
    preferred_locations: Optional[List[str]] = None

    @field_validator("property_types", mode="before")
    @classmethod
    def normalise_types(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if value is None:
            return value
        return [item.strip().lower() if isinstance(item, str) else item for item in value]

    @model_validator(mode="after")
    def check_ranges(self) -> "CustomerPreferences":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        if self.min_beds is not None and self.max_beds is not None and self.min_beds > self.max_beds:
            raise ValueError("min_beds must not exceed max_beds")
        return self

    def changes(self) -> dict:
        return self.model_dump(mode="json", exclude_unset=True)


class _CustomerRules(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @field_validator("source", "status", mode="before", check_fields=False)
    @classmethod
    def normalise_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def normalise_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


class CustomerCreate(_CustomerRules):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: str = Field(..., min_length=5, max_length=50, pattern=PHONE_PATTERN)
    preferences: CustomerPreferences = Field(default_factory=CustomerPreferences)
    notes: Optional[str] = Field(None, max_length=2000)
    source: CustomerSource = CustomerSource.WEBSITE
    status: CustomerStatus = CustomerStatus.ACTIVE


class CustomerUpdate(_CustomerRules):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=50, pattern=PHONE_PATTERN)
    notes: Optional[str] = Field(None, max_length=2000)
    source: Optional[CustomerSource] = None
    status: Optional[CustomerStatus] = None

    @field_validator("first_name", "last_name", "phone", "source", "status")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("may not be null")
        return value


class CustomerFilters(BaseModel):
    status: Optional[CustomerStatus] = None
    source: Optional[CustomerSource] = None
    search: Optional[str] = Field(None, max_length=200)
    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)

    @field_validator("status", "source", "search", mode="before")
    @classmethod
    def blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value.lower() if value else None
        return value


class CustomerResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: Optional[str]
    phone: str
    preferences: Optional[dict]
    notes: Optional[str]
    source: str
    status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class CustomerPage(BaseModel):
    items: List[CustomerResponse]
    total: int
    page: int
    limit: int
    pages: int
