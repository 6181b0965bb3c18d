"""
Pydantic schemas for property intake, updates, search filters and responses.

Intake is permissive: numeric strings are coerced, enum values and currency
codes are case-normalised and blank optional fields are treated as absent.
Bounds are enforced after coercion so the first violated constraint is the one
reported back to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from nibret.core.config import settings
from nibret.models.property import (
    Currency,
    ListingType,
    PropertyStatus,
    PropertyType,
    PublishStatus,
)
from nibret.utils.time import utcnow

MIN_YEAR_BUILT = 1800
YEAR_BUILT_LOOKAHEAD = 5

SORTABLE_FIELDS = ("created_at", "price", "views", "beds")

_ENUM_FIELDS = ("property_type", "status", "publish_status", "listing_type")
_OPTIONAL_NUMERIC_FIELDS = ("lat", "lng", "year_built", "lot_size")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ContactInfo(BaseModel):
    """Listing contact details. An all-blank record is dropped."""

    model_config = ConfigDict(str_strip_whitespace=True)

    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    agent_name: Optional[str] = Field(None, max_length=100)

    @field_validator("phone", "email", "agent_name", mode="before")
    @classmethod
    def blank_is_absent(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def is_empty(self) -> bool:
        return not any((self.phone, self.email, self.agent_name))


class _PropertyRules(BaseModel):
    """Normalisation and bound checks shared by create and update payloads."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @field_validator("currency", mode="before", check_fields=False)
    @classmethod
    def normalise_currency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator(*_ENUM_FIELDS, mode="before", check_fields=False)
    @classmethod
    def normalise_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator(*_OPTIONAL_NUMERIC_FIELDS, "description", mode="before", check_fields=False)
    @classmethod
    def blank_is_absent(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("year_built", check_fields=False)
    @classmethod
    def check_year_built(cls, value: Optional[int]) -> Optional[int]:
        if value is None:
            return value
        latest = utcnow().year + YEAR_BUILT_LOOKAHEAD
        if not MIN_YEAR_BUILT <= value <= latest:
            raise ValueError(f"must be between {MIN_YEAR_BUILT} and {latest}")
        return value

    @field_validator("features", mode="before", check_fields=False)
    @classmethod
    def split_features(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split(",")
        return value

    @field_validator("features", check_fields=False)
    @classmethod
    def dedupe_features(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        seen: List[str] = []
        for tag in value:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @field_validator("images", check_fields=False)
    @classmethod
    def check_image_urls(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        for url in value:
            if not url.startswith(("http://", "https://")):
                raise ValueError("images must be http(s) URLs")
        return value

    @field_validator("contact_info", check_fields=False)
    @classmethod
    def drop_empty_contact(cls, value: Optional[ContactInfo]) -> Optional[ContactInfo]:
        if value is not None and value.is_empty():
            return None
        return value


class PropertyCreate(_PropertyRules):
    """Payload for creating a listing."""

    title: str = Field(..., min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    price: float = Field(..., ge=0)
    currency: Currency = Currency.ETB
    beds: int = Field(..., ge=0, le=20)
    baths: int = Field(..., ge=0, le=20)
    sqft: float = Field(..., ge=1)
    property_type: PropertyType
    year_built: Optional[int] = None
    lot_size: Optional[float] = Field(None, ge=0)
    features: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    address: str = Field(..., min_length=10, max_length=500)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    status: PropertyStatus = PropertyStatus.FOR_SALE
    publish_status: PublishStatus = PublishStatus.DRAFT
    listing_type: ListingType = ListingType.SALE
    contact_info: Optional[ContactInfo] = None

    @model_validator(mode="after")
    def default_coordinates(self) -> "PropertyCreate":
        if self.lat is None:
            self.lat = settings.DEFAULT_LATITUDE
        if self.lng is None:
            self.lng = settings.DEFAULT_LONGITUDE
        return self


_REQUIRED_ON_UPDATE = (
    "title", "price", "currency", "beds", "baths", "sqft", "property_type",
    "address", "lat", "lng", "status", "listing_type",
)


class PropertyUpdate(_PropertyRules):
    """Partial update. Only fields present in the payload are applied."""

    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[Currency] = None
    beds: Optional[int] = Field(None, ge=0, le=20)
    baths: Optional[int] = Field(None, ge=0, le=20)
    sqft: Optional[float] = Field(None, ge=1)
    property_type: Optional[PropertyType] = None
    year_built: Optional[int] = None
    lot_size: Optional[float] = Field(None, ge=0)
    features: Optional[List[str]] = None
    images: Optional[List[str]] = None
    address: Optional[str] = Field(None, min_length=10, max_length=500)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    status: Optional[PropertyStatus] = None
    listing_type: Optional[ListingType] = None
    contact_info: Optional[ContactInfo] = None

    @field_validator(*_REQUIRED_ON_UPDATE)
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> dict:
        """Fields explicitly supplied, with enums reduced to their stored values."""
        data = self.model_dump(mode="json", exclude_unset=True)
        if "contact_info" in self.model_fields_set and self.contact_info is not None:
            data["contact_info"] = self.contact_info.model_dump(exclude_none=True)
        return data


class PropertySearch(BaseModel):
    """Filters shared by the management and public listing searches."""

    model_config = ConfigDict(str_strip_whitespace=True)

    search: Optional[str] = Field(None, max_length=200)
    property_type: List[PropertyType] = Field(default_factory=list)
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    bedrooms: Optional[int] = Field(None, ge=0, le=20)
    bathrooms: Optional[int] = Field(None, ge=0, le=20)
    status: Optional[PropertyStatus] = None
    publish_status: Optional[PublishStatus] = None
    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    sort: str = "-created_at"

    @field_validator("property_type", mode="before")
    @classmethod
    def split_types(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        types = []
        for item in value:
            if isinstance(item, str):
                types.extend(part.strip().lower() for part in item.split(",") if part.strip())
            else:
                types.append(item)
        return types

    @field_validator("status", "publish_status", mode="before")
    @classmethod
    def normalise_status(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("search", mode="before")
    @classmethod
    def blank_search(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("sort")
    @classmethod
    def check_sort(cls, value: str) -> str:
        if value.lstrip("-") not in SORTABLE_FIELDS:
            raise ValueError(f"must be one of {', '.join(SORTABLE_FIELDS)} (prefix '-' for descending)")
        return value

    @model_validator(mode="after")
    def check_price_range(self) -> "PropertySearch":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self


class ContactInfoResponse(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    agent_name: Optional[str] = None


class PropertyResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str]
    price: float
    currency: str
    beds: int
    baths: int
    sqft: float
    property_type: str
    year_built: Optional[int]
    lot_size: Optional[float]
    age: Optional[int]
    features: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    address: str
    lat: float
    lng: float
    status: str
    publish_status: str
    listing_type: str
    contact_info: Optional[ContactInfoResponse] = None
    is_featured: bool
    views: int
    owner_id: UUID
    published_at: Optional[datetime]
    archived_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("features", "images", mode="before")
    @classmethod
    def none_is_empty(cls, value: Any) -> Any:
        return value or []


class PropertyPage(BaseModel):
    items: List[PropertyResponse]
    total: int
    page: int
    limit: int
    pages: int


class FeatureToggle(BaseModel):
    is_featured: bool
