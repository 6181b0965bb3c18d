"""
Customer model: qualified contacts with standing search preferences.
"""
from sqlalchemy import Column, String, DateTime, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum

from nibret.core.database import Base
from nibret.utils.time import utcnow


class CustomerStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    POTENTIAL = "potential"
    CONVERTED = "converted"


class CustomerSource(str, enum.Enum):
    WEBSITE = "website"
    REFERRAL = "referral"
    SOCIAL_MEDIA = "social_media"
    ADVERTISEMENT = "advertisement"
    WALK_IN = "walk_in"
    OTHER = "other"


class Customer(Base):
    """
    Created by lead conversion or directly by staff; never auto-deleted.
    """
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255), index=True)
    phone = Column(String(50), nullable=False, index=True)

    # property_types, min_price, max_price, min_beds, max_beds, preferred_locations
    preferences = Column(JSON, default=dict)

    notes = Column(Text)
    source = Column(String(20), nullable=False, default=CustomerSource.WEBSITE.value)
    status = Column(String(20), nullable=False, default=CustomerStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def update_preferences(self, changes: dict) -> dict:
        """Merge ``changes`` into the stored preferences (shallow, new dict for change tracking)."""
        merged = {**(self.preferences or {}), **changes}
        self.preferences = merged
        return merged
