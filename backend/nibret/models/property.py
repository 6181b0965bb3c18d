"""
Property listing model and its status axes.
"""
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, Boolean,
    ForeignKey, JSON, Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
import enum

from nibret.core.database import Base
from nibret.utils.time import utcnow


class PropertyType(str, enum.Enum):
    """Kinds of property that can be listed."""
    HOUSE = "house"
    APARTMENT = "apartment"
    CONDO = "condo"
    VILLA = "villa"
    TOWNHOUSE = "townhouse"
    STUDIO = "studio"
    OTHER = "other"


class PropertyStatus(str, enum.Enum):
    """Transactional status of a listing."""
    FOR_SALE = "for_sale"
    FOR_RENT = "for_rent"
    SOLD = "sold"
    RENTED = "rented"
    OFF_MARKET = "off_market"


class PublishStatus(str, enum.Enum):
    """Public visibility of a listing, independent of its sale/rent status."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    PENDING_REVIEW = "pending_review"


class ListingType(str, enum.Enum):
    """How a property is marketed, independent of its current status."""
    SALE = "sale"
    RENT = "rent"
    BOTH = "both"


class Currency(str, enum.Enum):
    ETB = "ETB"
    USD = "USD"


# Cyclic toggle: open listings close, closed listings reopen, anything else restarts as for_sale.
SALE_STATUS_TOGGLE = {
    PropertyStatus.FOR_SALE.value: PropertyStatus.SOLD.value,
    PropertyStatus.SOLD.value: PropertyStatus.FOR_SALE.value,
    PropertyStatus.FOR_RENT.value: PropertyStatus.RENTED.value,
    PropertyStatus.RENTED.value: PropertyStatus.FOR_RENT.value,
}


class Property(Base):
    """
    A property listing owned by exactly one user.

    ``status`` and ``listing_type`` are orthogonal: a dual-purpose listing may be
    ``for_sale`` while marketed as ``both``. Public search reconciles the two.
    """
    __tablename__ = "properties"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Description
    title = Column(String(200), nullable=False)
    description = Column(Text)

    # Pricing
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default=Currency.ETB.value)

    # Characteristics
    beds = Column(Integer, nullable=False)
    baths = Column(Integer, nullable=False)
    sqft = Column(Float, nullable=False)
    property_type = Column(String(20), nullable=False, index=True)
    year_built = Column(Integer)
    lot_size = Column(Float)
    features = Column(JSON, default=list)
    images = Column(JSON, default=list)

    # Location
    address = Column(String(500), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    # Status axes
    status = Column(String(20), nullable=False, default=PropertyStatus.FOR_SALE.value, index=True)
    publish_status = Column(
        String(20), nullable=False, default=PublishStatus.DRAFT.value, index=True
    )
    listing_type = Column(String(10), nullable=False, default=ListingType.SALE.value)

    # Contact (phone/email/agent_name), absent when all blank
    contact_info = Column(JSON)

    # Flags and counters
    is_featured = Column(Boolean, nullable=False, default=False)
    views = Column(Integer, nullable=False, default=0)

    # Owner
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    owner = relationship("User", lazy="raise")

    # Lifecycle
    published_at = Column(DateTime(timezone=True))
    archived_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_properties_price", "price"),
        Index("ix_properties_lat_lng", "lat", "lng"),
    )

    @property
    def age(self):
        if self.year_built:
            return utcnow().year - self.year_built
        return None

    def apply_publish_status(self, publish_status: str) -> bool:
        """
        Move to ``publish_status`` keeping the lifecycle timestamps consistent.

        ``published_at`` is set only while published and ``archived_at`` only
        while archived. Returns False when already in the target state.
        """
        target = PublishStatus(publish_status).value
        if self.publish_status == target:
            return False

        now = utcnow()
        self.publish_status = target
        self.published_at = now if target == PublishStatus.PUBLISHED.value else None
        self.archived_at = now if target == PublishStatus.ARCHIVED.value else None
        return True

    def publish(self) -> bool:
        return self.apply_publish_status(PublishStatus.PUBLISHED.value)

    def archive(self) -> bool:
        return self.apply_publish_status(PublishStatus.ARCHIVED.value)

    def set_as_draft(self) -> bool:
        return self.apply_publish_status(PublishStatus.DRAFT.value)

    def toggle_sale_status(self) -> str:
        """Flip for_sale<->sold and for_rent<->rented; anything else becomes for_sale."""
        self.status = SALE_STATUS_TOGGLE.get(self.status, PropertyStatus.FOR_SALE.value)
        return self.status

    def is_owned_by(self, user_id) -> bool:
        return user_id is not None and str(self.owner_id) == str(user_id)

    def __repr__(self) -> str:
        return f"<Property(title={self.title}, status={self.status}, publish_status={self.publish_status})>"
