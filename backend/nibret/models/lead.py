"""
Lead pipeline models: leads and their append-only interaction log.
"""
from sqlalchemy import (
    Column, String, DateTime, Text, ForeignKey, JSON, Integer, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from typing import Optional
import uuid
import enum

from nibret.core.database import Base
from nibret.utils.time import utcnow


class LeadStatus(str, enum.Enum):
    """Pipeline stages. ``lost`` and ``converted`` are terminal."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    LOST = "lost"
    CONVERTED = "converted"


TERMINAL_STATUSES = (LeadStatus.CONVERTED.value, LeadStatus.LOST.value)

# Ordered stages reported by the conversion funnel.
FUNNEL_STAGES = (
    LeadStatus.NEW,
    LeadStatus.CONTACTED,
    LeadStatus.QUALIFIED,
    LeadStatus.CONVERTED,
)


class LeadSource(str, enum.Enum):
    """Lead acquisition channels."""
    WEBSITE = "website"
    PHONE_CALL = "phone_call"
    EMAIL = "email"
    REFERRAL = "referral"
    SOCIAL_MEDIA = "social_media"
    ADVERTISEMENT = "advertisement"
    WALK_IN = "walk_in"
    OTHER = "other"


class LeadPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class InteractionType(str, enum.Enum):
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    PROPERTY_VIEWING = "property_viewing"
    FOLLOW_UP = "follow_up"
    NOTE = "note"


class InteractionOutcome(str, enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    NO_RESPONSE = "no_response"


class Lead(Base):
    """
    A sales prospect captured from a public form or by staff.
    """
    __tablename__ = "leads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Contact
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=False)

    # Interest
    interested_property_id = Column(UUID(as_uuid=True), ForeignKey("properties.id", ondelete="SET NULL"))
    property_preferences = Column(JSON)
    message = Column(Text)

    # Pipeline
    status = Column(String(20), nullable=False, default=LeadStatus.NEW.value, index=True)
    source = Column(String(20), nullable=False, default=LeadSource.WEBSITE.value)
    priority = Column(String(10), nullable=False, default=LeadPriority.MEDIUM.value, index=True)
    assigned_to_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), index=True)
    follow_up_date = Column(DateTime(timezone=True), index=True)
    notes = Column(Text)

    # Attribution and request provenance
    utm_source = Column(String(255))
    utm_medium = Column(String(255))
    utm_campaign = Column(String(255))
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    referrer_url = Column(String(2048))

    # Conversion
    converted_to_customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"))
    converted_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    interactions = relationship(
        "LeadInteraction",
        back_populates="lead",
        order_by="LeadInteraction.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def append_interaction(
        self, interaction_type: str, description: str, sequence: Optional[int] = None, **fields
    ) -> "LeadInteraction":
        """
        Extend the interaction log. Existing entries are never touched.

        ``sequence`` is the next position allocated by storage; the loaded
        entries may be stale, so the larger of the two wins.
        """
        loaded = max((entry.sequence or 0 for entry in self.interactions), default=0)
        entry = LeadInteraction(
            interaction_type=interaction_type,
            description=description,
            sequence=max(sequence or 0, loaded + 1),
            created_at=utcnow(),
            **fields,
        )
        self.interactions.append(entry)
        return entry


class LeadInteraction(Base):
    """
    One entry in a lead's interaction log.

    Rows are only ever inserted; ``sequence`` fixes their order.
    """
    __tablename__ = "lead_interactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    lead_id = Column(
        UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lead = relationship("Lead", back_populates="interactions")
    sequence = Column(Integer, nullable=False)

    interaction_type = Column(String(20), nullable=False)
    description = Column(Text, nullable=False)
    outcome = Column(String(20))
    next_action = Column(String(512))
    next_action_date = Column(DateTime(timezone=True))

    # Status-change audit entries
    status_from = Column(String(20))
    status_to = Column(String(20))

    created_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("lead_id", "sequence", name="uq_lead_interactions_lead_sequence"),
    )
