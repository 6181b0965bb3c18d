"""
Activity ledger: immutable user and system events used for analytics.
"""
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON, Index
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum

from nibret.core.database import Base
from nibret.utils.time import utcnow


class ActivityType(str, enum.Enum):
    """Closed catalog of tracked events."""
    LOGIN = "login"
    LOGOUT = "logout"
    REGISTER = "register"
    PROPERTY_VIEW = "property_view"
    PROPERTY_CLICK = "property_click"
    SEARCH = "search"
    FILTER_APPLIED = "filter_applied"
    CONTACT_FORM = "contact_form"
    PROPERTY_UPLOAD = "property_upload"
    PROPERTY_EDIT = "property_edit"
    PROPERTY_DELETE = "property_delete"
    IMAGE_UPLOAD = "image_upload"
    PAGE_VIEW = "page_view"
    ERROR = "error"
    LEAD_CREATED = "lead_created"
    LEAD_UPDATED = "lead_updated"
    LEAD_STATUS_UPDATED = "lead_status_updated"
    LEAD_DELETED = "lead_deleted"
    LEAD_CONVERTED = "lead_converted"
    LEAD_INTERACTION = "lead_interaction"
    FOLLOW_UP_SCHEDULED = "follow_up_scheduled"


# Events counted as a view of a property in popularity rankings.
PROPERTY_INTEREST_TYPES = (ActivityType.PROPERTY_VIEW.value, ActivityType.PROPERTY_CLICK.value)


class Activity(Base):
    """
    One logged event. Inserted once, never updated; removed only by retention cleanup.
    """
    __tablename__ = "activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    type = Column(String(50), nullable=False, index=True)
    action = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    # Per-type payload; validated by nibret.schemas.activity before insert.
    # "metadata" is reserved on declarative classes.
    details = Column("metadata", JSON, default=dict)

    # Promoted from the payload for the aggregation queries
    property_id = Column(UUID(as_uuid=True), index=True)
    search_query = Column(String(500))

    session_id = Column(String(255), nullable=False, default="anonymous")
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_activities_type_timestamp", "type", "timestamp"),
        Index("ix_activities_user_timestamp", "user_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<Activity(type={self.type}, user_id={self.user_id})>"
