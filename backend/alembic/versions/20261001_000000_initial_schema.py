"""Initial marketplace schema: users, properties, customers, leads, lead interactions, activities"""

revision = "20261001_000000"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("phone", sa.String(50), nullable=False, index=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="customer", index=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("login_count", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "properties",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="ETB"),
        sa.Column("beds", sa.Integer, nullable=False),
        sa.Column("baths", sa.Integer, nullable=False),
        sa.Column("sqft", sa.Float, nullable=False),
        sa.Column("property_type", sa.String(20), nullable=False, index=True),
        sa.Column("year_built", sa.Integer),
        sa.Column("lot_size", sa.Float),
        sa.Column("features", sa.JSON),
        sa.Column("images", sa.JSON),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("lat", sa.Float, nullable=False),
        sa.Column("lng", sa.Float, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="for_sale", index=True),
        sa.Column("publish_status", sa.String(20), nullable=False, server_default="draft", index=True),
        sa.Column("listing_type", sa.String(10), nullable=False, server_default="sale"),
        sa.Column("contact_info", sa.JSON),
        sa.Column("is_featured", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("views", sa.Integer, nullable=False, server_default="0"),
        sa.Column("owner_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("published_at", sa.DateTime(timezone=True)),
        sa.Column("archived_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_properties_created_at", "properties", ["created_at"])
    op.create_index("ix_properties_price", "properties", ["price"])
    op.create_index("ix_properties_lat_lng", "properties", ["lat", "lng"])

    op.create_table(
        "customers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), index=True),
        sa.Column("phone", sa.String(50), nullable=False, index=True),
        sa.Column("preferences", sa.JSON),
        sa.Column("notes", sa.Text),
        sa.Column("source", sa.String(20), nullable=False, server_default="website"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", index=True),
        *_timestamps(),
    )
    op.create_index("ix_customers_created_at", "customers", ["created_at"])

    op.create_table(
        "leads",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("phone", sa.String(50), nullable=False),
        sa.Column(
            "interested_property_id",
            UUID(as_uuid=True),
            sa.ForeignKey("properties.id", ondelete="SET NULL"),
        ),
        sa.Column("property_preferences", sa.JSON),
        sa.Column("message", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="new", index=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="website"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="medium", index=True),
        sa.Column("assigned_to_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), index=True),
        sa.Column("follow_up_date", sa.DateTime(timezone=True), index=True),
        sa.Column("notes", sa.Text),
        sa.Column("utm_source", sa.String(255)),
        sa.Column("utm_medium", sa.String(255)),
        sa.Column("utm_campaign", sa.String(255)),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("user_agent", sa.String(512)),
        sa.Column("referrer_url", sa.String(2048)),
        sa.Column("converted_to_customer_id", UUID(as_uuid=True), sa.ForeignKey("customers.id")),
        sa.Column("converted_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_leads_created_at", "leads", ["created_at"])

    op.create_table(
        "lead_interactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "lead_id",
            UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("interaction_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("outcome", sa.String(20)),
        sa.Column("next_action", sa.String(512)),
        sa.Column("next_action_date", sa.DateTime(timezone=True)),
        sa.Column("status_from", sa.String(20)),
        sa.Column("status_to", sa.String(20)),
        sa.Column("created_by_id", UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("lead_id", "sequence", name="uq_lead_interactions_lead_sequence"),
    )

    op.create_table(
        "activities",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            index=True,
        ),
        sa.Column("type", sa.String(50), nullable=False, index=True),
        sa.Column("action", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("metadata", sa.JSON),
        sa.Column("property_id", UUID(as_uuid=True), index=True),
        sa.Column("search_query", sa.String(500)),
        sa.Column("session_id", sa.String(255), nullable=False, server_default="anonymous"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
    )
    op.create_index("ix_activities_type_timestamp", "activities", ["type", "timestamp"])
    op.create_index("ix_activities_user_timestamp", "activities", ["user_id", "timestamp"])


def downgrade():
    op.drop_table("activities")
    op.drop_table("lead_interactions")
    op.drop_table("leads")
    op.drop_table("customers")
    op.drop_table("properties")
    op.drop_table("users")
