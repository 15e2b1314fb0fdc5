"""
Initial schema - negotiation, commerce and notification tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(name, UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # 1. Users
    op.create_table(
        "users",
        _uuid_pk("user_id"),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="CUSTOMER"),
        sa.Column("brand_name", sa.String(255)),
        sa.Column("brand_logo", sa.String(512)),
        sa.Column("profile_image", sa.String(512)),
        sa.Column("bio", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('CUSTOMER', 'DESIGNER', 'ADMIN')", name="ck_user_role"),
    )

    # 2. Custom requests
    op.create_table(
        "custom_requests",
        _uuid_pk("request_id"),
        sa.Column("customer_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("reference_images", JSONB, nullable=False, server_default="[]"),
        sa.Column("budget", sa.Float),
        sa.Column("deadline", sa.DateTime),
        sa.Column("requirements", JSONB),
        sa.Column("measurements", JSONB, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("selected_bid_id", UUID(as_uuid=True), unique=True),
        *_timestamps(),
        sa.Column("closed_at", sa.DateTime),
        sa.CheckConstraint(
            "status IN ('OPEN', 'IN_PROGRESS', 'CLOSED', 'CANCELLED')",
            name="ck_custom_request_status",
        ),
    )
    op.create_index("ix_custom_requests_customer", "custom_requests", ["customer_id"])
    op.create_index("ix_custom_requests_status", "custom_requests", ["status"])
    op.create_index("ix_custom_requests_category", "custom_requests", ["category"])

    # 3. Bids
    op.create_table(
        "custom_request_bids",
        _uuid_pk("bid_id"),
        sa.Column("request_id", UUID(as_uuid=True), sa.ForeignKey("custom_requests.request_id"), nullable=False),
        sa.Column("designer_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("proposed_completion_date", sa.DateTime, nullable=False),
        sa.Column("pitch", sa.Text, nullable=False),
        sa.Column("portfolio_images", JSONB, nullable=False, server_default="[]"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("can_meet_deadline", sa.Boolean),
        sa.Column("deadline_notes", sa.Text),
        *_timestamps(),
        sa.UniqueConstraint("request_id", "designer_id", name="uq_bid_request_designer"),
        sa.CheckConstraint("price > 0", name="ck_bid_price_positive"),
        sa.CheckConstraint("status IN ('PENDING', 'ACCEPTED', 'REJECTED', 'WITHDRAWN')", name="ck_bid_status"),
    )
    op.create_index("ix_bids_request", "custom_request_bids", ["request_id"])
    op.create_index("ix_bids_designer", "custom_request_bids", ["designer_id"])
    op.create_index("ix_bids_status", "custom_request_bids", ["status"])

    # 4. Designs
    op.create_table(
        "designs",
        _uuid_pk("design_id"),
        sa.Column("designer_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("images", JSONB, nullable=False, server_default="[]"),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("colors", JSONB, nullable=False, server_default="[]"),
        sa.Column("sizes", JSONB, nullable=False, server_default="[]"),
        sa.Column("customizable", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("production_steps", JSONB),
        *_timestamps(),
    )
    op.create_index("ix_designs_designer", "designs", ["designer_id"])

    # 5. Offers
    op.create_table(
        "offers",
        _uuid_pk("offer_id"),
        sa.Column("customer_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("designer_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("design_id", UUID(as_uuid=True), sa.ForeignKey("designs.design_id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("customer_price", sa.Float, nullable=False),
        sa.Column("designer_price", sa.Float),
        sa.Column("final_price", sa.Float),
        sa.Column("measurements", JSONB),
        sa.Column("notes", sa.Text),
        sa.Column("designer_notes", sa.Text),
        sa.Column("accepted_at", sa.DateTime),
        sa.Column("deadline", sa.DateTime),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'REJECTED', 'COUNTERED', 'EXPIRED')",
            name="ck_offer_status",
        ),
    )
    op.create_index("ix_offers_customer", "offers", ["customer_id"])
    op.create_index("ix_offers_designer", "offers", ["designer_id"])

    # 6. Orders
    op.create_table(
        "orders",
        _uuid_pk("order_id"),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("offer_id", UUID(as_uuid=True), sa.ForeignKey("offers.offer_id"), nullable=False),
        sa.Column("customer_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("designer_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("design_id", UUID(as_uuid=True), sa.ForeignKey("designs.design_id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("final_price", sa.Float, nullable=False),
        sa.Column("deadline", sa.DateTime),
        sa.Column("delivered_at", sa.DateTime),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'SOURCING', 'CONSTRUCTION', 'QUALITY_CHECK', "
            "'SHIPPING', 'DELIVERED', 'COMPLETED', 'CANCELLED')",
            name="ck_order_status",
        ),
    )
    op.create_index("ix_orders_deadline_status", "orders", ["deadline", "status"])
    op.create_index("ix_orders_designer", "orders", ["designer_id"])

    # 7. Notifications
    op.create_table(
        "notifications",
        _uuid_pk("notification_id"),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("order_id", UUID(as_uuid=True), sa.ForeignKey("orders.order_id")),
        sa.Column("offer_id", UUID(as_uuid=True), sa.ForeignKey("offers.offer_id")),
        sa.Column("custom_request_id", UUID(as_uuid=True), sa.ForeignKey("custom_requests.request_id")),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("dedup_key", sa.String(255), unique=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])
    op.create_index("ix_notifications_order_type", "notifications", ["order_id", "type"])


def downgrade() -> None:
    for table in (
        "notifications",
        "orders",
        "offers",
        "designs",
        "custom_request_bids",
        "custom_requests",
        "users",
    ):
        op.drop_table(table)
