"""
Stitchline Database Models

Tables:
  Negotiation:
  1. users                 - Customers, designers and admins (public profile fields)
  2. custom_requests       - A customer's open call for a custom garment
  3. custom_request_bids   - A designer's priced, dated proposal against a request

  Commerce (synthesized at bid acceptance, owned downstream):
  4. designs               - Garment specification with production steps
  5. offers                - Commercial agreement consumed by payment/order pipeline
  6. orders                - Paid orders, read by the deadline monitor

  Messaging:
  7. notifications         - In-app notifications (deadline reminders, overdue alerts)
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from core.timeutil import utcnow
from db.session import Base

# ─── Status vocabularies ───────────────────────────────────────────────────

USER_ROLES = ("CUSTOMER", "DESIGNER", "ADMIN")
REQUEST_STATUSES = ("OPEN", "IN_PROGRESS", "CLOSED", "CANCELLED")
BID_STATUSES = ("PENDING", "ACCEPTED", "REJECTED", "WITHDRAWN")
OFFER_STATUSES = ("PENDING", "ACCEPTED", "REJECTED", "COUNTERED", "EXPIRED")
ORDER_STATUSES = (
    "PENDING",
    "SOURCING",
    "CONSTRUCTION",
    "QUALITY_CHECK",
    "SHIPPING",
    "DELIVERED",
    "COMPLETED",
    "CANCELLED",
)

REQUIRED_MEASUREMENTS = ("chest", "waist", "hips", "height", "shoulder", "armLength", "inseam", "neck")


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ─── 1. Users ──────────────────────────────────────────────────────────────


class User(Base):
    __tablename__ = "users"

    user_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="CUSTOMER")
    brand_name = Column(String(255))
    brand_logo = Column(String(512))
    profile_image = Column(String(512))
    bio = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (CheckConstraint(_in_clause("role", USER_ROLES), name="ck_user_role"),)


# ─── 2. Custom Requests ────────────────────────────────────────────────────


class CustomRequest(Base):
    __tablename__ = "custom_requests"

    request_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    customer_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False)
    reference_images = Column(JSON, nullable=False, default=list)
    budget = Column(Float)
    deadline = Column(DateTime)
    requirements = Column(JSON)
    measurements = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="OPEN")
    # No FK: custom_request_bids already points back here.
    selected_bid_id = Column(GUID(), unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    closed_at = Column(DateTime)

    __table_args__ = (
        Index("ix_custom_requests_customer", "customer_id"),
        Index("ix_custom_requests_status", "status"),
        Index("ix_custom_requests_category", "category"),
        CheckConstraint(_in_clause("status", REQUEST_STATUSES), name="ck_custom_request_status"),
    )

    customer = relationship("User", foreign_keys=[customer_id])
    bids = relationship(
        "CustomRequestBid",
        back_populates="request",
        order_by="CustomRequestBid.created_at.desc()",
    )
    selected_bid = relationship(
        "CustomRequestBid",
        primaryjoin="foreign(CustomRequest.selected_bid_id) == CustomRequestBid.bid_id",
        uselist=False,
        viewonly=True,
    )


# ─── 3. Bids ───────────────────────────────────────────────────────────────


class CustomRequestBid(Base):
    __tablename__ = "custom_request_bids"

    bid_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    request_id = Column(GUID(), ForeignKey("custom_requests.request_id"), nullable=False)
    designer_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    price = Column(Float, nullable=False)
    proposed_completion_date = Column(DateTime, nullable=False)
    pitch = Column(Text, nullable=False)
    portfolio_images = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="PENDING")
    can_meet_deadline = Column(Boolean)
    deadline_notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("request_id", "designer_id", name="uq_bid_request_designer"),
        Index("ix_bids_request", "request_id"),
        Index("ix_bids_designer", "designer_id"),
        Index("ix_bids_status", "status"),
        CheckConstraint("price > 0", name="ck_bid_price_positive"),
        CheckConstraint(_in_clause("status", BID_STATUSES), name="ck_bid_status"),
    )

    request = relationship("CustomRequest", back_populates="bids")
    designer = relationship("User", foreign_keys=[designer_id])


# ─── 4. Designs ────────────────────────────────────────────────────────────


class Design(Base):
    __tablename__ = "designs"

    design_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    designer_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    images = Column(JSON, nullable=False, default=list)
    category = Column(String(100), nullable=False)
    colors = Column(JSON, nullable=False, default=list)
    sizes = Column(JSON, nullable=False, default=list)
    customizable = Column(Boolean, nullable=False, default=False)
    production_steps = Column(JSON)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_designs_designer", "designer_id"),)


# ─── 5. Offers ─────────────────────────────────────────────────────────────


class Offer(Base):
    __tablename__ = "offers"

    offer_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    customer_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    designer_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    design_id = Column(GUID(), ForeignKey("designs.design_id"), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    customer_price = Column(Float, nullable=False)
    designer_price = Column(Float)
    final_price = Column(Float)
    measurements = Column(JSON)
    notes = Column(Text)
    designer_notes = Column(Text)
    accepted_at = Column(DateTime)
    deadline = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_offers_customer", "customer_id"),
        Index("ix_offers_designer", "designer_id"),
        CheckConstraint(_in_clause("status", OFFER_STATUSES), name="ck_offer_status"),
    )

    design = relationship("Design")
    designer = relationship("User", foreign_keys=[designer_id])


# ─── 6. Orders ─────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_number = Column(String(50), nullable=False, unique=True)
    offer_id = Column(GUID(), ForeignKey("offers.offer_id"), nullable=False)
    customer_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    designer_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    design_id = Column(GUID(), ForeignKey("designs.design_id"), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    final_price = Column(Float, nullable=False)
    deadline = Column(DateTime)
    delivered_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_orders_deadline_status", "deadline", "status"),
        Index("ix_orders_designer", "designer_id"),
        CheckConstraint(_in_clause("status", ORDER_STATUSES), name="ck_order_status"),
    )

    customer = relationship("User", foreign_keys=[customer_id])
    designer = relationship("User", foreign_keys=[designer_id])


# ─── 7. Notifications ──────────────────────────────────────────────────────


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), ForeignKey("users.user_id"), nullable=False)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    order_id = Column(GUID(), ForeignKey("orders.order_id"))
    offer_id = Column(GUID(), ForeignKey("offers.offer_id"))
    custom_request_id = Column(GUID(), ForeignKey("custom_requests.request_id"))
    read = Column(Boolean, nullable=False, default=False)
    # Set for write-once notifications; NULLs never collide.
    dedup_key = Column(String(255), unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_order_type", "order_id", "type"),
    )
