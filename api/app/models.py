"""Database models for the meal ordering service.

All tenant-owned rows carry a ``university_id`` column; scoping is enforced by
:mod:`api.app.authz` and the repository helpers rather than by separate
databases. The models are kept free of application wiring so that they can be
used in tests independently.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from .clock import utcnow
from .domain import OrderStatus, PaymentStatus, Role, UserStatus

Base = declarative_base()


class University(Base):
    """A tenant subscribing to the ordering service."""

    __tablename__ = "universities"

    id = Column(Integer, primary_key=True)
    code = Column(String(16), unique=True, nullable=False)
    name = Column(String, nullable=False)
    timezone = Column(String, nullable=False, default="Asia/Ho_Chi_Minh")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class OrderingSettings(Base):
    """Per-tenant ordering rules, read on every order."""

    __tablename__ = "ordering_settings"

    id = Column(Integer, primary_key=True)
    university_id = Column(
        Integer, ForeignKey("universities.id"), unique=True, nullable=False
    )
    cutoff_hour = Column(Integer, nullable=False, default=22)
    min_advance_hours = Column(Integer, nullable=False, default=12)
    max_advance_days = Column(Integer, nullable=False, default=7)
    allow_weekend_orders = Column(Boolean, nullable=False, default=True)
    tax_rate = Column(Numeric(5, 4), nullable=False, default=0.10)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class User(Base):
    """Students and staff; capabilities depend on role, status and tenant."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    university_id = Column(Integer, ForeignKey("universities.id"), nullable=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.STUDENT.value)
    status = Column(String, nullable=False, default=UserStatus.PENDING.value)
    forced_logout_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MenuItem(Base):
    """Tenant-specific menu items."""

    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True)
    university_id = Column(Integer, ForeignKey("universities.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(10, 2), nullable=False)
    categories = Column(JSON, nullable=False, default=list)
    is_vegetarian = Column(Boolean, nullable=False, default=False)
    is_vegan = Column(Boolean, nullable=False, default=False)
    allergens = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MenuItemVariant(Base):
    """Priced sub-option of a menu item; exactly one is the default."""

    __tablename__ = "menu_item_variants"

    id = Column(Integer, primary_key=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class MenuItemAvailability(Base):
    """Per-item-per-date sellability and quantity cap."""

    __tablename__ = "menu_item_availability"
    __table_args__ = (UniqueConstraint("menu_item_id", "date"),)

    id = Column(Integer, primary_key=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    max_quantity = Column(Integer, nullable=True)
    current_quantity = Column(Integer, nullable=False, default=0)


class Order(Base):
    """Meal pre-order placed by a student for a given date."""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String, unique=True, nullable=False)
    university_id = Column(Integer, ForeignKey("universities.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    order_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(
        String, nullable=False, default=PaymentStatus.PENDING.value
    )
    payment_method = Column(String, nullable=True)
    subtotal_amount = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    special_instructions = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class OrderItem(Base):
    """Line items belonging to an order.

    ``variant_id`` deliberately has no foreign key: replacing an item's variant
    set deletes the old rows while past orders keep pointing at them.
    """

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    variant_id = Column(Integer, nullable=True)
    name_snapshot = Column(String, nullable=False)
    variant_name_snapshot = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)


class OrderSequence(Base):
    """Per-tenant counters for generating sequential order numbers."""

    __tablename__ = "order_sequences"

    id = Column(Integer, primary_key=True)
    university_id = Column(Integer, nullable=False, unique=True)
    current = Column(Integer, nullable=False, default=0)


class SessionRevocation(Base):
    """Versioned ledger of forced-logout events."""

    __tablename__ = "session_revocations"

    id = Column(Integer, primary_key=True)
    scope = Column(String, nullable=False, default="STUDENTS")
    actor_id = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    affected_count = Column(Integer, nullable=False, default=0)
    revoked_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class AuditLog(Base):
    """Audit log for staff actions."""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True)
    at = Column(DateTime(timezone=True), default=utcnow)
    actor = Column(String, nullable=False)
    action = Column(String, nullable=False)
    entity = Column(String, nullable=False)
    meta = Column(JSON, nullable=True)


class NotificationOutbox(Base):
    """Queued notifications awaiting delivery."""

    __tablename__ = "notifications_outbox"

    id = Column(Integer, primary_key=True)
    event = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    target = Column(String, nullable=True)
    status = Column(String, nullable=False, default="queued")
    created_at = Column(DateTime(timezone=True), default=utcnow)


__all__ = [
    "Base",
    "University",
    "OrderingSettings",
    "User",
    "MenuItem",
    "MenuItemVariant",
    "MenuItemAvailability",
    "Order",
    "OrderItem",
    "OrderSequence",
    "SessionRevocation",
    "AuditLog",
    "NotificationOutbox",
]
