"""
SQLAlchemy ORM models shared by the canteen services.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Interval,
    LargeBinary,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from canteen_shared.constants import (
    ConcessionStatus,
    DiningOption,
    OrderStatus,
    PaymentMethod,
    ReopeningStatus,
)
from canteen_shared.datetime_utils import utcnow


class JSONBType(TypeDecorator):
    """
    JSONB on PostgreSQL, TEXT with JSON serialization everywhere else.

    This allows tests to run with SQLite while production uses PostgreSQL JSONB.
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        if isinstance(value, str):
            return json.loads(value)
        return value

    @property
    def python_type(self):
        return object


class OrderStatusType(TypeDecorator):
    """
    Order status column that always reads and writes the canonical spelling.

    "ready for pickup", "Ready_For_Pickup" and "ready-for-pickup" all load as
    ``OrderStatus.READY_FOR_PICKUP``.
    """

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return OrderStatus.normalize(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return OrderStatus.normalize(value)

    @property
    def python_type(self):
        return OrderStatus


JSONB_TYPE = JSONBType()


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="customer")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Concession(Base):
    __tablename__ = "concessions"
    __table_args__ = (
        CheckConstraint(
            "gcash_payment_available OR oncounter_payment_available",
            name="chk_concession_payment_method",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    concession_name: Mapped[str] = mapped_column(String(120), nullable=False)
    concessionaire_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    gcash_payment_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    oncounter_payment_available: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    gcash_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    receipt_timer: Mapped[timedelta] = mapped_column(
        Interval, nullable=False, default=lambda: timedelta(minutes=15)
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ConcessionStatus.OPEN.value
    )

    concessionaire: Mapped[User] = relationship("User", foreign_keys=[concessionaire_id])
    menu_items: Mapped[list[MenuItem]] = relationship(
        "MenuItem", back_populates="concession", cascade="all, delete-orphan"
    )

    def accepts_payment_method(self, method: PaymentMethod) -> bool:
        if method == PaymentMethod.GCASH:
            return bool(self.gcash_payment_available)
        return bool(self.oncounter_payment_available)


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint("price >= 0", name="chk_menu_items_price_positive"),
        Index("ix_menu_item_concession", "concession_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    concession_id: Mapped[int] = mapped_column(ForeignKey("concessions.id"), nullable=False)
    item_name: Mapped[str] = mapped_column(String(120), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    concession: Mapped[Concession] = relationship("Concession", back_populates="menu_items")
    variation_groups: Mapped[list[ItemVariationGroup]] = relationship(
        "ItemVariationGroup", back_populates="menu_item", cascade="all, delete-orphan"
    )


class ItemVariationGroup(Base):
    __tablename__ = "item_variation_groups"
    __table_args__ = (
        CheckConstraint("min_selection >= 0", name="chk_variation_group_min"),
        CheckConstraint("max_selection >= 1", name="chk_variation_group_max"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(ForeignKey("menu_items.id"), nullable=False)
    variation_group_name: Mapped[str] = mapped_column(String(120), nullable=False)
    min_selection: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_selection: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    menu_item: Mapped[MenuItem] = relationship("MenuItem", back_populates="variation_groups")
    variations: Mapped[list[ItemVariation]] = relationship(
        "ItemVariation", back_populates="group", cascade="all, delete-orphan"
    )

    @property
    def required_selection(self) -> bool:
        return self.min_selection > 0

    @property
    def multiple_selection(self) -> bool:
        return self.max_selection > 1


class ItemVariation(Base):
    __tablename__ = "item_variations"
    __table_args__ = (
        CheckConstraint("additional_price >= 0", name="chk_variation_price_positive"),
        CheckConstraint("max_amount >= 1", name="chk_variation_max_amount"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_variation_group_id: Mapped[int] = mapped_column(
        ForeignKey("item_variation_groups.id"), nullable=False
    )
    variation_name: Mapped[str] = mapped_column(String(120), nullable=False)
    additional_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    max_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    group: Mapped[ItemVariationGroup] = relationship(
        "ItemVariationGroup", back_populates="variations"
    )


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_order_status", "status"),
        Index("ix_order_customer", "customer_id", "status"),
        Index("ix_order_concession", "concession_id", "status"),
        Index("ix_order_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    concession_id: Mapped[int] = mapped_column(ForeignKey("concessions.id"), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        OrderStatusType(), nullable=False, default=OrderStatus.PENDING
    )
    payment_method: Mapped[str] = mapped_column(
        String(32), nullable=False, default=PaymentMethod.ON_COUNTER.value
    )
    total_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    updated_total_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    price_change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decline_reason_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB_TYPE, nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    receipt_timer: Mapped[timedelta | None] = mapped_column(Interval, nullable=True)
    payment_receipt_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    gcash_screenshot: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    gcash_screenshot_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    payment_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    in_cart: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Reopening bookkeeping
    reopening_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reopening_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reopened_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    original_decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    customer: Mapped[User] = relationship("User", foreign_keys=[customer_id])
    concession: Mapped[Concession] = relationship("Concession")
    details: Mapped[list[OrderDetail]] = relationship(
        "OrderDetail",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderDetail.id",
    )
    reopening_requests: Mapped[list[OrderReopeningRequest]] = relationship(
        "OrderReopeningRequest",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderReopeningRequest.id",
    )


class OrderDetail(Base):
    __tablename__ = "order_details"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_order_detail_quantity"),
        Index("ix_order_detail_order_id", "order_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("menu_items.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    item_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    dining_option: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DiningOption.DINE_IN.value
    )

    order: Mapped[Order] = relationship("Order", back_populates="details")
    menu_item: Mapped[MenuItem] = relationship("MenuItem")
    variations: Mapped[list[OrderItemVariation]] = relationship(
        "OrderItemVariation",
        back_populates="order_detail",
        cascade="all, delete-orphan",
        order_by="OrderItemVariation.id",
    )


class OrderItemVariation(Base):
    __tablename__ = "order_item_variations"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_order_item_variation_quantity"),
        Index("ix_order_item_variation_detail", "order_detail_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_detail_id: Mapped[int] = mapped_column(ForeignKey("order_details.id"), nullable=False)
    variation_id: Mapped[int] = mapped_column(ForeignKey("item_variations.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # Unit price adjustment at the time the variation was added
    additional_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )

    order_detail: Mapped[OrderDetail] = relationship("OrderDetail", back_populates="variations")
    variation: Mapped[ItemVariation] = relationship("ItemVariation")


class OrderReopeningRequest(Base):
    """
    A customer's request to revive an order declined for a missing receipt.
    """

    __tablename__ = "order_reopening_requests"
    __table_args__ = (
        Index("ix_reopening_order", "order_id"),
        Index("ix_reopening_concessionaire_status", "concessionaire_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    concessionaire_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    request_type: Mapped[str] = mapped_column(String(64), nullable=False)
    request_message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ReopeningStatus.PENDING.value
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    response_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    order: Mapped[Order] = relationship("Order", back_populates="reopening_requests")
    customer: Mapped[User] = relationship("User", foreign_keys=[customer_id])


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notification_user_read", "user_id", "is_read"),
        Index("ix_notification_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
