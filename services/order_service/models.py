import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship
from shared.config.database import Base
from services.customer_service.models import Customer  # noqa: F401
from services.product_service.models import Product  # noqa: F401


def utcnow():
    return datetime.now(timezone.utc)


class OrderType(str, enum.Enum):
    PRODUCT = "PRODUCT"
    CUSTOM = "CUSTOM"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("original_shipping_cost >= 0", name="ck_orders_original_shipping"),
        CheckConstraint("shipping_discount >= 0", name="ck_orders_shipping_discount"),
        CheckConstraint("shipping_discount <= original_shipping_cost", name="ck_orders_discount_le_cost"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String(20), nullable=False, unique=True, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    order_type = Column(Enum(OrderType, name="order_type", native_enum=False, length=10), nullable=False)
    status = Column(
        Enum(OrderStatus, name="order_status", native_enum=False, length=20),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    delivery_address = Column(JSON, nullable=False)
    custom_description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    original_shipping_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    shipping_discount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Bumped on every UPDATE; a stale writer gets StaleDataError
    version = Column(Integer, nullable=False, default=1)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
        lazy="selectin",
    )
    customer = relationship("Customer", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    @property
    def items_total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # Soft reference: the product may be deleted later, the snapshot stays
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    product_snapshot = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship("Order", back_populates="items")

    @property
    def unit_price_at_sale(self) -> Decimal:
        return Decimal(str(self.product_snapshot["unit_price_at_sale"]))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_at_sale * self.quantity


class OrderNumberSequence(Base):
    """Per-day counter backing human-readable order numbers."""
    __tablename__ = "order_number_sequences"

    day = Column(Date, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
