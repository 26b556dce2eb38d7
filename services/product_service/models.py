import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship
from shared.config.database import Base


def utcnow():
    return datetime.now(timezone.utc)


# Taxonomy link tables (managed by the catalog, read here for snapshots)
product_categories = Table(
    "product_categories",
    Base.metadata,
    Column("product_id", Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Uuid, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

product_colors = Table(
    "product_colors",
    Base.metadata,
    Column("product_id", Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("color_id", Uuid, ForeignKey("colors.id", ondelete="CASCADE"), primary_key=True),
)


class Capacity(Base):
    __tablename__ = "capacities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    slug = Column(String(120), nullable=False, unique=True)
    volume_ml = Column(Integer, nullable=True)


class Color(Base):
    __tablename__ = "colors"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    slug = Column(String(120), nullable=False, unique=True)
    hex_code = Column(String(7), nullable=True)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(150), nullable=False)
    slug = Column(String(170), nullable=False, unique=True)


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(500), nullable=False)
    alt_text = Column(String(255), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(String(300), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    capacity_id = Column(Uuid, ForeignKey("capacities.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    capacity = relationship("Capacity", lazy="raise")
    colors = relationship("Color", secondary=product_colors, lazy="raise")
    categories = relationship("Category", secondary=product_categories, lazy="raise")
    images = relationship(
        "ProductImage",
        order_by=(ProductImage.sort_order, ProductImage.created_at),
        lazy="raise",
    )

    @property
    def is_purchasable(self) -> bool:
        return bool(self.is_active) and not self.is_deleted
