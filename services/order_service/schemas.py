from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_validator
from .models import OrderStatus, OrderType


# --- PRODUCT SNAPSHOT (embedded in order items, never re-read from the catalog) ---

class SnapshotCapacity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    slug: Optional[str] = None
    volume_ml: Optional[int] = None

class SnapshotColor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    slug: Optional[str] = None
    hex_code: Optional[str] = None

class SnapshotCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    slug: Optional[str] = None

class SnapshotImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    url: str
    alt_text: Optional[str] = None

class ProductSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    base_price: Decimal
    unit_price_at_sale: Decimal
    requested_color: Optional[str] = None
    capacity: Optional[SnapshotCapacity] = None
    colors: List[SnapshotColor] = []
    categories: List[SnapshotCategory] = []
    primary_image: Optional[SnapshotImage] = None
    captured_at: datetime


# --- REQUESTS ---

class DeliveryAddress(BaseModel):
    address_line: str = Field(min_length=1)
    district: Optional[str] = None
    city: str = Field(min_length=1)
    postal_code: Optional[str] = None

class OrderItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)  # 0 = free item
    requested_color: Optional[str] = None

class OrderCreate(BaseModel):
    customer_id: UUID
    order_type: OrderType
    delivery_address: DeliveryAddress
    custom_description: Optional[str] = None
    total_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)  # custom orders only
    notes: Optional[str] = None
    items: List[OrderItemCreate] = []
    original_shipping_cost: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    shipping_discount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)

    @field_validator("order_type", mode="before")
    @classmethod
    def upper_order_type(cls, value):
        return value.upper() if isinstance(value, str) else value

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None

class OrderUpdate(BaseModel):
    delivery_address: Optional[DeliveryAddress] = None
    original_shipping_cost: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    shipping_discount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    shipping_cost: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    items: Optional[List[OrderItemCreate]] = None
    notes: Optional[str] = None

class OrderListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    status: Optional[OrderStatus] = None
    customer_id: Optional[UUID] = None
    order_type: Optional[OrderType] = None
    search: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @field_validator("status", "order_type", mode="before")
    @classmethod
    def upper_enums(cls, value):
        if isinstance(value, str):
            value = value.upper()
            return None if value == "ALL" else value
        return value


# --- RESPONSES ---

class CustomerSummary(BaseModel):
    id: UUID
    full_name: str
    phone_number: Optional[str] = None

    class Config:
        from_attributes = True

class OrderItemResponse(BaseModel):
    id: UUID
    product_id: Optional[UUID]
    quantity: int
    product_snapshot: ProductSnapshot
    line_total: Decimal
    created_at: datetime

    class Config:
        from_attributes = True

class OrderResponse(BaseModel):
    id: UUID
    order_number: str
    customer_id: UUID
    customer: Optional[CustomerSummary] = None
    order_type: OrderType
    status: OrderStatus
    delivery_address: DeliveryAddress
    custom_description: Optional[str]
    notes: Optional[str]
    original_shipping_cost: Decimal
    shipping_discount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime
    confirmed_at: Optional[datetime]
    completed_at: Optional[datetime]
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True

class Pagination(BaseModel):
    current_page: int
    per_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool
