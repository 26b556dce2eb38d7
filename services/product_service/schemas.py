from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID
from pydantic import BaseModel, Field

class ProductResponse(BaseModel):
    id: UUID
    slug: str
    name: str
    unit_price: Decimal
    stock_quantity: int
    is_active: bool
    is_deleted: bool

    class Config:
        from_attributes = True

class StockAdjustment(BaseModel):
    """Manual stock correction by an admin; separate from order reservations."""
    quantity: int = Field(ge=0)
    operation: Literal["set", "add", "subtract"]
    reason: Optional[str] = None

class StockChange(BaseModel):
    from_quantity: int = Field(serialization_alias="from")
    to_quantity: int = Field(serialization_alias="to")
    operation: str
    quantity: int
    reason: Optional[str] = None

class StockAdjustmentResponse(BaseModel):
    product: ProductResponse
    stock_status: str
    stock_change: StockChange
