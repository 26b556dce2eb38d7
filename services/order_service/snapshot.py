"""
Product snapshots for order items.

A snapshot is a self-contained copy of what was sold: name, prices,
capacity, colors, categories and the first image. It is written once when
the item is created and is the only record used to render order history.
"""
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from shared.errors import ProductNotFound
from services.product_service.models import Product
from services.product_service.repository import ProductRepository
from .schemas import (
    ProductSnapshot,
    SnapshotCapacity,
    SnapshotCategory,
    SnapshotColor,
    SnapshotImage,
)


async def load_product_for_snapshot(db: AsyncSession, product_id) -> Product:
    product = await ProductRepository.get_product_for_snapshot(db, product_id)
    if product is None:
        raise ProductNotFound(f"Product with ID {product_id} not found")
    return product


def build_snapshot(
    product: Product,
    unit_price: Decimal = None,
    requested_color: str = None,
    captured_at: datetime = None,
) -> ProductSnapshot:
    """Assemble the snapshot from a product loaded by ``load_product_for_snapshot``.

    ``unit_price`` overrides the catalog price for this sale; ``None`` means
    "use the catalog price", an explicit 0 means a free item.
    """
    capacity = product.capacity
    image = product.images[0] if product.images else None

    return ProductSnapshot(
        id=product.id,
        name=product.name,
        slug=product.slug,
        description=product.description,
        base_price=product.unit_price,
        unit_price_at_sale=product.unit_price if unit_price is None else unit_price,
        requested_color=requested_color,
        capacity=SnapshotCapacity(
            id=capacity.id,
            name=capacity.name,
            slug=capacity.slug,
            volume_ml=capacity.volume_ml,
        ) if capacity else None,
        colors=[
            SnapshotColor(id=c.id, name=c.name, slug=c.slug, hex_code=c.hex_code)
            for c in product.colors
        ],
        categories=[
            SnapshotCategory(id=c.id, name=c.name, slug=c.slug)
            for c in product.categories
        ],
        primary_image=SnapshotImage(
            id=image.id, url=image.url, alt_text=image.alt_text
        ) if image else None,
        captured_at=captured_at or datetime.now(timezone.utc),
    )
