from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.orm import selectinload
import structlog
from shared.errors import InsufficientStock, ProductInactive, ProductNotFound
from .models import Product

logger = structlog.get_logger(__name__)


class ProductRepository:
    """Catalog reads plus the stock ledger.

    Nothing in here commits: every write runs inside the caller's
    transaction so it rolls back together with the rest of the order.
    """

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id):
        result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_product_for_snapshot(db: AsyncSession, product_id):
        """Product with every association a snapshot needs, loaded eagerly."""
        result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .options(
                selectinload(Product.capacity),
                selectinload(Product.colors),
                selectinload(Product.categories),
                selectinload(Product.images),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def lock_product(db: AsyncSession, product_id):
        result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    # --- STOCK LEDGER ---

    @staticmethod
    async def reserve_stock(db: AsyncSession, product_id, quantity: int) -> int:
        """Atomically take ``quantity`` units. Returns the remaining stock.

        A single guarded UPDATE is the authoritative check; a prior read is
        only a hint. If no row matches, nothing was written and the reason
        is worked out afterwards.
        """
        if quantity <= 0:
            raise ValueError("Reservation quantity must be positive")

        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.stock_quantity >= quantity,
                Product.is_active.is_(True),
                Product.is_deleted.is_(False),
            )
            .values(stock_quantity=Product.stock_quantity - quantity)
            .returning(Product.stock_quantity)
            .execution_options(synchronize_session=False)
        )
        remaining = (await db.execute(stmt)).scalar_one_or_none()
        if remaining is not None:
            return remaining

        product = await ProductRepository.get_product_by_id(db, product_id)
        if product is None:
            raise ProductNotFound(f"Product with ID {product_id} not found")
        if not product.is_purchasable:
            raise ProductInactive(f"Product {product.name} is not available for purchase")
        raise InsufficientStock(
            f"Insufficient stock for product {product.name}. "
            f"Available: {product.stock_quantity}, Requested: {quantity}",
            details={
                "product_id": str(product_id),
                "available": product.stock_quantity,
                "requested": quantity,
            },
        )

    @staticmethod
    async def release_stock(db: AsyncSession, product_id, quantity: int) -> bool:
        """Give ``quantity`` units back. Only used to undo a reservation.

        Returns False when the product row no longer exists.
        """
        if quantity <= 0:
            raise ValueError("Release quantity must be positive")
        if product_id is None:
            return False

        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount == 0:
            logger.warning("stock_release_skipped", product_id=str(product_id), quantity=quantity)
            return False
        return True

    # --- ADMIN ADJUSTMENTS (never called from the order pipeline) ---

    @staticmethod
    async def set_stock(db: AsyncSession, product_id, quantity: int) -> int:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=quantity)
            .returning(Product.stock_quantity)
            .execution_options(synchronize_session=False)
        )
        return (await db.execute(stmt)).scalar_one()

    @staticmethod
    async def add_stock(db: AsyncSession, product_id, quantity: int) -> int:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .returning(Product.stock_quantity)
            .execution_options(synchronize_session=False)
        )
        return (await db.execute(stmt)).scalar_one()

    @staticmethod
    async def subtract_stock(db: AsyncSession, product_id, quantity: int):
        """Guarded like a reservation; returns None if stock would go negative."""
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .returning(Product.stock_quantity)
            .execution_options(synchronize_session=False)
        )
        return (await db.execute(stmt)).scalar_one_or_none()
