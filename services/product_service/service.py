from sqlalchemy.ext.asyncio import AsyncSession
import structlog
from shared.config.database import transactional
from shared.errors import InvalidStockAdjustment, ProductNotFound
from .repository import ProductRepository
from .schemas import StockAdjustment

logger = structlog.get_logger(__name__)

LOW_STOCK_THRESHOLD = 1


def stock_status(quantity: int) -> str:
    if quantity == 0:
        return "out_of_stock"
    if quantity <= LOW_STOCK_THRESHOLD:
        return "low_stock"
    return "in_stock"


class ProductService:

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id):
        product = await ProductRepository.get_product_by_id(db, product_id)
        if product is None or product.is_deleted:
            raise ProductNotFound("Product not found")
        return product

    @staticmethod
    async def adjust_stock(db: AsyncSession, product_id, data: StockAdjustment) -> dict:
        """Administrative set/add/subtract of a product's stock counter."""
        async with transactional(db):
            product = await ProductRepository.lock_product(db, product_id)
            if product is None or product.is_deleted:
                raise ProductNotFound("Product not found")
            previous = product.stock_quantity

            if data.operation == "set":
                new_stock = await ProductRepository.set_stock(db, product_id, data.quantity)
            elif data.operation == "add":
                new_stock = await ProductRepository.add_stock(db, product_id, data.quantity)
            else:
                new_stock = await ProductRepository.subtract_stock(db, product_id, data.quantity)
                if new_stock is None:
                    raise InvalidStockAdjustment("Stock quantity cannot be negative")

        await db.refresh(product)
        logger.info(
            "stock_adjusted",
            product_id=str(product_id),
            operation=data.operation,
            quantity=data.quantity,
            from_quantity=previous,
            to_quantity=new_stock,
            reason=data.reason,
        )
        return {
            "product": product,
            "stock_status": stock_status(new_stock),
            "stock_change": {
                "from_quantity": previous,
                "to_quantity": new_stock,
                "operation": data.operation,
                "quantity": data.quantity,
                "reason": data.reason,
            },
        }
