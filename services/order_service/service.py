"""
Order lifecycle orchestration.

Every mutating operation runs as one database transaction: order rows,
order items and product stock move together or not at all. Stock is only
ever changed through the guarded ledger calls in ProductRepository.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
import structlog
from shared.config.database import transactional
from shared.errors import (
    ConcurrentOrderUpdate,
    CustomerNotFound,
    InsufficientStock,
    OrderNotEditable,
    OrderNotFound,
    ProductInactive,
    ProductNotFound,
    ValidationError,
)
from shared.observability import (
    backoffice_order_status_transitions_total,
    backoffice_orders_created_total,
    backoffice_stock_released_units_total,
    backoffice_stock_reservation_failures_total,
)
from services.customer_service.repository import CustomerRepository
from services.product_service.repository import ProductRepository
from .models import Order, OrderItem, OrderStatus, OrderType
from .order_number import next_order_number
from .repository import OrderRepository
from .schemas import OrderCreate, OrderItemCreate, OrderListQuery, OrderStatusUpdate, OrderUpdate
from .snapshot import build_snapshot, load_product_for_snapshot
from .status_machine import EDITABLE_STATES, apply_transition

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class PreparedLine:
    product_id: object
    quantity: int
    snapshot: dict
    line_total: Decimal


def compute_shipping_cost(original_shipping_cost: Decimal, shipping_discount: Decimal) -> Decimal:
    return max(ZERO, original_shipping_cost - shipping_discount)


def validate_shipping(original_shipping_cost: Decimal, shipping_discount: Decimal):
    if shipping_discount > original_shipping_cost:
        raise ValidationError(
            "Shipping discount cannot exceed original shipping cost",
            details={
                "original_shipping_cost": str(original_shipping_cost),
                "shipping_discount": str(shipping_discount),
            },
        )


def validate_create(data: OrderCreate):
    """Shape checks that need no database access."""
    if data.order_type == OrderType.PRODUCT and not data.items:
        raise ValidationError("Product orders must contain at least one item")
    if data.order_type == OrderType.CUSTOM:
        if not (data.custom_description or "").strip():
            raise ValidationError("Custom orders require a custom description")
        if data.items:
            raise ValidationError("Custom orders cannot contain items")
    validate_shipping(data.original_shipping_cost, data.shipping_discount)


async def prepare_lines(db: AsyncSession, items: list[OrderItemCreate]) -> list[PreparedLine]:
    """Validate each requested product and capture its snapshot.

    The stock comparison here is an early rejection only; the guarded
    reservation that follows is what actually decides.
    """
    lines = []
    for item in items:
        product = await load_product_for_snapshot(db, item.product_id)
        if not product.is_purchasable:
            raise ProductInactive(f"Product {product.name} is not available for purchase")
        if product.stock_quantity < item.quantity:
            raise InsufficientStock(
                f"Insufficient stock for product {product.name}. "
                f"Available: {product.stock_quantity}, Requested: {item.quantity}",
                details={
                    "product_id": str(product.id),
                    "available": product.stock_quantity,
                    "requested": item.quantity,
                },
            )
        snapshot = build_snapshot(product, item.unit_price, item.requested_color)
        lines.append(PreparedLine(
            product_id=product.id,
            quantity=item.quantity,
            snapshot=snapshot.model_dump(mode="json"),
            line_total=snapshot.unit_price_at_sale * item.quantity,
        ))
    return lines


async def reserve_lines(db: AsyncSession, lines: list[PreparedLine]):
    for line in lines:
        await ProductRepository.reserve_stock(db, line.product_id, line.quantity)


async def release_items(db: AsyncSession, items: list[OrderItem]) -> int:
    """Compensating release for every item. Returns the units given back."""
    released = 0
    for item in items:
        if await ProductRepository.release_stock(db, item.product_id, item.quantity):
            released += item.quantity
    return released


def build_items(lines: list[PreparedLine]) -> list[OrderItem]:
    return [
        OrderItem(product_id=line.product_id, quantity=line.quantity, product_snapshot=line.snapshot)
        for line in lines
    ]


async def flush_order(db: AsyncSession):
    try:
        await db.flush()
    except StaleDataError as e:
        raise ConcurrentOrderUpdate("Order was modified by another request, please retry") from e


def record_reservation_failure(error: Exception):
    backoffice_stock_reservation_failures_total.labels(reason=error.code).inc()


class OrderService:

    @staticmethod
    async def create_order(db: AsyncSession, data: OrderCreate, now: datetime = None) -> Order:
        validate_create(data)
        shipping_cost = compute_shipping_cost(data.original_shipping_cost, data.shipping_discount)

        try:
            async with transactional(db):
                if not await CustomerRepository.exists(db, data.customer_id):
                    raise CustomerNotFound(f"Customer with ID {data.customer_id} not found")

                if data.order_type == OrderType.PRODUCT:
                    lines = await prepare_lines(db, data.items)
                    subtotal = sum((line.line_total for line in lines), ZERO)
                else:
                    lines = []
                    subtotal = data.total_amount or ZERO

                order = Order(
                    order_number=await next_order_number(db, now),
                    customer_id=data.customer_id,
                    order_type=data.order_type,
                    status=OrderStatus.PENDING,
                    delivery_address=data.delivery_address.model_dump(),
                    custom_description=data.custom_description,
                    notes=data.notes,
                    original_shipping_cost=data.original_shipping_cost,
                    shipping_discount=data.shipping_discount,
                    shipping_cost=shipping_cost,
                    total_amount=subtotal + shipping_cost,
                    items=build_items(lines),
                )
                await OrderRepository.add_order(db, order)
                await reserve_lines(db, lines)
        except (InsufficientStock, ProductNotFound, ProductInactive) as e:
            record_reservation_failure(e)
            raise

        backoffice_orders_created_total.labels(order_type=data.order_type.value).inc()
        logger.info(
            "order_created",
            order_id=str(order.id),
            order_number=order.order_number,
            order_type=data.order_type.value,
            items=len(lines),
            total_amount=str(order.total_amount),
        )
        return await OrderRepository.get_order(db, order.id)

    @staticmethod
    async def get_order(db: AsyncSession, order_id) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise OrderNotFound("Order not found")
        return order

    @staticmethod
    async def list_orders(db: AsyncSession, query: OrderListQuery):
        orders, total = await OrderRepository.list_orders(db, query)
        total_pages = math.ceil(total / query.limit)
        pagination = {
            "current_page": query.page,
            "per_page": query.limit,
            "total_pages": total_pages,
            "total_items": total,
            "has_next": query.page < total_pages,
            "has_prev": query.page > 1,
        }
        return orders, pagination

    @staticmethod
    async def update_order_status(db: AsyncSession, order_id, data: OrderStatusUpdate, now: datetime = None) -> Order:
        released = 0
        async with transactional(db):
            order = await OrderRepository.get_order(db, order_id, lock=True)
            if order is None:
                raise OrderNotFound("Order not found")
            previous = order.status

            restore_stock = apply_transition(order, data.status, now)
            if data.notes is not None:
                order.notes = data.notes
            await flush_order(db)

            if restore_stock and order.order_type == OrderType.PRODUCT:
                released = await release_items(db, order.items)

        if previous != order.status:
            backoffice_order_status_transitions_total.labels(to_status=order.status.value).inc()
            logger.info(
                "order_status_changed",
                order_id=str(order_id),
                from_status=previous.value,
                to_status=order.status.value,
                released_units=released,
            )
        if released:
            backoffice_stock_released_units_total.labels(reason="cancel").inc(released)
        return await OrderRepository.get_order(db, order_id)

    @staticmethod
    async def update_order(db: AsyncSession, order_id, data: OrderUpdate) -> Order:
        """Edit address, notes, shipping and (for product orders) the item list.

        Old items are released before the new list is reserved, all in one
        transaction, so a failed re-reservation leaves the order and stock
        exactly as they were.
        """
        released = 0
        async with transactional(db):
            order = await OrderRepository.get_order(db, order_id, lock=True)
            if order is None:
                raise OrderNotFound("Order not found")
            if order.status not in EDITABLE_STATES:
                raise OrderNotEditable(
                    f"Order in status {order.status.value} can no longer be edited",
                    details={"status": order.status.value},
                )

            original_shipping_cost, shipping_discount = OrderService._resolve_shipping(order, data)
            validate_shipping(original_shipping_cost, shipping_discount)

            if data.delivery_address is not None:
                order.delivery_address = data.delivery_address.model_dump()
            if data.notes is not None:
                order.notes = data.notes

            if data.items is not None:
                if order.order_type != OrderType.PRODUCT:
                    raise ValidationError("Items can only be changed on product orders")
                if not data.items:
                    raise ValidationError("Product orders must contain at least one item")

                released = await release_items(db, order.items)
                order.items.clear()
                await flush_order(db)

                lines = await prepare_lines(db, data.items)
                order.items.extend(build_items(lines))
                await flush_order(db)
                await reserve_lines(db, lines)

            if order.order_type == OrderType.PRODUCT:
                subtotal = order.items_total
            else:
                subtotal = order.total_amount - order.shipping_cost

            shipping_cost = compute_shipping_cost(original_shipping_cost, shipping_discount)
            order.original_shipping_cost = original_shipping_cost
            order.shipping_discount = shipping_discount
            order.shipping_cost = shipping_cost
            order.total_amount = subtotal + shipping_cost
            await flush_order(db)

        if released:
            backoffice_stock_released_units_total.labels(reason="edit").inc(released)
        logger.info("order_updated", order_id=str(order_id), items_replaced=data.items is not None)
        return await OrderRepository.get_order(db, order_id)

    @staticmethod
    async def delete_order(db: AsyncSession, order_id):
        """Hard delete (admin). Stock comes back unless the order was already cancelled."""
        released = 0
        async with transactional(db):
            order = await OrderRepository.get_order(db, order_id, lock=True)
            if order is None:
                raise OrderNotFound("Order not found")
            order_number = order.order_number

            if order.status != OrderStatus.CANCELLED and order.order_type == OrderType.PRODUCT:
                released = await release_items(db, order.items)
            try:
                await OrderRepository.delete_order(db, order)
            except StaleDataError as e:
                raise ConcurrentOrderUpdate("Order was modified by another request, please retry") from e

        if released:
            backoffice_stock_released_units_total.labels(reason="delete").inc(released)
        logger.info("order_deleted", order_id=str(order_id), order_number=order_number, released_units=released)

    @staticmethod
    def _resolve_shipping(order: Order, data: OrderUpdate):
        # A bare shipping_cost means "this is the full cost, no discount"
        if data.shipping_cost is not None and data.original_shipping_cost is None and data.shipping_discount is None:
            return data.shipping_cost, ZERO
        original = order.original_shipping_cost if data.original_shipping_cost is None else data.original_shipping_cost
        discount = order.shipping_discount if data.shipping_discount is None else data.shipping_discount
        return original, discount
