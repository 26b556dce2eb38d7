import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from services.order_service import service as order_service_module
from services.order_service.models import Order, OrderItem, OrderStatus, OrderType
from services.order_service.repository import OrderRepository
from services.order_service.schemas import DeliveryAddress, OrderListQuery, OrderStatusUpdate, OrderUpdate
from services.order_service.service import OrderService
from shared.errors import (
    ConcurrentOrderUpdate,
    CustomerNotFound,
    InsufficientStock,
    InvalidStatusTransition,
    OrderNotEditable,
    OrderNotFound,
    ProductInactive,
    ProductNotFound,
    ValidationError,
)
from tests.factories import custom_order, item, make_product, product_order, stock_of


async def count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def set_status(db, order_id, *statuses):
    for status in statuses:
        order = await OrderService.update_order_status(db, order_id, OrderStatusUpdate(status=status))
    return order


# --- creation ---

async def test_create_product_order_scenario(db, customer, product):
    order = await OrderService.create_order(
        db, product_order(customer.id, [(product.id, 3)], original_shipping_cost="30000")
    )

    assert await stock_of(db, product.id) == 2
    assert order.status == OrderStatus.PENDING
    assert order.order_type == OrderType.PRODUCT
    assert order.order_number.startswith("ORD")
    assert len(order.order_number) == 13
    assert order.shipping_cost == Decimal("30000")
    assert order.total_amount == Decimal("330000")
    assert order.customer.full_name == customer.full_name
    assert [i.quantity for i in order.items] == [3]

    await set_status(db, order.id, OrderStatus.CANCELLED)
    assert await stock_of(db, product.id) == 5


async def test_total_is_items_plus_discounted_shipping(db, customer):
    a = await make_product(db, stock=10, price=Decimal("120000.00"))
    b = await make_product(db, stock=10, price=Decimal("45000.50"))

    order = await OrderService.create_order(db, product_order(
        customer.id,
        [item(a.id, 2), item(b.id, 3, unit_price=Decimal("40000"))],
        original_shipping_cost="50000",
        shipping_discount="20000",
    ))

    expected_items = sum(i.unit_price_at_sale * i.quantity for i in order.items)
    assert expected_items == Decimal("360000")
    assert order.shipping_cost == Decimal("30000")
    assert order.total_amount == expected_items + max(Decimal("0"), order.original_shipping_cost - order.shipping_discount)


async def test_discount_above_shipping_is_rejected(db, customer, product):
    with pytest.raises(ValidationError):
        await OrderService.create_order(
            db, product_order(customer.id, [(product.id, 1)], original_shipping_cost="50000", shipping_discount="60000")
        )
    assert await count(db, Order) == 0
    assert await stock_of(db, product.id) == 5


async def test_shipping_validation_runs_before_stock_checks(db, customer, product):
    # Would fail with InsufficientStock if stock were looked at first
    with pytest.raises(ValidationError):
        await OrderService.create_order(
            db, product_order(customer.id, [(product.id, 500)], original_shipping_cost="50000", shipping_discount="60000")
        )


async def test_free_item_keeps_zero_price(db, customer, product):
    order = await OrderService.create_order(
        db, product_order(customer.id, [item(product.id, 1, unit_price=Decimal("0"))])
    )
    assert order.total_amount == Decimal("0")
    assert order.items[0].product_snapshot["base_price"] == "100000.00"


async def test_product_order_requires_items(db, customer):
    with pytest.raises(ValidationError):
        await OrderService.create_order(db, product_order(customer.id, []))


async def test_custom_order_requires_description(db, customer):
    with pytest.raises(ValidationError):
        await OrderService.create_order(db, custom_order(customer.id, description="  "))


async def test_custom_order_with_items_is_rejected(db, customer, product):
    with pytest.raises(ValidationError, match="cannot contain items"):
        await OrderService.create_order(db, custom_order(customer.id, items=[item(product.id, 2)]))

    assert await count(db, Order) == 0
    assert await stock_of(db, product.id) == 5


async def test_custom_order_has_no_stock_effect(db, customer, product):
    order = await OrderService.create_order(
        db, custom_order(customer.id, total_amount="250000", original_shipping_cost="20000")
    )

    assert order.order_type == OrderType.CUSTOM
    assert order.items == []
    assert order.total_amount == Decimal("270000")

    await set_status(db, order.id, OrderStatus.CANCELLED)
    assert await stock_of(db, product.id) == 5


async def test_unknown_customer(db, product):
    with pytest.raises(CustomerNotFound):
        await OrderService.create_order(db, product_order(uuid.uuid4(), [(product.id, 1)]))
    assert await stock_of(db, product.id) == 5


async def test_unknown_product_rolls_back_everything(db, customer, product):
    with pytest.raises(ProductNotFound):
        await OrderService.create_order(db, product_order(customer.id, [(product.id, 1), (uuid.uuid4(), 1)]))

    assert await count(db, Order) == 0
    assert await count(db, OrderItem) == 0
    assert await stock_of(db, product.id) == 5


async def test_inactive_product_is_rejected(db, customer):
    inactive = await make_product(db, stock=5, is_active=False)
    with pytest.raises(ProductInactive):
        await OrderService.create_order(db, product_order(customer.id, [(inactive.id, 1)]))


async def test_insufficient_stock_leaves_no_partial_state(db, customer, product):
    other = await make_product(db, stock=1)

    with pytest.raises(InsufficientStock):
        await OrderService.create_order(db, product_order(customer.id, [(product.id, 2), (other.id, 2)]))

    assert await count(db, Order) == 0
    assert await stock_of(db, product.id) == 5
    assert await stock_of(db, other.id) == 1


async def test_repeated_product_lines_are_checked_together(db, customer, product):
    # Each line passes the early check alone; the guarded reservation catches the sum
    with pytest.raises(InsufficientStock):
        await OrderService.create_order(db, product_order(customer.id, [(product.id, 3), (product.id, 3)]))

    assert await stock_of(db, product.id) == 5
    assert await count(db, Order) == 0


async def test_order_numbers_are_sequential_per_day(db, customer, product):
    now = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)
    first = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]), now=now)
    second = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]), now=now)

    assert first.order_number == "ORD2610190001"
    assert second.order_number == "ORD2610190002"


async def test_concurrent_orders_for_last_unit(session_factory, customer):
    async with session_factory() as setup:
        last_one = await make_product(setup, stock=1)

    async def place():
        async with session_factory() as session:
            return await OrderService.create_order(session, product_order(customer.id, [(last_one.id, 1)]))

    results = await asyncio.gather(place(), place(), return_exceptions=True)

    placed = [r for r in results if isinstance(r, Order)]
    rejected = [r for r in results if isinstance(r, InsufficientStock)]
    assert len(placed) == 1
    assert len(rejected) == 1
    async with session_factory() as check:
        assert await stock_of(check, last_one.id) == 0
        assert await count(check, Order) == 1


async def bump_version(session_factory, order_id):
    """Commit a version bump from another session, as a competing writer would."""
    async with session_factory() as other:
        await other.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(version=Order.version + 1)
            .execution_options(synchronize_session=False)
        )
        await other.commit()


async def test_concurrent_cancellations_restore_stock_once(session_factory, customer):
    async with session_factory() as setup:
        bottle = await make_product(setup, stock=5)
        order = await OrderService.create_order(setup, product_order(customer.id, [(bottle.id, 3)]))

    async def cancel():
        async with session_factory() as session:
            return await OrderService.update_order_status(session, order.id, OrderStatusUpdate(status=OrderStatus.CANCELLED))

    results = await asyncio.gather(cancel(), cancel(), return_exceptions=True)

    assert any(isinstance(r, Order) for r in results)
    assert all(isinstance(r, (Order, ConcurrentOrderUpdate)) for r in results)
    async with session_factory() as check:
        assert await stock_of(check, bottle.id) == 5
        assert (await OrderService.get_order(check, order.id)).status == OrderStatus.CANCELLED


async def test_stale_status_write_is_rejected(db, session_factory, customer, product, monkeypatch):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 3)]))

    async def transition_after_competing_write(target_order, target, now=None):
        await bump_version(session_factory, target_order.id)
        return real_apply_transition(target_order, target, now)

    real_apply_transition = order_service_module.apply_transition
    monkeypatch.setattr(order_service_module, "apply_transition", transition_after_competing_write)

    with pytest.raises(ConcurrentOrderUpdate):
        await OrderService.update_order_status(db, order.id, OrderStatusUpdate(status=OrderStatus.CANCELLED))

    monkeypatch.undo()
    unchanged = await OrderService.get_order(db, order.id)
    assert unchanged.status == OrderStatus.PENDING
    assert await stock_of(db, product.id) == 2


async def test_stale_delete_is_rejected(db, session_factory, customer, product, monkeypatch):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 3)]))
    await set_status(db, order.id, OrderStatus.CANCELLED)

    real_delete = OrderRepository.delete_order

    async def delete_after_competing_write(session, target_order):
        await bump_version(session_factory, target_order.id)
        await real_delete(session, target_order)

    monkeypatch.setattr(OrderRepository, "delete_order", delete_after_competing_write)

    with pytest.raises(ConcurrentOrderUpdate):
        await OrderService.delete_order(db, order.id)

    monkeypatch.undo()
    assert await count(db, Order) == 1
    assert await count(db, OrderItem) == 1
    assert await stock_of(db, product.id) == 5


# --- listing ---

async def test_list_orders_filters_and_pages(db, customer, product):
    first = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]))
    await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]))
    await OrderService.create_order(db, custom_order(customer.id))
    await set_status(db, first.id, OrderStatus.CANCELLED)

    orders, pagination = await OrderService.list_orders(db, OrderListQuery(limit=2))
    assert len(orders) == 2
    assert pagination == {
        "current_page": 1,
        "per_page": 2,
        "total_pages": 2,
        "total_items": 3,
        "has_next": True,
        "has_prev": False,
    }

    cancelled, _ = await OrderService.list_orders(db, OrderListQuery(status="cancelled"))
    assert [o.id for o in cancelled] == [first.id]

    custom, _ = await OrderService.list_orders(db, OrderListQuery(order_type="custom"))
    assert [o.order_type for o in custom] == [OrderType.CUSTOM]

    everything, _ = await OrderService.list_orders(db, OrderListQuery(status="all", customer_id=customer.id))
    assert len(everything) == 3

    found, _ = await OrderService.list_orders(db, OrderListQuery(search=first.order_number[-4:]))
    assert first.id in [o.id for o in found]

    today = datetime.now(timezone.utc).date()
    dated, _ = await OrderService.list_orders(db, OrderListQuery(date_from=today, date_to=today))
    assert len(dated) == 3


async def test_list_orders_empty(db):
    orders, pagination = await OrderService.list_orders(db, OrderListQuery())
    assert orders == []
    assert pagination["total_pages"] == 0
    assert pagination["has_next"] is False


# --- status changes ---

async def test_cancel_restores_every_line_exactly_once(db, customer):
    a = await make_product(db, stock=10)
    b = await make_product(db, stock=4)
    order = await OrderService.create_order(db, product_order(customer.id, [(a.id, 7), (b.id, 4)]))
    assert (await stock_of(db, a.id), await stock_of(db, b.id)) == (3, 0)

    await set_status(db, order.id, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CANCELLED)
    assert (await stock_of(db, a.id), await stock_of(db, b.id)) == (10, 4)

    again = await set_status(db, order.id, OrderStatus.CANCELLED)
    assert again.status == OrderStatus.CANCELLED
    assert (await stock_of(db, a.id), await stock_of(db, b.id)) == (10, 4)


async def test_lifecycle_stamps_timestamps(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]))

    confirmed = await set_status(db, order.id, OrderStatus.CONFIRMED)
    assert confirmed.confirmed_at is not None
    assert confirmed.completed_at is None

    delivered = await set_status(db, order.id, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED)
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.completed_at is not None
    assert await stock_of(db, product.id) == 4


async def test_delivered_order_cannot_go_back_to_pending(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]))
    await set_status(db, order.id, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED)

    with pytest.raises(InvalidStatusTransition):
        await set_status(db, order.id, OrderStatus.PENDING)

    unchanged = await OrderService.get_order(db, order.id)
    assert unchanged.status == OrderStatus.DELIVERED


async def test_shipped_order_cannot_be_cancelled(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 2)]))
    await set_status(db, order.id, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED)

    with pytest.raises(InvalidStatusTransition):
        await set_status(db, order.id, OrderStatus.CANCELLED)
    assert await stock_of(db, product.id) == 3


async def test_status_update_sets_notes(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]))
    updated = await OrderService.update_order_status(
        db, order.id, OrderStatusUpdate(status=OrderStatus.CONFIRMED, notes="Called customer")
    )
    assert updated.notes == "Called customer"


async def test_status_update_unknown_order(db):
    with pytest.raises(OrderNotFound):
        await OrderService.update_order_status(db, uuid.uuid4(), OrderStatusUpdate(status=OrderStatus.CONFIRMED))


# --- edits ---

async def test_edit_replaces_items_and_moves_stock(db, customer, product):
    other = await make_product(db, stock=10, price=Decimal("20000.00"))
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 3)], original_shipping_cost="10000"))

    updated = await OrderService.update_order(db, order.id, OrderUpdate(items=[item(other.id, 4), item(product.id, 1)]))

    assert await stock_of(db, product.id) == 4
    assert await stock_of(db, other.id) == 6
    assert sorted(i.quantity for i in updated.items) == [1, 4]
    assert updated.total_amount == Decimal("80000") + Decimal("100000") + Decimal("10000")
    assert await count(db, OrderItem) == 2


async def test_edit_can_reuse_stock_released_from_old_items(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 4)]))

    await OrderService.update_order(db, order.id, OrderUpdate(items=[item(product.id, 5)]))

    assert await stock_of(db, product.id) == 0


async def test_failed_edit_leaves_order_and_stock_untouched(db, customer, product):
    scarce = await make_product(db, stock=1)
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 2)]))
    before = [(i.product_id, i.quantity, i.product_snapshot) for i in order.items]
    total_before = order.total_amount

    with pytest.raises(InsufficientStock):
        await OrderService.update_order(db, order.id, OrderUpdate(items=[item(product.id, 1), item(scarce.id, 2)]))

    reloaded = await OrderService.get_order(db, order.id)
    assert [(i.product_id, i.quantity, i.product_snapshot) for i in reloaded.items] == before
    assert reloaded.total_amount == total_before
    assert await stock_of(db, product.id) == 3
    assert await stock_of(db, scarce.id) == 1


async def test_edit_address_notes_and_shipping(db, customer, product):
    order = await OrderService.create_order(
        db, product_order(customer.id, [(product.id, 1)], original_shipping_cost="30000", shipping_discount="10000")
    )
    new_address = DeliveryAddress(address_line="99 Tran Hung Dao", city="Ha Noi")

    updated = await OrderService.update_order(
        db, order.id, OrderUpdate(delivery_address=new_address, notes="Leave at door", shipping_discount=Decimal("30000"))
    )

    assert updated.delivery_address["city"] == "Ha Noi"
    assert updated.notes == "Leave at door"
    assert updated.shipping_cost == Decimal("0")
    assert updated.total_amount == Decimal("100000")

    flat = await OrderService.update_order(db, order.id, OrderUpdate(shipping_cost=Decimal("15000")))
    assert flat.original_shipping_cost == Decimal("15000")
    assert flat.shipping_discount == Decimal("0")
    assert flat.total_amount == Decimal("115000")


async def test_edit_rejects_discount_above_shipping(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)], original_shipping_cost="30000"))
    with pytest.raises(ValidationError):
        await OrderService.update_order(db, order.id, OrderUpdate(shipping_discount=Decimal("40000")))


async def test_edit_custom_order_keeps_amount(db, customer):
    order = await OrderService.create_order(db, custom_order(customer.id, total_amount="250000", original_shipping_cost="20000"))

    updated = await OrderService.update_order(db, order.id, OrderUpdate(original_shipping_cost=Decimal("50000")))
    assert updated.total_amount == Decimal("300000")

    with pytest.raises(ValidationError):
        await OrderService.update_order(db, order.id, OrderUpdate(items=[]))


@pytest.mark.parametrize("path", [
    [OrderStatus.CONFIRMED, OrderStatus.PROCESSING],
    [OrderStatus.CANCELLED],
])
async def test_edit_outside_editable_states_is_rejected(db, customer, product, path):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]))
    await set_status(db, order.id, *path)

    with pytest.raises(OrderNotEditable):
        await OrderService.update_order(db, order.id, OrderUpdate(notes="too late"))


async def test_confirmed_order_is_still_editable(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 1)]))
    await set_status(db, order.id, OrderStatus.CONFIRMED)

    updated = await OrderService.update_order(db, order.id, OrderUpdate(items=[item(product.id, 2)]))
    assert updated.items[0].quantity == 2
    assert await stock_of(db, product.id) == 3


# --- deletion ---

async def test_delete_restores_stock(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 3)]))

    await OrderService.delete_order(db, order.id)

    assert await stock_of(db, product.id) == 5
    assert await count(db, Order) == 0
    assert await count(db, OrderItem) == 0
    with pytest.raises(OrderNotFound):
        await OrderService.get_order(db, order.id)


async def test_delete_cancelled_order_does_not_restore_twice(db, customer, product):
    order = await OrderService.create_order(db, product_order(customer.id, [(product.id, 3)]))
    await set_status(db, order.id, OrderStatus.CANCELLED)

    await OrderService.delete_order(db, order.id)

    assert await stock_of(db, product.id) == 5


async def test_delete_unknown_order(db):
    with pytest.raises(OrderNotFound):
        await OrderService.delete_order(db, uuid.uuid4())
