"""
Order status state machine.

Only the transitions listed in ``ALLOWED_TRANSITIONS`` are legal. Entering
CANCELLED is the one transition with a side effect (stock is handed back),
which the service performs in the same transaction as the status write.
"""
from datetime import datetime, timezone
from shared.errors import InvalidStatusTransition
from .models import Order, OrderStatus

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

EDITABLE_STATES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[OrderStatus(current)]


def is_noop(current: OrderStatus, target: OrderStatus) -> bool:
    """Cancelling an already cancelled order is accepted and does nothing."""
    return current == OrderStatus.CANCELLED and target == OrderStatus.CANCELLED


def apply_transition(order: Order, target: OrderStatus, now: datetime = None) -> bool:
    """Move ``order`` to ``target`` in memory.

    Returns True if the order now needs its stock handed back, i.e. it just
    entered CANCELLED. Raises InvalidStatusTransition and leaves the order
    untouched if the move is not allowed.
    """
    current = OrderStatus(order.status)
    target = OrderStatus(target)
    if is_noop(current, target):
        return False
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            f"Cannot change order status from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )

    now = now or datetime.now(timezone.utc)
    order.status = target
    if target == OrderStatus.CONFIRMED:
        order.confirmed_at = now
    elif target == OrderStatus.DELIVERED:
        order.completed_at = now
    return target == OrderStatus.CANCELLED
