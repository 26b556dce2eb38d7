from .setup import setup_observability
from .metrics import (
    backoffice_orders_created_total,
    backoffice_stock_reservation_failures_total,
    backoffice_order_status_transitions_total,
    backoffice_stock_released_units_total,
)
