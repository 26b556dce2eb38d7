from prometheus_client import Counter

# Business Metrics
backoffice_orders_created_total = Counter(
    "backoffice_orders_created_total",
    "Total orders placed",
    ["order_type"] # Labels: 'PRODUCT', 'CUSTOM'
)

backoffice_stock_reservation_failures_total = Counter(
    "backoffice_stock_reservation_failures_total",
    "Order placements rejected by the stock ledger",
    ["reason"] # Labels: 'INSUFFICIENT_STOCK', 'PRODUCT_NOT_FOUND', 'PRODUCT_INACTIVE'
)

backoffice_order_status_transitions_total = Counter(
    "backoffice_order_status_transitions_total",
    "Order status transitions applied",
    ["to_status"]
)

backoffice_stock_released_units_total = Counter(
    "backoffice_stock_released_units_total",
    "Units returned to stock by compensating releases",
    ["reason"] # Labels: 'cancel', 'delete', 'edit'
)
