from prometheus_client import Counter

ORDERS_CREATED = Counter(
    "orders_created_total",
    "Orders persisted in PENDING",
    ["published"],  # true | false (stuck until manually replayed)
)

ORDER_TRANSITIONS = Counter(
    "order_transitions_total",
    "Reservation decisions applied to orders",
    ["outcome"],  # confirmed | cancelled | duplicate | unknown_order
)
