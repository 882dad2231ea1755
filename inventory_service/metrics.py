from prometheus_client import Counter

RESERVATIONS = Counter(
    "inventory_reservations_total",
    "Stock reservation outcomes",
    ["outcome"],  # accepted | rejected | duplicate | contention
)

RESERVATION_CONFLICTS = Counter(
    "inventory_reservation_conflicts_total",
    "Optimistic transactions aborted by a concurrent writer",
)

DECISIONS_PUBLISHED = Counter(
    "inventory_decisions_published_total",
    "Reservation decisions emitted on inventory.events",
    ["event_type"],
)
