from prometheus_client import Counter

BUS_MESSAGES_CONSUMED = Counter(
    "bus_messages_consumed_total",
    "Kafka messages consumed per subscription",
    ["subscription", "status"],  # processed | parse_error | handler_error
)

BUS_PUBLISH_ATTEMPTS = Counter(
    "bus_publish_attempts_total",
    "Kafka publish attempts",
    ["topic", "outcome"],  # success | retry | exhausted
)
