from prometheus_client import Counter

NOTIFICATIONS = Counter(
    "notifications_sent_total",
    "Domain events handled by the notification translator",
    ["outcome"],  # notification.order_update | notification.stock_update | ignored | unknown
)
