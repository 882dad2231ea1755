"""
Notification service consumer — listens to order.events and inventory.events,
translates each event and republishes the result on notification.events.
"""

import logging

from notification_service.metrics import NOTIFICATIONS
from notification_service.translator import translate
from shared.bus import EventBus
from shared.events import Topics, UnhandledEvent

logger = logging.getLogger(__name__)


async def handle_domain_event(event, bus: EventBus, low_stock_threshold: int = 10) -> None:
    if isinstance(event, UnhandledEvent):
        logger.warning("Unknown event type — dropping", extra={"event_type": event.event_type})
        NOTIFICATIONS.labels("unknown").inc()
        return

    notification = translate(event, low_stock_threshold=low_stock_threshold)
    if notification is None:
        logger.debug(
            "Event not relevant for notifications",
            extra={"event_type": event.event_type, "event_id": str(event.event_id)},
        )
        NOTIFICATIONS.labels("ignored").inc()
        return

    await bus.publish(Topics.NOTIFICATION_EVENTS, notification)
    NOTIFICATIONS.labels(notification.event_type).inc()

    logger.info(
        "NOTIFICATION: %s",
        notification.data.message,
        extra={
            "source_event_type": event.event_type,
            "source_event_id": str(event.event_id),
            "notification_type": notification.event_type,
            "correlation_id": event.correlation_id,
        },
    )
