"""
Gateway consumer — reads notification.events and hands each notification to
the realtime gateway for fan-out.
"""

import logging

from app.realtime.gateway import RealtimeGateway
from shared.events import (
    NotificationOrderUpdateEvent,
    NotificationStockUpdateEvent,
    UnhandledEvent,
)

logger = logging.getLogger(__name__)


async def handle_notification_event(event, gateway: RealtimeGateway) -> None:
    if isinstance(event, (NotificationOrderUpdateEvent, NotificationStockUpdateEvent)):
        await gateway.handle_notification(event)
        return

    logger.warning(
        "Unexpected event on notification topic — dropping",
        extra={
            "event_type": event.event_type,
            "event_id": None if isinstance(event, UnhandledEvent) else str(event.event_id),
        },
    )
