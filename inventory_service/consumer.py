"""
Inventory service consumer — reacts to order.saved on order.events.

Each order.saved becomes one reservation attempt keyed by the order id
(redeliveries return the recorded decision) followed by exactly one of:
  - inventory.reserved      — stock decremented
  - inventory.insufficient  — OUT_OF_STOCK, or RESERVATION_FAILED when the
                              counter store stayed unavailable or contended
"""

import logging

from inventory_service.metrics import DECISIONS_PUBLISHED
from inventory_service.reservation import ReservationEngine
from shared.bus import EventBus
from shared.errors import UpstreamUnavailable
from shared.events import (
    InsufficientReason,
    InventoryInsufficientData,
    InventoryInsufficientEvent,
    InventoryReservedData,
    InventoryReservedEvent,
    OrderSavedEvent,
    Topics,
)

logger = logging.getLogger(__name__)


async def handle_order_event(event, engine: ReservationEngine, bus: EventBus) -> None:
    if not isinstance(event, OrderSavedEvent):
        # order.confirmed / order.cancelled share the topic but are not ours
        return

    data = event.data
    logger.info(
        "Received order.saved event",
        extra={
            "event_id": str(event.event_id),
            "order_id": str(data.order_id),
            "item_id": data.item_id,
            "quantity": data.quantity,
            "correlation_id": event.correlation_id,
        },
    )

    try:
        result = await engine.reserve(data.item_id, data.quantity, reservation_id=str(data.order_id))
    except UpstreamUnavailable as exc:
        logger.error(
            "Reservation failed — cancelling order",
            extra={"order_id": str(data.order_id), "item_id": data.item_id, "error": str(exc)},
        )
        decision = InventoryInsufficientEvent(
            correlation_id=event.correlation_id,
            data=InventoryInsufficientData(
                order_id=data.order_id,
                item_id=data.item_id,
                quantity=data.quantity,
                available_stock=None,
                reason=InsufficientReason.RESERVATION_FAILED,
            ),
        )
    else:
        if result.accepted:
            decision = InventoryReservedEvent(
                correlation_id=event.correlation_id,
                data=InventoryReservedData(
                    order_id=data.order_id,
                    item_id=data.item_id,
                    quantity=data.quantity,
                    remaining_stock=result.remaining,
                ),
            )
        else:
            logger.warning(
                "Insufficient stock for order",
                extra={
                    "order_id": str(data.order_id),
                    "item_id": data.item_id,
                    "quantity": data.quantity,
                    "available_stock": result.remaining,
                },
            )
            decision = InventoryInsufficientEvent(
                correlation_id=event.correlation_id,
                data=InventoryInsufficientData(
                    order_id=data.order_id,
                    item_id=data.item_id,
                    quantity=data.quantity,
                    available_stock=result.remaining,
                    reason=InsufficientReason.OUT_OF_STOCK,
                ),
            )

    await bus.publish(Topics.INVENTORY_EVENTS, decision)
    DECISIONS_PUBLISHED.labels(decision.event_type).inc()
