"""
Pure mapping from domain events to user-facing notification events.

translate() is total over every parse_event() result: each input yields
either one notification or None. It performs no I/O.
"""

from shared.events import (
    InventoryReservedEvent,
    NotificationOrderUpdateEvent,
    NotificationStockUpdateEvent,
    OrderCancelledEvent,
    OrderConfirmedEvent,
    OrderSavedEvent,
    OrderStatus,
    OrderUpdateData,
    StockUpdateData,
)
from shared.messages import DEFAULT_LOW_STOCK_THRESHOLD, stock_message

def translate(
    event,
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
) -> NotificationOrderUpdateEvent | NotificationStockUpdateEvent | None:
    if isinstance(event, OrderSavedEvent):
        return _order_update(
            event,
            OrderStatus.PENDING,
            "Your order has been received and is being processed.",
        )

    if isinstance(event, OrderConfirmedEvent):
        return _order_update(event, OrderStatus.CONFIRMED, "Your order has been confirmed!")

    if isinstance(event, OrderCancelledEvent):
        reason = event.data.reason or "Unknown"
        return _order_update(
            event,
            OrderStatus.CANCELLED,
            f"Your order has been cancelled. Reason: {reason}",
            reason=reason,
        )

    if isinstance(event, InventoryReservedEvent):
        remaining = event.data.remaining_stock
        return NotificationStockUpdateEvent(
            correlation_id=event.correlation_id,
            data=StockUpdateData(
                item_id=event.data.item_id,
                available_stock=remaining,
                message=stock_message(remaining, low_stock_threshold),
            ),
        )

    # inventory.insufficient is reported through the order cancellation;
    # notification.* and unhandled types produce nothing.
    return None


def _order_update(event, status: OrderStatus, message: str, reason: str | None = None):
    return NotificationOrderUpdateEvent(
        correlation_id=event.correlation_id,
        data=OrderUpdateData(
            order_id=event.data.order_id,
            requester_id=event.data.requester_id,
            status=status,
            message=message,
            reason=reason,
        ),
    )
