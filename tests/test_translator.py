import uuid

import pytest

from notification_service.consumer import handle_domain_event
from notification_service.translator import translate
from shared.events import (
    InsufficientReason,
    InventoryInsufficientData,
    InventoryInsufficientEvent,
    InventoryReservedData,
    InventoryReservedEvent,
    NotificationOrderUpdateEvent,
    NotificationStockUpdateEvent,
    OrderCancelledData,
    OrderCancelledEvent,
    OrderConfirmedData,
    OrderConfirmedEvent,
    OrderSavedData,
    OrderSavedEvent,
    OrderStatus,
    OrderUpdateData,
    Topics,
    UnhandledEvent,
)
from shared.messages import stock_message

ORDER_ID = uuid.uuid4()


def saved():
    return OrderSavedEvent(
        correlation_id="req-1",
        data=OrderSavedData(order_id=ORDER_ID, requester_id="u1", item_id="SKU", quantity=1),
    )


def confirmed():
    return OrderConfirmedEvent(
        data=OrderConfirmedData(order_id=ORDER_ID, requester_id="u1", item_id="SKU", quantity=1)
    )


def cancelled(reason="Out of stock"):
    return OrderCancelledEvent(
        data=OrderCancelledData(
            order_id=ORDER_ID, requester_id="u1", item_id="SKU", quantity=1, reason=reason
        )
    )


def reserved(remaining):
    return InventoryReservedEvent(
        data=InventoryReservedData(order_id=ORDER_ID, item_id="SKU", quantity=1, remaining_stock=remaining)
    )


def test_saved_becomes_pending_update():
    notification = translate(saved())
    assert isinstance(notification, NotificationOrderUpdateEvent)
    assert notification.data.status == OrderStatus.PENDING
    assert notification.data.order_id == ORDER_ID
    assert notification.data.requester_id == "u1"
    assert notification.correlation_id == "req-1"


def test_confirmed_becomes_confirmed_update():
    notification = translate(confirmed())
    assert notification.data.status == OrderStatus.CONFIRMED
    assert notification.data.message == "Your order has been confirmed!"


def test_cancelled_carries_reason():
    notification = translate(cancelled("Out of stock"))
    assert notification.data.status == OrderStatus.CANCELLED
    assert notification.data.reason == "Out of stock"
    assert notification.data.message.endswith("Reason: Out of stock")


@pytest.mark.parametrize(
    "remaining, expected",
    [
        (0, "This product is now out of stock!"),
        (3, "Only 3 items left in stock!"),
        (10, "Only 10 items left in stock!"),
        (11, "11 items in stock."),
    ],
)
def test_reserved_becomes_stock_update(remaining, expected):
    notification = translate(reserved(remaining))
    assert isinstance(notification, NotificationStockUpdateEvent)
    assert notification.data.available_stock == remaining
    assert notification.data.message == expected


def test_low_stock_threshold_is_configurable():
    assert stock_message(15, low_stock_threshold=20) == "Only 15 items left in stock!"


def test_events_without_a_notification():
    insufficient = InventoryInsufficientEvent(
        data=InventoryInsufficientData(
            order_id=ORDER_ID, item_id="SKU", quantity=1, available_stock=0,
            reason=InsufficientReason.OUT_OF_STOCK,
        )
    )
    already_notification = NotificationOrderUpdateEvent(
        data=OrderUpdateData(order_id=ORDER_ID, requester_id="u1", status=OrderStatus.PENDING, message="m")
    )

    assert translate(insufficient) is None
    assert translate(already_notification) is None
    assert translate(UnhandledEvent(event_type="x", raw={})) is None


async def test_handler_publishes_on_notification_topic(bus):
    await handle_domain_event(cancelled(), bus)

    [(topic, notification)] = bus.published
    assert topic == Topics.NOTIFICATION_EVENTS
    assert notification.data.status == OrderStatus.CANCELLED


async def test_handler_drops_unknown_and_irrelevant_events(bus):
    await handle_domain_event(UnhandledEvent(event_type="x", raw={}), bus)
    await handle_domain_event(
        InventoryInsufficientEvent(
            data=InventoryInsufficientData(order_id=ORDER_ID, item_id="SKU", quantity=1, available_stock=0)
        ),
        bus,
    )
    assert bus.published == []
