import json
import uuid

import pytest

from shared.events import (
    SCHEMA_VERSION,
    InsufficientReason,
    InventoryInsufficientData,
    InventoryInsufficientEvent,
    NotificationStockUpdateEvent,
    OrderSavedData,
    OrderSavedEvent,
    StockUpdateData,
    UnhandledEvent,
    parse_event,
)


def test_envelope_is_camel_case_on_the_wire():
    order_id = uuid.uuid4()
    event = OrderSavedEvent(
        correlation_id="req-9",
        data=OrderSavedData(order_id=order_id, requester_id="u1", item_id="SKU", quantity=2),
    )

    wire = json.loads(event.to_json())

    assert set(wire) == {"eventId", "eventType", "version", "timestamp", "correlationId", "data"}
    assert wire["eventType"] == "order.saved"
    assert wire["version"] == SCHEMA_VERSION
    assert wire["correlationId"] == "req-9"
    assert wire["data"] == {
        "orderId": str(order_id),
        "requesterId": "u1",
        "itemId": "SKU",
        "quantity": 2,
        "status": "PENDING",
    }


def test_parse_event_restores_the_concrete_class():
    event = InventoryInsufficientEvent(
        data=InventoryInsufficientData(
            order_id=uuid.uuid4(),
            item_id="SKU",
            quantity=1,
            available_stock=None,
            reason=InsufficientReason.RESERVATION_FAILED,
        )
    )

    parsed = parse_event(event.to_json())

    assert isinstance(parsed, InventoryInsufficientEvent)
    assert parsed == event


def test_parse_event_tolerates_unknown_fields():
    raw = json.loads(
        NotificationStockUpdateEvent(
            data=StockUpdateData(item_id="SKU", available_stock=3, message="Only 3 items left in stock!")
        ).to_json()
    )
    raw["producer"] = "someone-else"
    raw["data"]["warehouse"] = "eu-1"

    parsed = parse_event(raw)

    assert isinstance(parsed, NotificationStockUpdateEvent)
    assert parsed.data.available_stock == 3


def test_unknown_event_type_becomes_unhandled():
    parsed = parse_event(b'{"eventType": "shipment.created", "data": {"x": 1}}')
    assert isinstance(parsed, UnhandledEvent)
    assert parsed.event_type == "shipment.created"
    assert parsed.raw["data"] == {"x": 1}


@pytest.mark.parametrize("raw", [b"", b"[1, 2]", b'{"eventType": "order.saved", "data": {"orderId": "nope"}}'])
def test_malformed_messages_raise_value_error(raw):
    with pytest.raises(ValueError):
        parse_event(raw)

