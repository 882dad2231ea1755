"""
Pydantic event schemas shared across all services.

Every event is an envelope (eventId, eventType, version, timestamp,
correlationId) around a type-specific ``data`` payload. On the wire all
field names are camelCase.

``parse_event`` maps a raw message onto the closed set of event classes;
anything with an unrecognised ``eventType`` becomes an ``UnhandledEvent``.
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Topics:
    ORDER_EVENTS = "order.events"
    INVENTORY_EVENTS = "inventory.events"
    NOTIFICATION_EVENTS = "notification.events"


class EventType(str, Enum):
    ORDER_SAVED = "order.saved"
    ORDER_CONFIRMED = "order.confirmed"
    ORDER_CANCELLED = "order.cancelled"
    INVENTORY_RESERVED = "inventory.reserved"
    INVENTORY_INSUFFICIENT = "inventory.insufficient"
    NOTIFICATION_ORDER_UPDATE = "notification.order_update"
    NOTIFICATION_STOCK_UPDATE = "notification.stock_update"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED})

SCHEMA_VERSION = "1.0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Wire(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class EventBase(_Wire):
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: str
    version: str = SCHEMA_VERSION
    timestamp: datetime = Field(default_factory=_utcnow)
    correlation_id: str = "unknown"  # carries X-Request-ID from the HTTP layer

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class OrderSavedData(_Wire):
    order_id: uuid.UUID
    requester_id: str
    item_id: str
    quantity: int
    status: Literal["PENDING"] = "PENDING"


class OrderConfirmedData(_Wire):
    order_id: uuid.UUID
    requester_id: str
    item_id: str
    quantity: int


class OrderCancelledData(_Wire):
    order_id: uuid.UUID
    requester_id: str
    item_id: str
    quantity: int
    reason: str


class InventoryReservedData(_Wire):
    order_id: uuid.UUID
    item_id: str
    quantity: int
    remaining_stock: int


class InsufficientReason(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    RESERVATION_FAILED = "RESERVATION_FAILED"


class InventoryInsufficientData(_Wire):
    order_id: uuid.UUID
    item_id: str
    quantity: int
    available_stock: int | None
    reason: InsufficientReason = InsufficientReason.OUT_OF_STOCK


class OrderUpdateData(_Wire):
    order_id: uuid.UUID
    requester_id: str
    status: OrderStatus
    message: str
    reason: str | None = None


class StockUpdateData(_Wire):
    item_id: str
    available_stock: int
    message: str


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class OrderSavedEvent(EventBase):
    event_type: Literal["order.saved"] = "order.saved"
    data: OrderSavedData


class OrderConfirmedEvent(EventBase):
    event_type: Literal["order.confirmed"] = "order.confirmed"
    data: OrderConfirmedData


class OrderCancelledEvent(EventBase):
    event_type: Literal["order.cancelled"] = "order.cancelled"
    data: OrderCancelledData


class InventoryReservedEvent(EventBase):
    event_type: Literal["inventory.reserved"] = "inventory.reserved"
    data: InventoryReservedData


class InventoryInsufficientEvent(EventBase):
    event_type: Literal["inventory.insufficient"] = "inventory.insufficient"
    data: InventoryInsufficientData


class NotificationOrderUpdateEvent(EventBase):
    event_type: Literal["notification.order_update"] = "notification.order_update"
    data: OrderUpdateData


class NotificationStockUpdateEvent(EventBase):
    event_type: Literal["notification.stock_update"] = "notification.stock_update"
    data: StockUpdateData


class UnhandledEvent(BaseModel):
    """An envelope whose eventType is outside the closed set."""

    event_type: str | None
    raw: dict[str, Any]


OrderEvent = Union[OrderSavedEvent, OrderConfirmedEvent, OrderCancelledEvent]
InventoryEvent = Union[InventoryReservedEvent, InventoryInsufficientEvent]
NotificationEvent = Union[NotificationOrderUpdateEvent, NotificationStockUpdateEvent]
DomainEvent = Union[OrderEvent, InventoryEvent, NotificationEvent]

EVENT_CLASSES: dict[str, type[EventBase]] = {
    EventType.ORDER_SAVED.value: OrderSavedEvent,
    EventType.ORDER_CONFIRMED.value: OrderConfirmedEvent,
    EventType.ORDER_CANCELLED.value: OrderCancelledEvent,
    EventType.INVENTORY_RESERVED.value: InventoryReservedEvent,
    EventType.INVENTORY_INSUFFICIENT.value: InventoryInsufficientEvent,
    EventType.NOTIFICATION_ORDER_UPDATE.value: NotificationOrderUpdateEvent,
    EventType.NOTIFICATION_STOCK_UPDATE.value: NotificationStockUpdateEvent,
}


def parse_event(raw: bytes | str | dict[str, Any]) -> DomainEvent | UnhandledEvent:
    """
    Decode a bus message into its event class.

    Raises ``ValueError`` (pydantic's ValidationError included) when the
    message is not JSON or a known event type carries a malformed payload.
    """
    if isinstance(raw, (bytes, str)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"Event envelope must be a JSON object, got {type(raw).__name__}")

    event_type = raw.get("eventType", raw.get("event_type"))
    event_cls = EVENT_CLASSES.get(event_type)
    if event_cls is None:
        return UnhandledEvent(event_type=event_type, raw=raw)
    return event_cls.model_validate(raw)
