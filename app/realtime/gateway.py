"""
Realtime gateway — fans notification events out to live WebSocket connections.

State (single owner, mutated only on the asyncio loop with no await between
related writes, so registry and room index never disagree):
  connections   connection id → transport
  rooms         order id      → connection ids subscribed to it
  memberships   connection id → order ids it joined

Frames in and out are JSON objects {"event": <name>, "data": <payload>}.
Pushes are best-effort per connection: a failed send drops that connection
and delivery to the others continues.
"""

import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Protocol

from prometheus_client import Counter, Gauge

from shared.events import (
    TERMINAL_STATUSES,
    NotificationOrderUpdateEvent,
    NotificationStockUpdateEvent,
    OrderStatus,
)

logger = logging.getLogger(__name__)

ACTIVE_CONNECTIONS = Gauge("ws_active_connections", "Live WebSocket connections")
PUSHES = Counter("ws_pushes_total", "Frames pushed to WebSocket clients", ["event", "outcome"])


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def ws_message(message_type: str, data: dict) -> dict:
    return {"type": message_type, "data": data, "timestamp": _now()}


class RealtimeGateway:
    def __init__(self, status_cache_size: int = 10_000) -> None:
        self._connections: dict[str, Transport] = {}
        self._rooms: dict[str, set[str]] = {}
        self._memberships: dict[str, set[str]] = {}
        # Last status pushed per order, used to drop duplicates and stale reorders.
        self._last_status: OrderedDict[str, OrderStatus] = OrderedDict()
        self._status_cache_size = status_cache_size

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, transport: Transport) -> str:
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = transport
        self._memberships[connection_id] = set()
        ACTIVE_CONNECTIONS.set(len(self._connections))
        logger.info(
            "Client connected",
            extra={"connection_id": connection_id, "connections": len(self._connections)},
        )
        await self._push(
            connection_id,
            "message",
            ws_message("system", {"message": "Connected to Flash Sale WebSocket", "connectionId": connection_id}),
        )
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is None:
            return
        for order_id in self._memberships.pop(connection_id, set()):
            members = self._rooms.get(order_id)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._rooms[order_id]
        ACTIVE_CONNECTIONS.set(len(self._connections))
        logger.info(
            "Client disconnected",
            extra={"connection_id": connection_id, "connections": len(self._connections)},
        )

    def subscribe(self, connection_id: str, order_id: str) -> bool:
        if connection_id not in self._connections:
            return False
        self._rooms.setdefault(order_id, set()).add(connection_id)
        self._memberships[connection_id].add(order_id)
        logger.info(
            "Client subscribed to order updates",
            extra={"connection_id": connection_id, "order_id": order_id},
        )
        return True

    def unsubscribe(self, connection_id: str, order_id: str) -> bool:
        if connection_id not in self._connections:
            return False
        self._memberships[connection_id].discard(order_id)
        members = self._rooms.get(order_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._rooms[order_id]
        logger.info(
            "Client unsubscribed from order updates",
            extra={"connection_id": connection_id, "order_id": order_id},
        )
        return True

    # ------------------------------------------------------------------
    # Client → server events
    # ------------------------------------------------------------------

    async def handle_client_message(self, connection_id: str, frame: Any) -> None:
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self.send_error(connection_id, "Frames must be objects with an 'event' name")
            return

        event = frame["event"]
        data = frame.get("data")

        if event == "ping":
            await self._push(connection_id, "pong", {"timestamp": _now()})
            return

        if event in ("subscribe_order", "unsubscribe_order"):
            order_id = _order_id_from(data)
            if order_id is None:
                await self.send_error(connection_id, f"{event} requires an order id")
                return
            if event == "subscribe_order":
                self.subscribe(connection_id, order_id)
                await self._push(connection_id, "subscribed", {"orderId": order_id, "status": "success"})
            else:
                self.unsubscribe(connection_id, order_id)
                await self._push(connection_id, "unsubscribed", {"orderId": order_id, "status": "success"})
            return

        await self.send_error(connection_id, f"Unknown event '{event}'")

    async def send_error(self, connection_id: str, message: str, order_id: str | None = None) -> None:
        data = {"message": message}
        if order_id is not None:
            data["orderId"] = order_id
        await self._push(connection_id, "message", ws_message("error", data))

    # ------------------------------------------------------------------
    # Bus → clients
    # ------------------------------------------------------------------

    async def handle_notification(self, event) -> None:
        if isinstance(event, NotificationOrderUpdateEvent):
            await self.push_order_update(event)
        elif isinstance(event, NotificationStockUpdateEvent):
            await self.broadcast_stock_update(
                event.data.item_id, event.data.available_stock, event.data.message
            )
        else:
            logger.warning(
                "Unknown notification type — dropping",
                extra={"event_type": getattr(event, "event_type", None)},
            )

    async def push_order_update(self, event: NotificationOrderUpdateEvent) -> int:
        """Push to the order's room and the global stream. Returns room deliveries."""
        data = event.data
        order_id = str(data.order_id)

        if not self._accept_status(order_id, data.status):
            logger.info(
                "Skipping duplicate or stale order update",
                extra={"order_id": order_id, "status": data.status.value, "event_id": str(event.event_id)},
            )
            return 0

        update = ws_message(
            "order_update",
            {
                "id": order_id,
                "requesterId": data.requester_id,
                "status": data.status.value,
                "reason": data.reason,
                "message": data.message,
                "updatedAt": event.timestamp.isoformat(),
            },
        )
        activity = ws_message("order_activity", {"orderId": order_id, "status": data.status.value})

        room = set(self._rooms.get(order_id, ()))
        delivered = 0
        for connection_id in room:
            if await self._push(connection_id, "order_update", update):
                delivered += 1
        for connection_id in [c for c in self._connections if c not in room]:
            await self._push(connection_id, "message", activity)

        logger.info(
            "Broadcasted order update via WebSocket",
            extra={"order_id": order_id, "status": data.status.value, "clients_in_room": len(room)},
        )
        return delivered

    async def broadcast_stock_update(self, item_id: str, available_stock: int, message: str) -> int:
        frame = ws_message(
            "stock_update",
            {"itemId": item_id, "availableStock": available_stock, "message": message},
        )
        delivered = 0
        for connection_id in list(self._connections):
            if await self._push(connection_id, "stock_update", frame):
                delivered += 1
        logger.info(
            "Broadcasted stock update via WebSocket",
            extra={"item_id": item_id, "available_stock": available_stock, "connected_clients": delivered},
        )
        return delivered

    def _accept_status(self, order_id: str, status: OrderStatus) -> bool:
        previous = self._last_status.get(order_id)
        if previous is not None:
            if previous == status or previous in TERMINAL_STATUSES:
                return False
        self._last_status[order_id] = status
        self._last_status.move_to_end(order_id)
        while len(self._last_status) > self._status_cache_size:
            self._last_status.popitem(last=False)
        return True

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _push(self, connection_id: str, event: str, data: Any) -> bool:
        transport = self._connections.get(connection_id)
        if transport is None:
            return False
        try:
            await transport.send_json({"event": event, "data": data})
        except Exception as exc:
            logger.warning(
                "Push failed — dropping connection",
                extra={"connection_id": connection_id, "event": event, "error": str(exc)},
            )
            PUSHES.labels(event, "failed").inc()
            self.disconnect(connection_id)
            return False
        PUSHES.labels(event, "sent").inc()
        return True

    def stats(self) -> dict:
        return {
            "totalConnections": len(self._connections),
            "rooms": {order_id: len(members) for order_id, members in self._rooms.items()},
        }

    def rooms_of(self, connection_id: str) -> set[str]:
        return set(self._memberships.get(connection_id, ()))


def _order_id_from(data: Any) -> str | None:
    if isinstance(data, dict):
        data = data.get("orderId")
    if isinstance(data, str) and data.strip():
        return data.strip()
    return None
