"""
Order lifecycle coordinator.

    PENDING ──inventory.reserved──────▶ CONFIRMED
        └────inventory.insufficient──▶ CANCELLED (reason recorded)

CONFIRMED and CANCELLED are terminal: a decision for a terminal order is a
no-op, which makes redelivered inventory events harmless.

Persistence always happens before the follow-up event is published; there is
no outbox, so an order whose order.saved publish fails stays PENDING.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.metrics import ORDER_TRANSITIONS, ORDERS_CREATED
from order_service.models import Order, Product
from shared.bus import EventBus
from shared.errors import NotFoundError, ValidationError
from shared.events import (
    TERMINAL_STATUSES,
    InsufficientReason,
    InventoryInsufficientEvent,
    InventoryReservedEvent,
    OrderCancelledData,
    OrderCancelledEvent,
    OrderConfirmedData,
    OrderConfirmedEvent,
    OrderSavedData,
    OrderSavedEvent,
    OrderStatus,
    Topics,
)

logger = logging.getLogger(__name__)

CANCELLATION_REASONS = {
    InsufficientReason.OUT_OF_STOCK: "Out of stock",
    InsufficientReason.RESERVATION_FAILED: "Reservation failed",
}


@dataclass(frozen=True)
class ReservationDecision:
    order_id: uuid.UUID
    accepted: bool
    reason: str | None = None
    correlation_id: str = "unknown"

    @classmethod
    def from_event(cls, event) -> "ReservationDecision | None":
        if isinstance(event, InventoryReservedEvent):
            return cls(order_id=event.data.order_id, accepted=True, correlation_id=event.correlation_id)
        if isinstance(event, InventoryInsufficientEvent):
            return cls(
                order_id=event.data.order_id,
                accepted=False,
                reason=CANCELLATION_REASONS.get(event.data.reason, "Out of stock"),
                correlation_id=event.correlation_id,
            )
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_order_request(requester_id, item_id, quantity) -> tuple[str, str, int]:
    errors: list[str] = []
    if not isinstance(requester_id, str) or not requester_id.strip():
        errors.append("requesterId must be a non-empty string")
    if not isinstance(item_id, str) or not item_id.strip():
        errors.append("itemId must be a non-empty string")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        errors.append("quantity must be a positive integer")
    if errors:
        raise ValidationError("; ".join(errors))
    return requester_id.strip(), item_id.strip(), quantity


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def create_order(
    db: AsyncSession,
    bus: EventBus,
    requester_id: str,
    item_id: str,
    quantity: int,
    correlation_id: str = "unknown",
) -> Order:
    requester_id, item_id, quantity = validate_order_request(requester_id, item_id, quantity)

    # 1. Persist; a failure here propagates before anything is published
    order = Order(
        requester_id=requester_id,
        item_id=item_id,
        quantity=quantity,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    await db.commit()

    logger.info(
        "Order persisted, publishing order.saved",
        extra={
            "order_id": str(order.id),
            "correlation_id": correlation_id,
            "item_id": item_id,
            "quantity": quantity,
        },
    )

    # 2. Publish best effort; the caller gets PENDING either way
    event = OrderSavedEvent(
        correlation_id=correlation_id,
        data=OrderSavedData(
            order_id=order.id,
            requester_id=requester_id,
            item_id=item_id,
            quantity=quantity,
        ),
    )
    published = await bus.publish_best_effort(Topics.ORDER_EVENTS, event)
    ORDERS_CREATED.labels(str(published).lower()).inc()
    if not published:
        logger.error(
            "order.saved was not published — order will stay PENDING",
            extra={"order_id": str(order.id), "correlation_id": correlation_id},
        )

    return order


async def apply_decision(db: AsyncSession, decision: ReservationDecision) -> tuple[Order | None, bool]:
    """
    Persist a reservation decision. Returns (order, transitioned).

    Safe to call repeatedly with the same decision: only the first call on a
    PENDING order changes anything.
    """
    result = await db.execute(
        select(Order).where(Order.id == decision.order_id).with_for_update()
    )
    order = result.scalars().first()

    if order is None:
        await db.rollback()
        logger.warning(
            "Reservation decision for unknown order — ignoring",
            extra={"order_id": str(decision.order_id), "correlation_id": decision.correlation_id},
        )
        ORDER_TRANSITIONS.labels("unknown_order").inc()
        return None, False

    if order.status != OrderStatus.PENDING:
        # Nothing changed; committing releases the row lock without expiring `order`.
        await db.commit()
        logger.info(
            "Order already %s — skipping duplicate decision",
            order.status.value,
            extra={"order_id": str(order.id), "accepted": decision.accepted},
        )
        ORDER_TRANSITIONS.labels("duplicate").inc()
        return order, False

    if decision.accepted:
        order.status = OrderStatus.CONFIRMED
        order.reason = None
    else:
        order.status = OrderStatus.CANCELLED
        order.reason = decision.reason or "Out of stock"
    order.updated_at = _utcnow()
    await db.commit()

    ORDER_TRANSITIONS.labels(order.status.value.lower()).inc()
    logger.info(
        "Order %s",
        order.status.value.lower(),
        extra={
            "order_id": str(order.id),
            "reason": order.reason,
            "correlation_id": decision.correlation_id,
        },
    )
    return order, True


def terminal_event_for(order: Order, correlation_id: str) -> OrderConfirmedEvent | OrderCancelledEvent:
    if order.status not in TERMINAL_STATUSES:
        raise ValueError(f"Order {order.id} is not terminal (status={order.status.value})")
    if order.status == OrderStatus.CONFIRMED:
        return OrderConfirmedEvent(
            correlation_id=correlation_id,
            data=OrderConfirmedData(
                order_id=order.id,
                requester_id=order.requester_id,
                item_id=order.item_id,
                quantity=order.quantity,
            ),
        )
    return OrderCancelledEvent(
        correlation_id=correlation_id,
        data=OrderCancelledData(
            order_id=order.id,
            requester_id=order.requester_id,
            item_id=order.item_id,
            quantity=order.quantity,
            reason=order.reason or "Unknown",
        ),
    )


async def on_reservation_decision(
    db: AsyncSession,
    decision: ReservationDecision,
    bus: EventBus,
) -> Order | None:
    order, transitioned = await apply_decision(db, decision)
    if transitioned:
        await bus.publish(Topics.ORDER_EVENTS, terminal_event_for(order, decision.correlation_id))
    return order


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalars().first()
    if order is None:
        raise NotFoundError(f"Order with ID {order_id} not found")
    return order


async def get_product(db: AsyncSession, product_id: str) -> Product:
    result = await db.execute(select(Product).where(Product.id == product_id))
    product = result.scalars().first()
    if product is None:
        raise NotFoundError(f"Product with ID {product_id} not found")
    return product


async def seed_products(db: AsyncSession, product_id: str, stock: int) -> bool:
    """Populate products if the table is empty. Called once on startup."""
    result = await db.execute(select(Product).limit(1))
    if result.scalars().first() is not None:
        return False
    db.add(
        Product(
            id=product_id,
            name="Limited Edition Sneakers",
            description="Flash sale — one pair per unit, while stock lasts",
            price=Decimal("199.99"),
            initial_stock=stock,
            current_stock=stock,
        )
    )
    await db.commit()
    logger.info("Seeded flash sale product", extra={"product_id": product_id, "stock": stock})
    return True
