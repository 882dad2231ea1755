"""
Order service consumer — applies reservation decisions from inventory.events.

The persistence step is retried with exponential backoff on database errors.
When retries run out the order is left PENDING and the failure is logged;
nothing re-drives it automatically.
"""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_service.coordinator import ReservationDecision, on_reservation_decision
from shared.bus import EventBus

logger = logging.getLogger(__name__)


async def handle_inventory_event(
    event,
    session_factory: async_sessionmaker[AsyncSession],
    bus: EventBus,
    max_retries: int = 3,
    retry_backoff: float = 0.5,
) -> None:
    decision = ReservationDecision.from_event(event)
    if decision is None:
        return

    logger.info(
        "Received %s event",
        event.event_type,
        extra={
            "event_id": str(event.event_id),
            "order_id": str(decision.order_id),
            "correlation_id": decision.correlation_id,
        },
    )

    for attempt in range(1, max_retries + 1):
        try:
            async with session_factory() as db:
                await on_reservation_decision(db, decision, bus)
            return
        except SQLAlchemyError as exc:
            logger.warning(
                "Persisting decision failed on attempt %d/%d",
                attempt,
                max_retries,
                extra={"order_id": str(decision.order_id), "error": str(exc)},
            )
            if attempt < max_retries:
                await asyncio.sleep(retry_backoff * 2 ** (attempt - 1))

    logger.error(
        "Giving up on reservation decision — order left PENDING",
        extra={
            "order_id": str(decision.order_id),
            "accepted": decision.accepted,
            "correlation_id": decision.correlation_id,
        },
    )
