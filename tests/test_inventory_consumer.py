import uuid

from inventory_service.consumer import handle_order_event
from inventory_service.reservation import ReservationEngine, stock_key
from shared.events import (
    InsufficientReason,
    InventoryInsufficientEvent,
    InventoryReservedEvent,
    OrderConfirmedData,
    OrderConfirmedEvent,
    OrderSavedData,
    OrderSavedEvent,
    Topics,
)
from tests.mocks.fake_redis import AlwaysConflictingRedis, FlakyRedis, UnavailableRedis


def order_saved(quantity: int = 1, order_id: uuid.UUID | None = None) -> OrderSavedEvent:
    return OrderSavedEvent(
        correlation_id="req-1",
        data=OrderSavedData(
            order_id=order_id or uuid.uuid4(),
            requester_id="user-1",
            item_id="SKU",
            quantity=quantity,
        ),
    )


async def test_accepted_reservation_publishes_reserved(fake_redis, bus):
    engine = ReservationEngine(fake_redis)
    await engine.set_stock("SKU", 5)
    event = order_saved(quantity=2)

    await handle_order_event(event, engine=engine, bus=bus)

    [(topic, decision)] = bus.published
    assert topic == Topics.INVENTORY_EVENTS
    assert isinstance(decision, InventoryReservedEvent)
    assert decision.data.order_id == event.data.order_id
    assert decision.data.remaining_stock == 3
    assert decision.correlation_id == "req-1"


async def test_empty_stock_publishes_insufficient_and_leaves_count(fake_redis, bus):
    engine = ReservationEngine(fake_redis)
    await engine.set_stock("SKU", 0)

    await handle_order_event(order_saved(), engine=engine, bus=bus)

    [(_, decision)] = bus.published
    assert isinstance(decision, InventoryInsufficientEvent)
    assert decision.data.reason == InsufficientReason.OUT_OF_STOCK
    assert decision.data.available_stock == 0
    assert await engine.get_stock("SKU") == 0


async def test_redelivered_order_saved_decrements_once(fake_redis, bus):
    engine = ReservationEngine(fake_redis)
    await engine.set_stock("SKU", 5)
    event = order_saved(quantity=2)

    await handle_order_event(event, engine=engine, bus=bus)
    await handle_order_event(event, engine=engine, bus=bus)

    assert await engine.get_stock("SKU") == 3
    assert len(bus.events_of("inventory.reserved")) == 2
    assert {d.data.remaining_stock for d in bus.events_of("inventory.reserved")} == {3}


async def test_store_outage_publishes_reservation_failed(bus):
    engine = ReservationEngine(UnavailableRedis(), backoff_base=0)

    await handle_order_event(order_saved(), engine=engine, bus=bus)

    [(_, decision)] = bus.published
    assert isinstance(decision, InventoryInsufficientEvent)
    assert decision.data.reason == InsufficientReason.RESERVATION_FAILED
    assert decision.data.available_stock is None


async def test_contention_ceiling_publishes_reservation_failed(bus):
    redis = AlwaysConflictingRedis({stock_key("SKU"): 10})
    engine = ReservationEngine(redis, max_attempts=3, backoff_base=0)

    await handle_order_event(order_saved(), engine=engine, bus=bus)

    [(_, decision)] = bus.published
    assert decision.data.reason == InsufficientReason.RESERVATION_FAILED


async def test_other_order_events_are_ignored(fake_redis, bus):
    engine = ReservationEngine(fake_redis)
    confirmed = OrderConfirmedEvent(
        data=OrderConfirmedData(order_id=uuid.uuid4(), requester_id="u", item_id="SKU", quantity=1)
    )

    await handle_order_event(confirmed, engine=engine, bus=bus)

    assert bus.published == []


async def test_connection_blip_still_reserves(bus):
    engine = ReservationEngine(FlakyRedis({stock_key("SKU"): 10}, failures=1), backoff_base=0)

    await handle_order_event(order_saved(), engine=engine, bus=bus)

    [(_, decision)] = bus.published
    assert isinstance(decision, InventoryReservedEvent)
    assert decision.data.remaining_stock == 9
