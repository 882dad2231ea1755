import asyncio
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from aiokafka.errors import KafkaError

from shared.bus import EventBus, EventSubscription
from shared.errors import UpstreamUnavailable
from shared.events import OrderSavedData, OrderSavedEvent, Topics, UnhandledEvent


def order_saved(quantity: int = 1) -> OrderSavedEvent:
    return OrderSavedEvent(
        data=OrderSavedData(order_id=uuid.uuid4(), requester_id="u", item_id="SKU", quantity=quantity)
    )


def message(value: bytes, partition: int = 0, offset: int = 0):
    return SimpleNamespace(
        topic=Topics.ORDER_EVENTS, partition=partition, offset=offset, value=value, headers=[]
    )


class FakeConsumer:
    def __init__(self, batches=None):
        self.batches = list(batches or [])
        self.commits = 0
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def getmany(self, timeout_ms=0):
        if self.batches:
            return self.batches.pop(0)
        await asyncio.sleep(0.01)
        return {}

    async def commit(self):
        self.commits += 1

    async def stop(self):
        self.stopped = True


async def wait_for(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


async def test_publish_sends_keyed_json():
    producer = AsyncMock()
    bus = EventBus("kafka:9092", "test", producer=producer)
    event = order_saved()

    await bus.publish(Topics.ORDER_EVENTS, event)

    producer.send_and_wait.assert_awaited_once()
    args, kwargs = producer.send_and_wait.call_args
    assert args == (Topics.ORDER_EVENTS,)
    assert kwargs["key"] == str(event.event_id).encode()
    assert b'"eventType":"order.saved"' in kwargs["value"]


async def test_publish_retries_then_succeeds():
    producer = AsyncMock()
    producer.send_and_wait.side_effect = [KafkaError(), KafkaError(), None]
    bus = EventBus("kafka:9092", "test", max_retries=3, retry_backoff=0, producer=producer)

    await bus.publish(Topics.ORDER_EVENTS, order_saved())

    assert producer.send_and_wait.await_count == 3


async def test_publish_raises_after_exhausting_retries():
    producer = AsyncMock()
    producer.send_and_wait.side_effect = KafkaError()
    bus = EventBus("kafka:9092", "test", max_retries=2, retry_backoff=0, producer=producer)

    with pytest.raises(UpstreamUnavailable):
        await bus.publish(Topics.ORDER_EVENTS, order_saved())
    assert producer.send_and_wait.await_count == 2


async def test_publish_best_effort_reports_failure_instead_of_raising():
    producer = AsyncMock()
    producer.send_and_wait.side_effect = KafkaError()
    bus = EventBus("kafka:9092", "test", max_retries=1, retry_backoff=0, producer=producer)

    assert await bus.publish_best_effort(Topics.ORDER_EVENTS, order_saved()) is False


async def test_publish_before_start_is_unavailable():
    bus = EventBus("kafka:9092", "test")
    with pytest.raises(UpstreamUnavailable):
        await bus.publish(Topics.ORDER_EVENTS, order_saved())


# ---------------------------------------------------------------------------
# Consuming
# ---------------------------------------------------------------------------


async def test_handler_error_does_not_stop_the_subscription():
    good, bad = order_saved(quantity=1), order_saved(quantity=99)
    seen = []

    async def handler(event):
        if event.data.quantity == 99:
            raise RuntimeError("boom")
        seen.append(event.event_id)

    sub = EventSubscription(FakeConsumer(), handler, "test")
    await sub.handle_message(message(bad.to_json()))
    await sub.handle_message(message(good.to_json(), offset=1))

    assert seen == [good.event_id]


async def test_unparseable_message_is_skipped():
    handler = AsyncMock()
    sub = EventSubscription(FakeConsumer(), handler, "test")

    await sub.handle_message(message(b"not json"))
    await sub.handle_message(message(b'{"eventType": "order.saved", "data": {}}'))

    handler.assert_not_awaited()


async def test_unknown_event_type_reaches_handler_as_unhandled():
    handler = AsyncMock()
    sub = EventSubscription(FakeConsumer(), handler, "test")

    await sub.handle_message(message(b'{"eventType": "payment.settled", "data": {}}'))

    [event], _ = handler.call_args
    assert isinstance(event, UnhandledEvent)
    assert event.event_type == "payment.settled"


async def test_partitions_keep_their_own_order_and_offsets_are_committed():
    p0 = [order_saved(quantity=i) for i in range(1, 4)]
    p1 = [order_saved(quantity=i) for i in range(11, 14)]
    consumer = FakeConsumer([
        {
            "p0": [message(e.to_json(), 0, i) for i, e in enumerate(p0)],
            "p1": [message(e.to_json(), 1, i) for i, e in enumerate(p1)],
        }
    ])
    seen = []

    async def handler(event):
        await asyncio.sleep(0)
        seen.append(event.data.quantity)

    bus = EventBus("kafka:9092", "test", producer=AsyncMock(), consumer_factory=lambda topics, group, reset: consumer)
    await bus.subscribe([Topics.ORDER_EVENTS], "group", handler)
    await wait_for(lambda: len(seen) == 6)
    await bus.stop()

    assert [q for q in seen if q < 10] == [1, 2, 3]
    assert [q for q in seen if q > 10] == [11, 12, 13]
    assert consumer.commits >= 1


async def test_stop_finishes_and_leaves_the_group():
    consumer = FakeConsumer()
    bus = EventBus("kafka:9092", "test", producer=AsyncMock(), consumer_factory=lambda topics, group, reset: consumer)
    sub = await bus.subscribe([Topics.ORDER_EVENTS], "group", AsyncMock())
    assert consumer.started and sub.running

    await bus.stop()

    assert consumer.stopped
    assert not sub.running


async def test_fetch_errors_back_off_and_recover():
    event = order_saved()
    handled = []

    class FlakyConsumer(FakeConsumer):
        failures = 1

        async def getmany(self, timeout_ms=0):
            if self.failures:
                self.failures -= 1
                raise KafkaError()
            return await super().getmany(timeout_ms)

    consumer = FlakyConsumer([{"p0": [message(event.to_json())]}])

    async def handler(e):
        handled.append(e)

    sub = EventSubscription(consumer, handler, "test", error_backoff=0)
    await sub.start()
    await wait_for(lambda: handled)
    await sub.stop()

    assert handled[0].event_id == event.event_id


async def test_subscriptions_start_from_earliest_unless_asked_otherwise():
    requested = []

    def factory(topics, group_id, auto_offset_reset):
        requested.append((group_id, auto_offset_reset))
        return FakeConsumer()

    bus = EventBus("kafka:9092", "test", producer=AsyncMock(), consumer_factory=factory)
    await bus.subscribe([Topics.ORDER_EVENTS], "durable-group", AsyncMock())
    await bus.subscribe([Topics.NOTIFICATION_EVENTS], "per-process-group", AsyncMock(), auto_offset_reset="latest")
    await bus.stop()

    assert requested == [("durable-group", "earliest"), ("per-process-group", "latest")]


async def test_default_consumer_honours_offset_reset():
    bus = EventBus("kafka:9092", "test")

    durable = bus._default_consumer([Topics.ORDER_EVENTS], "order-service-group")
    live = bus._default_consumer([Topics.NOTIFICATION_EVENTS], "api-gateway-abc123", "latest")

    assert durable._auto_offset_reset == "earliest"
    assert live._auto_offset_reset == "latest"
