"""
Kafka event bus client shared by every service.

Guarantees:
  - publish: at-least-once, retried with exponential backoff on KafkaError,
    raises UpstreamUnavailable once retries are exhausted (never drops silently)
  - publish_best_effort: same retries, but logs and returns False on exhaustion
  - subscribe: durable competing-consumer group; partitions are handled
    concurrently, messages within a partition sequentially; offsets are
    committed only after the handler returns
  - handler errors are logged and the event counts as handled (no DLQ)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError
from opentelemetry import trace

from shared.errors import UpstreamUnavailable
from shared.events import DomainEvent, EventBase, UnhandledEvent, parse_event
from shared.metrics import BUS_MESSAGES_CONSUMED, BUS_PUBLISH_ATTEMPTS
from shared.tracing import context_from_kafka_headers, outgoing_kafka_headers

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EventHandler = Callable[[DomainEvent | UnhandledEvent], Awaitable[None]]
ConsumerFactory = Callable[[list[str], str, str], AIOKafkaConsumer]


class EventSubscription:
    """One consumer-group member running its own consumption loop."""

    def __init__(
        self,
        consumer: AIOKafkaConsumer,
        handler: EventHandler,
        name: str,
        poll_timeout_ms: int = 500,
        error_backoff: float = 1.0,
    ) -> None:
        self.name = name
        self._consumer = consumer
        self._handler = handler
        self._poll_timeout_ms = poll_timeout_ms
        self._error_backoff = error_backoff
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        await self._consumer.start()
        self._task = asyncio.create_task(self.run(), name=f"subscription:{self.name}")
        logger.info("Subscription started", extra={"subscription": self.name})

    async def run(self) -> None:
        """Consume until stop() is called. The batch in flight always completes."""
        while not self._stopping.is_set():
            try:
                batches = await self._consumer.getmany(timeout_ms=self._poll_timeout_ms)
            except KafkaError as exc:
                logger.error(
                    "Fetch failed — backing off",
                    extra={"subscription": self.name, "error": str(exc)},
                )
                await asyncio.sleep(self._error_backoff)
                continue

            if not batches:
                continue

            await asyncio.gather(
                *(self._process_partition(messages) for messages in batches.values())
            )

            try:
                await self._consumer.commit()
            except KafkaError as exc:
                # Uncommitted offsets are redelivered, so at-least-once still holds.
                logger.warning(
                    "Offset commit failed",
                    extra={"subscription": self.name, "error": str(exc)},
                )

    async def _process_partition(self, messages) -> None:
        for msg in messages:
            await self.handle_message(msg)

    async def handle_message(self, msg) -> None:
        ctx = context_from_kafka_headers(msg.headers)
        with tracer.start_as_current_span(f"kafka.consume.{msg.topic}", context=ctx):
            try:
                event = parse_event(msg.value)
            except (ValueError, TypeError) as exc:
                logger.error(
                    "Failed to parse message — skipping",
                    extra={
                        "subscription": self.name,
                        "topic": msg.topic,
                        "partition": msg.partition,
                        "offset": msg.offset,
                        "error": str(exc),
                    },
                )
                BUS_MESSAGES_CONSUMED.labels(self.name, "parse_error").inc()
                return

            try:
                await self._handler(event)
            except Exception as exc:
                logger.exception(
                    "Handler failed — event considered handled",
                    extra={
                        "subscription": self.name,
                        "event_type": event.event_type,
                        "event_id": str(getattr(event, "event_id", "")),
                        "error": str(exc),
                    },
                )
                BUS_MESSAGES_CONSUMED.labels(self.name, "handler_error").inc()
                return

            BUS_MESSAGES_CONSUMED.labels(self.name, "processed").inc()

    async def stop(self) -> None:
        """Stop fetching, let the in-flight batch finish, then leave the group."""
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        await self._consumer.stop()
        logger.info("Subscription stopped", extra={"subscription": self.name})


class EventBus:
    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str,
        max_retries: int = 3,
        retry_backoff: float = 0.3,
        producer: AIOKafkaProducer | None = None,
        consumer_factory: ConsumerFactory | None = None,
    ) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._client_id = client_id
        self._max_retries = max(1, max_retries)
        self._retry_backoff = retry_backoff
        self._producer = producer
        self._consumer_factory = consumer_factory or self._default_consumer
        self._subscriptions: list[EventSubscription] = []

    def _default_consumer(
        self,
        topics: list[str],
        group_id: str,
        auto_offset_reset: str = "earliest",
    ) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            *topics,
            bootstrap_servers=self._bootstrap_servers,
            client_id=self._client_id,
            group_id=group_id,
            enable_auto_commit=False,
            auto_offset_reset=auto_offset_reset,
        )

    async def start(self) -> None:
        if self._producer is None:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers,
                client_id=self._client_id,
                enable_idempotence=True,
            )
        await self._producer.start()
        logger.info(
            "Event bus producer started",
            extra={"bootstrap_servers": self._bootstrap_servers, "client_id": self._client_id},
        )

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            await subscription.stop()
        self._subscriptions.clear()
        if self._producer is not None:
            await self._producer.stop()
        logger.info("Event bus stopped", extra={"client_id": self._client_id})

    async def publish(self, topic: str, event: EventBase) -> None:
        if self._producer is None:
            raise UpstreamUnavailable("Event bus producer has not been started")

        value = event.to_json()
        key = str(event.event_id).encode()
        last_error: str | None = None

        with tracer.start_as_current_span(f"kafka.produce.{topic}"):
            for attempt in range(1, self._max_retries + 1):
                try:
                    await self._producer.send_and_wait(
                        topic,
                        key=key,
                        value=value,
                        headers=outgoing_kafka_headers(),
                    )
                    BUS_PUBLISH_ATTEMPTS.labels(topic, "success").inc()
                    logger.info(
                        "Published %s",
                        event.event_type,
                        extra={
                            "topic": topic,
                            "event_id": str(event.event_id),
                            "correlation_id": event.correlation_id,
                        },
                    )
                    return
                except KafkaError as exc:
                    last_error = str(exc)
                    logger.warning(
                        "Publish attempt %d/%d failed",
                        attempt,
                        self._max_retries,
                        extra={"topic": topic, "event_id": str(event.event_id), "error": last_error},
                    )
                    if attempt < self._max_retries:
                        BUS_PUBLISH_ATTEMPTS.labels(topic, "retry").inc()
                        await asyncio.sleep(self._retry_backoff * 2 ** (attempt - 1))

        BUS_PUBLISH_ATTEMPTS.labels(topic, "exhausted").inc()
        raise UpstreamUnavailable(
            f"Failed to publish {event.event_type} to {topic} "
            f"after {self._max_retries} attempt(s): {last_error}"
        )

    async def publish_best_effort(self, topic: str, event: EventBase) -> bool:
        """Fire-and-forget variant: never raises, returns whether the event went out."""
        try:
            await self.publish(topic, event)
        except UpstreamUnavailable as exc:
            logger.error(
                "Dropping best-effort publish",
                extra={
                    "topic": topic,
                    "event_type": event.event_type,
                    "event_id": str(event.event_id),
                    "error": str(exc),
                },
            )
            return False
        return True

    async def subscribe(
        self,
        topics: Iterable[str],
        group_id: str,
        handler: EventHandler,
        name: str | None = None,
        auto_offset_reset: str = "earliest",
    ) -> EventSubscription:
        """
        Join ``group_id`` on ``topics``. ``auto_offset_reset`` only matters when
        the group has no committed offsets: durable groups start from
        "earliest", throwaway per-process groups from "latest".
        """
        topics = list(topics)
        consumer = self._consumer_factory(topics, group_id, auto_offset_reset)
        subscription = EventSubscription(consumer, handler, name or group_id)
        await subscription.start()
        self._subscriptions.append(subscription)
        logger.info(
            "Subscribed",
            extra={
                "topics": topics,
                "group_id": group_id,
                "subscription": subscription.name,
                "auto_offset_reset": auto_offset_reset,
            },
        )
        return subscription
