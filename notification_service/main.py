"""
Notification Service entry point.
Starts the event bus, subscribes to the domain topics and runs until
SIGINT/SIGTERM, then shuts the subscription down gracefully.
"""

import asyncio
import logging
import signal
from functools import partial

import prometheus_client

from notification_service.config import settings
from notification_service.consumer import handle_domain_event
from shared.bus import EventBus
from shared.events import Topics
from shared.tracing import setup_tracing
from shared.utils.logging import setup_logging

setup_logging(settings.log_level, service_name="notification-service")
logger = logging.getLogger(__name__)


async def main() -> None:
    prometheus_client.start_http_server(settings.metrics_port)
    setup_tracing("notification-service", settings.otlp_endpoint)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    bus = EventBus(
        settings.kafka_bootstrap_servers,
        client_id="notification-service",
        max_retries=settings.publish_max_retries,
        retry_backoff=settings.publish_retry_backoff,
    )
    await bus.start()
    await bus.subscribe(
        [Topics.ORDER_EVENTS, Topics.INVENTORY_EVENTS],
        settings.kafka_consumer_group,
        partial(handle_domain_event, bus=bus, low_stock_threshold=settings.low_stock_threshold),
    )
    logger.info(
        "Notification service started",
        extra={
            "bootstrap_servers": settings.kafka_bootstrap_servers,
            "consumer_group": settings.kafka_consumer_group,
            "metrics_port": settings.metrics_port,
        },
    )

    try:
        await stop.wait()
    finally:
        await bus.stop()
        logger.info("Notification service stopped")


if __name__ == "__main__":
    asyncio.run(main())
