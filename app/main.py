"""
API gateway entry point.
Public HTTP surface over the order and inventory services, plus the WebSocket
endpoint fed by notification.events.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import make_asgi_app

from app.config import settings
from app.consumer import handle_notification_event
from app.middleware.metrics import MetricsMiddleware
from app.realtime.gateway import RealtimeGateway
from app.routers import orders, products, websocket
from app.services.upstream import InventoryServiceClient, OrderServiceClient
from shared.bus import EventBus
from shared.events import Topics
from shared.request_id import RequestIDMiddleware
from shared.tracing import setup_tracing
from shared.utils.logging import setup_logging

setup_logging(settings.log_level, service_name="api-gateway")
logger = logging.getLogger(__name__)


async def subscribe_notifications(bus: EventBus, gateway: RealtimeGateway) -> str:
    """
    Join notification.events for this process only. A fresh group starts at
    the live end of the topic so a restart never replays old notifications
    to connected clients.
    """
    group_id = settings.gateway_consumer_group or f"api-gateway-{uuid.uuid4().hex[:12]}"
    await bus.subscribe(
        [Topics.NOTIFICATION_EVENTS],
        group_id,
        partial(handle_notification_event, gateway=gateway),
        name="api-gateway-notifications",
        auto_offset_reset=settings.gateway_offset_reset,
    )
    return group_id


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_tracing("api-gateway", settings.otlp_endpoint)

    app.state.gateway = RealtimeGateway(status_cache_size=settings.status_cache_size)
    app.state.order_client = OrderServiceClient.create(
        settings.order_service_url, settings.upstream_timeout
    )
    app.state.inventory_client = InventoryServiceClient.create(
        settings.inventory_service_url, settings.upstream_timeout
    )

    bus = EventBus(
        settings.kafka_bootstrap_servers,
        client_id="api-gateway",
        max_retries=settings.publish_max_retries,
        retry_backoff=settings.publish_retry_backoff,
    )
    await bus.start()
    app.state.bus = bus

    group_id = await subscribe_notifications(bus, app.state.gateway)
    logger.info("Startup complete", extra={"consumer_group": group_id})

    yield

    await bus.stop()
    await app.state.order_client.aclose()
    await app.state.inventory_client.aclose()
    logger.info("Shutting down")


app = FastAPI(
    title="Flash Sale API Gateway",
    description="Order placement, stock lookups and realtime order updates",
    version="1.0.0",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(websocket.router)

# Expose Prometheus metrics at /metrics
app.mount("/metrics", make_asgi_app())


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
