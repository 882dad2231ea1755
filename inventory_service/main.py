"""
Inventory Service entry point.
Seeds Redis stock counters from the products table, then serves the stock
HTTP API and consumes order.events in the background.
"""

import logging
from contextlib import asynccontextmanager
from functools import partial

import redis.asyncio as aioredis
from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import make_asgi_app

from inventory_service.config import settings
from inventory_service.consumer import handle_order_event
from inventory_service.database import AsyncSessionLocal, engine
from inventory_service.inventory import initialize_stock_counters
from inventory_service.reservation import ReservationEngine
from inventory_service.routes import router as stock_router
from shared.bus import EventBus
from shared.events import Topics
from shared.tracing import setup_tracing
from shared.utils.logging import setup_logging

setup_logging(settings.log_level, service_name="inventory-service")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_tracing("inventory-service", settings.otlp_endpoint)

    redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    reservation_engine = ReservationEngine(
        redis,
        max_attempts=settings.reservation_max_attempts or None,
        backoff_base=settings.reservation_backoff_base,
        backoff_cap=settings.reservation_backoff_cap,
        marker_ttl_seconds=settings.reservation_marker_ttl_seconds,
        store_max_attempts=settings.reservation_store_max_attempts,
    )
    await initialize_stock_counters(AsyncSessionLocal, reservation_engine)
    app.state.reservation_engine = reservation_engine

    bus = EventBus(
        settings.kafka_bootstrap_servers,
        client_id="inventory-service",
        max_retries=settings.publish_max_retries,
        retry_backoff=settings.publish_retry_backoff,
    )
    await bus.start()
    await bus.subscribe(
        [Topics.ORDER_EVENTS],
        settings.kafka_consumer_group,
        partial(handle_order_event, engine=reservation_engine, bus=bus),
    )
    logger.info("Inventory service started", extra={"consumer_group": settings.kafka_consumer_group})

    yield

    await bus.stop()
    await redis.aclose()
    await engine.dispose()
    logger.info("Inventory service stopped")


app = FastAPI(title="Flash Sale Inventory Service", lifespan=lifespan)

FastAPIInstrumentor.instrument_app(app)
app.include_router(stock_router, prefix="/stock", tags=["stock"])
app.mount("/metrics", make_asgi_app())


@app.get("/health", tags=["health"])
async def health():
    healthy = await app.state.reservation_engine.ping()
    return {"status": "ok" if healthy else "degraded"}
