"""
Order Service entry point.
Owns the orders table: serves order creation/status over HTTP and applies
reservation decisions consumed from inventory.events.
"""

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from order_service import models  # noqa: F401 registers tables with Base.metadata
from order_service.config import settings
from order_service.consumer import handle_inventory_event
from order_service.coordinator import seed_products
from order_service.database import AsyncSessionLocal, Base, engine
from order_service.routers import orders, products
from shared.bus import EventBus
from shared.events import Topics
from shared.request_id import RequestIDMiddleware
from shared.tracing import setup_tracing
from shared.utils.logging import setup_logging

setup_logging(settings.log_level, service_name="order-service")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_tracing("order-service", settings.otlp_endpoint)

    logger.info("Starting up — creating database tables")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

    async with AsyncSessionLocal() as db:
        await seed_products(db, settings.seed_product_id, settings.seed_product_stock)

    bus = EventBus(
        settings.kafka_bootstrap_servers,
        client_id="order-service",
        max_retries=settings.publish_max_retries,
        retry_backoff=settings.publish_retry_backoff,
    )
    await bus.start()
    app.state.bus = bus

    await bus.subscribe(
        [Topics.INVENTORY_EVENTS],
        settings.kafka_consumer_group,
        partial(
            handle_inventory_event,
            session_factory=AsyncSessionLocal,
            bus=bus,
            max_retries=settings.decision_max_retries,
            retry_backoff=settings.decision_retry_backoff,
        ),
    )
    logger.info("Startup complete")

    yield

    await bus.stop()
    await engine.dispose()
    logger.info("Shutting down")


app = FastAPI(title="Flash Sale Order Service", lifespan=lifespan)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(RequestIDMiddleware)
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(products.router, prefix="/products", tags=["products"])
app.mount("/metrics", make_asgi_app())


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
