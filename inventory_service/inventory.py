import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_service.models import Product
from inventory_service.reservation import ReservationEngine

logger = logging.getLogger(__name__)


async def initialize_stock_counters(
    session_factory: async_sessionmaker[AsyncSession],
    engine: ReservationEngine,
) -> int:
    """Seed a Redis counter for every product that does not have one yet."""
    async with session_factory() as db:
        result = await db.execute(select(Product))
        products = result.scalars().all()

    for product in products:
        await engine.initialize(product.id, product.current_stock)

    logger.info("Initialized stock counters for %d products", len(products))
    return len(products)


async def get_inventory_stats(db: AsyncSession, engine: ReservationEngine) -> dict:
    result = await db.execute(select(Product).order_by(Product.id))
    products = result.scalars().all()
    levels = await engine.stock_levels([p.id for p in products])

    stats = []
    for product in products:
        current = levels.get(product.id)
        stats.append(
            {
                "itemId": product.id,
                "name": product.name,
                "initialStock": product.initial_stock,
                "currentStock": current,
                "sold": product.initial_stock - current if current is not None else None,
            }
        )
    return {"totalProducts": len(products), "products": stats}
