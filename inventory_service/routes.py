import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_service.database import get_db
from inventory_service.inventory import get_inventory_stats
from inventory_service.reservation import ReservationEngine
from shared.errors import NotFoundError, UpstreamUnavailable, ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)


class StockUpdate(BaseModel):
    stock: int = Field(ge=0, strict=True)


class StockResponse(BaseModel):
    itemId: str
    availableStock: int


def get_engine(request: Request) -> ReservationEngine:
    return request.app.state.reservation_engine


@router.get("")
async def inventory_stats(
    db: AsyncSession = Depends(get_db),
    engine: ReservationEngine = Depends(get_engine),
) -> dict:
    try:
        return await get_inventory_stats(db, engine)
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/{item_id}", response_model=StockResponse)
async def get_stock(item_id: str, engine: ReservationEngine = Depends(get_engine)) -> StockResponse:
    logger.info("Received get_stock request", extra={"item_id": item_id})
    try:
        stock = await engine.get_stock(item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return StockResponse(itemId=item_id, availableStock=stock)


@router.put("/{item_id}", response_model=StockResponse)
async def set_stock(
    item_id: str,
    body: StockUpdate,
    engine: ReservationEngine = Depends(get_engine),
) -> StockResponse:
    logger.info("Received set_stock request", extra={"item_id": item_id, "stock": body.stock})
    try:
        stock = await engine.set_stock(item_id, body.stock)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return StockResponse(itemId=item_id, availableStock=stock)
