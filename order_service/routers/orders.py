import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_service import coordinator
from order_service.database import get_db
from order_service.schemas import OrderCreate, OrderResponse
from shared.bus import EventBus
from shared.errors import NotFoundError, ValidationError
from shared.request_id import request_id_of

router = APIRouter()
logger = logging.getLogger(__name__)


def get_bus(request: Request) -> EventBus:
    return request.app.state.bus


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_bus),
) -> OrderResponse:
    request_id = request_id_of(request)
    logger.info(
        "Received create_order request",
        extra={"request_id": request_id, "requester_id": body.requester_id, "item_id": body.item_id},
    )
    try:
        order = await coordinator.create_order(
            db,
            bus,
            requester_id=body.requester_id,
            item_id=body.item_id,
            quantity=body.quantity,
            correlation_id=request_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except SQLAlchemyError as exc:
        logger.error("Failed to persist order", extra={"request_id": request_id, "error": str(exc)})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Order store unavailable")
    return OrderResponse.model_validate(order)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    logger.info(
        "Received get_order request",
        extra={"request_id": request_id_of(request), "order_id": str(order_id)},
    )
    try:
        order = await coordinator.get_order(db, order_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return OrderResponse.model_validate(order)
