import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.schemas.order import OrderCreate, OrderResponse
from app.services.upstream import OrderServiceClient
from shared.errors import NotFoundError, UpstreamUnavailable, ValidationError
from shared.request_id import request_id_of

router = APIRouter()
logger = logging.getLogger(__name__)


def get_order_client(request: Request) -> OrderServiceClient:
    return request.app.state.order_client


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderCreate,
    request: Request,
    orders: OrderServiceClient = Depends(get_order_client),
) -> OrderResponse:
    request_id = request_id_of(request)
    logger.info(
        "Received place_order request",
        extra={
            "request_id": request_id,
            "requester_id": body.requester_id,
            "item_id": body.item_id,
            "quantity": body.quantity,
        },
    )
    try:
        created = await orders.create_order(body.model_dump(by_alias=True), request_id)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return OrderResponse.model_validate(created)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    request: Request,
    orders: OrderServiceClient = Depends(get_order_client),
) -> OrderResponse:
    request_id = request_id_of(request)
    logger.info(
        "Received get_order request",
        extra={"request_id": request_id, "order_id": str(order_id)},
    )
    try:
        order = await orders.get_order(str(order_id), request_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return OrderResponse.model_validate(order)
