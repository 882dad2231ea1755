import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.realtime.gateway import RealtimeGateway
from app.schemas.product import ProductResponse, StockResponse, StockUpdate
from app.services.upstream import InventoryServiceClient, OrderServiceClient
from shared.errors import NotFoundError, UpstreamUnavailable, ValidationError
from shared.messages import stock_message
from shared.request_id import request_id_of

router = APIRouter()
logger = logging.getLogger(__name__)


def get_order_client(request: Request) -> OrderServiceClient:
    return request.app.state.order_client


def get_inventory_client(request: Request) -> InventoryServiceClient:
    return request.app.state.inventory_client


def get_gateway(request: Request) -> RealtimeGateway:
    return request.app.state.gateway


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    request: Request,
    orders: OrderServiceClient = Depends(get_order_client),
    inventory: InventoryServiceClient = Depends(get_inventory_client),
) -> ProductResponse:
    request_id = request_id_of(request)
    try:
        product = await orders.get_product(product_id, request_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))

    # The live counter wins; the catalogue row is only a fallback.
    try:
        available = await inventory.get_stock(product_id, request_id)
    except (NotFoundError, UpstreamUnavailable) as exc:
        logger.warning(
            "Live stock unavailable — falling back to catalogue stock",
            extra={"request_id": request_id, "product_id": product_id, "error": str(exc)},
        )
        available = product["currentStock"]

    return ProductResponse(
        id=product["id"],
        name=product["name"],
        description=product.get("description"),
        price=product["price"],
        initial_stock=product["initialStock"],
        available_stock=available,
    )


@router.put("/{product_id}/stock", response_model=StockResponse)
async def set_stock(
    product_id: str,
    body: StockUpdate,
    request: Request,
    inventory: InventoryServiceClient = Depends(get_inventory_client),
    gateway: RealtimeGateway = Depends(get_gateway),
) -> StockResponse:
    request_id = request_id_of(request)
    logger.info(
        "Received set_stock request",
        extra={"request_id": request_id, "product_id": product_id, "stock": body.stock},
    )
    try:
        available = await inventory.set_stock(product_id, body.stock, request_id)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except UpstreamUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))

    await gateway.broadcast_stock_update(product_id, available, stock_message(available))
    return StockResponse(item_id=product_id, available_stock=available)
