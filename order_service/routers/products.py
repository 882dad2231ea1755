from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from order_service import coordinator
from order_service.database import get_db
from order_service.schemas import ProductResponse
from shared.errors import NotFoundError

router = APIRouter()


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)) -> ProductResponse:
    try:
        product = await coordinator.get_product(db, product_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return ProductResponse.model_validate(product)
