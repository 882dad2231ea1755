from decimal import Decimal

from pydantic import Field

from app.schemas.order import CamelModel


class ProductResponse(CamelModel):
    id: str
    name: str
    description: str | None = None
    price: Decimal
    initial_stock: int
    available_stock: int


class StockUpdate(CamelModel):
    stock: int = Field(ge=0, strict=True)


class StockResponse(CamelModel):
    item_id: str
    available_stock: int
