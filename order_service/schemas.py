import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from shared.events import OrderStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class OrderCreate(_CamelModel):
    # Checked again by the coordinator; kept loose here so errors share one format.
    requester_id: str
    item_id: str
    quantity: int


class OrderResponse(_CamelModel):
    id: uuid.UUID
    requester_id: str
    item_id: str
    quantity: int
    status: OrderStatus
    reason: str | None = None
    created_at: datetime
    updated_at: datetime


class ProductResponse(_CamelModel):
    id: str
    name: str
    description: str | None
    price: Decimal
    initial_stock: int
    current_stock: int
