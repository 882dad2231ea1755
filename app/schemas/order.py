import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from shared.events import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderCreate(CamelModel):
    requester_id: str
    item_id: str
    quantity: int


class OrderResponse(CamelModel):
    id: uuid.UUID
    requester_id: str
    item_id: str
    quantity: int
    status: OrderStatus
    reason: str | None = None
    created_at: datetime
    updated_at: datetime
