from datetime import datetime
from typing import Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StockAdjustmentRequest(BaseModel):
    product_id: uuid.UUID
    marketplace_id: uuid.UUID
    adjustment_type: Literal["increase", "decrease"]
    quantity: int = Field(gt=0)
    reason: Optional[str] = None
    push: bool = False  # 조정 후 마켓에 수량 반영

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StockAdjustmentResponse(BaseModel):
    success: bool
    new_quantity: int
    adjustment_id: Optional[uuid.UUID] = None
    pushed: Optional[bool] = None
    push_message: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StockAdjustmentEntry(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    marketplace_id: uuid.UUID
    adjustment_type: str
    quantity: int
    reason: Optional[str] = None
    quantity_before: int
    quantity_after: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
