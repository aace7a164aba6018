from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class InitialStockCreate(BaseModel):
    product_id: int
    branch_id: int
    quantity: int = Field(ge=0)


class StockAdjustmentCreate(BaseModel):
    product_id: int
    branch_id: int
    quantity_change: int    # positive = increase, negative = decrease
    reason: str


class StockAdjustmentOut(BaseModel):
    id: int
    product_id: int
    branch_id: int
    adjustment_type: str
    quantity_change: int
    reason: Optional[str] = None
    performed_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StockAdjustmentListOut(StockAdjustmentOut):
    product_name: Optional[str] = None
    branch_name: Optional[str] = None
    performed_by_name: Optional[str] = None
