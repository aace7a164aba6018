from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class StockMovementOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    branch_id: int
    branch_name: Optional[str] = None
    quantity_change: int
    movement_type: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    reason: Optional[str] = None
    performed_by: Optional[int] = None
    performed_by_name: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
