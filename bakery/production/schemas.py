from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import date, datetime

from bakery.production.models import PRODUCTION_STATUSES


class ProductionRequestCreate(BaseModel):
    product_id: int
    branch_id: int
    quantity_requested: int = Field(gt=0)
    production_date: date
    notes: Optional[str] = None
    order_id: Optional[int] = None


class ProductionStatusUpdate(BaseModel):
    status: str
    quantity_produced: Optional[int] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in PRODUCTION_STATUSES:
            raise ValueError(f"status must be one of {PRODUCTION_STATUSES}")
        return v


class ProductionRequestOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    branch_id: int
    branch_name: Optional[str] = None
    order_id: Optional[int] = None
    quantity_requested: int
    quantity_produced: Optional[int] = None
    production_date: date
    status: str
    notes: Optional[str] = None
    requested_by: Optional[int] = None
    produced_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
