from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime

from bakery.returns.models import CONDITIONS


class ReturnItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    reason: Optional[str] = None
    condition: str = "resaleable"

    @field_validator("condition")
    @classmethod
    def check_condition(cls, v):
        if v not in CONDITIONS:
            raise ValueError(f"condition must be one of {CONDITIONS}")
        return v


class ReturnCreate(BaseModel):
    branch_id: int
    transaction_id: Optional[int] = None
    reason: str
    notes: Optional[str] = None
    items: List[ReturnItemCreate] = Field(min_length=1)


class ReturnProcess(BaseModel):
    action: str     # approve / reject
    notes: Optional[str] = None

    @field_validator("action")
    @classmethod
    def check_action(cls, v):
        if v not in ("approve", "reject"):
            raise ValueError("action must be 'approve' or 'reject'")
        return v


class ReturnItemOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    reason: Optional[str] = None
    condition: str

    model_config = ConfigDict(from_attributes=True)


class ReturnOut(BaseModel):
    id: int
    transaction_id: Optional[int] = None
    branch_id: int
    branch_name: Optional[str] = None
    reason: str
    notes: Optional[str] = None
    status: str
    created_by: Optional[int] = None
    processed_by: Optional[int] = None
    return_date: datetime
    processed_at: Optional[datetime] = None
    items: List[ReturnItemOut] = []

    model_config = ConfigDict(from_attributes=True)
