from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class PaymentCreate(BaseModel):
    amount_paid: float = Field(gt=0)
    payment_method: str = "cash"
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: int
    transaction_id: int
    amount_paid: float
    payment_method: str
    notes: Optional[str] = None
    cashier_id: Optional[int] = None
    cashier_name: Optional[str] = None
    payment_date: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResult(BaseModel):
    payment: PaymentOut
    transaction_id: int
    amount_paid: float
    amount_remaining: float
    payment_status: str
