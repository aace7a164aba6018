from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime, date


PAYMENT_TYPES = ("full", "down_payment", "deferred")


# ---------- Cart ----------
class CartItem(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class PaymentData(BaseModel):
    payment_type: str = "full"
    payment_method: str = "cash"
    amount_paid: Optional[float] = None   # required for down_payment
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("payment_type")
    @classmethod
    def check_payment_type(cls, v):
        if v not in PAYMENT_TYPES:
            raise ValueError(f"payment_type must be one of {PAYMENT_TYPES}")
        return v


class TransactionCreate(BaseModel):
    branch_id: int
    items: List[CartItem]
    payment: PaymentData = PaymentData()
    discount_amount: float = Field(default=0, ge=0)
    override_reason: Optional[str] = None


# ---------- Output ----------
class TransactionItemOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    price_per_item: float
    subtotal: float

    model_config = ConfigDict(from_attributes=True)


class TransactionOut(BaseModel):
    id: int
    branch_id: int
    branch_name: Optional[str] = None
    cashier_id: Optional[int] = None
    cashier_name: Optional[str] = None
    transaction_date: datetime
    total_amount: float
    discount_amount: float
    payment_method: str
    payment_status: str
    amount_paid: float
    amount_remaining: float
    due_date: Optional[date] = None
    status: str
    notes: Optional[str] = None
    source_type: str
    items: List[TransactionItemOut] = []
    warnings: List[str] = []

    model_config = ConfigDict(from_attributes=True)


# ---------- Void ----------
class VoidRequest(BaseModel):
    transaction_ids: List[int] = Field(min_length=1)
    reason: Optional[str] = None


class VoidResult(BaseModel):
    voided: List[int]
    stock_returned: int
    failed: List[dict]
