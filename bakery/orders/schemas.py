from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import date, datetime

from bakery.orders.models import ORDER_PAYMENT_TYPES, ORDER_STATUSES


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Optional[float] = Field(default=None, ge=0)   # product price when omitted
    notes: Optional[str] = None


class OrderCreate(BaseModel):
    branch_id: int
    pickup_branch_id: Optional[int] = None
    customer_name: str
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    order_date: Optional[date] = None
    delivery_date: date
    shipping_cost: float = Field(default=0, ge=0)
    payment_type: str = "cash_on_delivery"
    dp_amount: float = Field(default=0, ge=0)
    notes: Optional[str] = None
    items: List[OrderItemCreate]

    @field_validator("payment_type")
    @classmethod
    def check_payment_type(cls, v):
        if v not in ORDER_PAYMENT_TYPES:
            raise ValueError(f"payment_type must be one of {ORDER_PAYMENT_TYPES}")
        return v


class OrderUpdate(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_date: Optional[date] = None
    shipping_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    items: Optional[List[OrderItemCreate]] = None


class OrderStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in ORDER_STATUSES:
            raise ValueError(f"status must be one of {ORDER_STATUSES}")
        return v


class BulkStatusUpdate(OrderStatusUpdate):
    order_ids: List[int] = Field(min_length=1)


class TrackingAdvance(BaseModel):
    tracking_status: str
    notes: Optional[str] = None


class OrderPayment(BaseModel):
    amount: float = Field(gt=0)


class CourierAssign(BaseModel):
    courier_id: Optional[int] = None


class OrderProductionRequest(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    production_date: Optional[date] = None
    notes: Optional[str] = None


# ---------- Output ----------
class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    unit_price: float
    subtotal: float
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TrackingHistoryOut(BaseModel):
    id: int
    order_id: int
    old_tracking_status: Optional[str] = None
    new_tracking_status: str
    notes: Optional[str] = None
    updated_by: Optional[int] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryOut(BaseModel):
    id: int
    order_id: int
    old_status: Optional[str] = None
    new_status: str
    notes: Optional[str] = None
    changed_by: Optional[int] = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    order_number: str
    branch_id: int
    branch_name: Optional[str] = None
    pickup_branch_id: Optional[int] = None
    customer_name: str
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    order_date: date
    delivery_date: date
    shipping_cost: float
    total_amount: float
    payment_type: str
    payment_status: str
    dp_amount: float
    remaining_amount: float
    status: str
    tracking_status: str
    next_tracking_status: Optional[str] = None
    courier_id: Optional[int] = None
    courier_name: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class BulkStatusResult(BaseModel):
    updated: List[int]
    failed: List[dict]
