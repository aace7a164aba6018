from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional


class InventoryOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    sku: Optional[str] = None
    uom: str
    branch_id: int
    branch_name: str
    quantity: int
    reorder_point: int
    stock_status: str      # high / medium / low
    version: int
    last_updated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InventoryKPIs(BaseModel):
    active_skus: int
    total_units: int
    low_stock_skus: int


# ---------------------------
# Quick / bulk adjustments
# ---------------------------
class QuickUpdate(BaseModel):
    inventory_id: Optional[int] = None
    product_id: Optional[int] = None
    branch_id: Optional[int] = None
    operation: str          # set / add / subtract / reset
    value: int = Field(default=0, ge=0)
    reason: Optional[str] = None


class BulkEdit(BaseModel):
    inventory_ids: List[int] = Field(min_length=1)
    operation: str
    value: int = Field(default=0, ge=0)
    reason: Optional[str] = None


class InventoryChange(BaseModel):
    id: int
    old_qty: int
    new_qty: int


class BulkEditResult(BaseModel):
    updated: List[InventoryChange]
    failed: List[dict]


# ---------------------------
# Stock validation
# ---------------------------
class CartLine(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class CartValidation(BaseModel):
    branch_id: int
    items: List[CartLine]
