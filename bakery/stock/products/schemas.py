from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime

# -------------------------------
# Base
# -------------------------------
class ProductBase(BaseModel):
    name: str
    category: str          # category NAME
    price: float = 0
    sku: Optional[str] = None
    uom: Optional[str] = None
    reorder_point: Optional[int] = None

    @field_validator("price")
    @classmethod
    def price_not_negative(cls, v):
        if v < 0:
            raise ValueError("Price cannot be negative")
        return v


# -------------------------------
# Create
# -------------------------------
class ProductCreate(ProductBase):
    pass


# -------------------------------
# Update
# -------------------------------
class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    sku: Optional[str] = None
    uom: Optional[str] = None
    reorder_point: Optional[int] = None


class ProductStatusUpdate(BaseModel):
    is_active: bool


class ProductBulkDelete(BaseModel):
    product_ids: List[int]


# ---------------------------------
# Output Schema
# ---------------------------------
class ProductOut(BaseModel):
    id: int
    name: str
    category: Optional[str] = None  # category NAME, not object
    price: float
    sku: Optional[str] = None
    uom: str
    reorder_point: int
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductBulkDeleteResult(BaseModel):
    deleted: List[int]
    archived: List[int]
    failed: List[dict]
