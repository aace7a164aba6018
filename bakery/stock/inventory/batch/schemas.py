from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class BatchStockItem(BaseModel):
    product_id: int
    branch_id: int
    # non-positive lines are reported as rejected, not refused by validation
    quantity: int


class BatchStockRequest(BaseModel):
    items: List[BatchStockItem] = Field(min_length=1)


class RejectedItem(BaseModel):
    index: int
    product_id: int
    branch_id: int
    quantity: int
    error: str


class BatchStockResult(BaseModel):
    success: bool
    batch_id: str
    total_updated: int = 0
    total_inserted: int = 0
    merged: int = 0
    rejected: List[RejectedItem] = []
    errors: List[str] = []
    message: Optional[str] = None


class ProductWithStock(BaseModel):
    id: int
    name: str
    price: float
    category: Optional[str] = None
    sku: Optional[str] = None
    stock: Dict[int, int]   # branch_id -> quantity
