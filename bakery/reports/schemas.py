from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import date


class DailySalesRow(BaseModel):
    no: int
    product_id: int
    product_name: str
    price: float
    opening_stock: int
    stock_in: int
    returned: int
    sold: int
    closing_stock: int
    revenue: float
    is_inactive: bool = False


class DailySalesSummary(BaseModel):
    total_revenue: float
    total_sold: int
    total_returned: int
    total_stock_in: int


class DailySalesReport(BaseModel):
    report_date: date
    branch_id: Optional[int] = None
    items: List[DailySalesRow]
    summary: DailySalesSummary


class PaymentMethodTotal(BaseModel):
    count: int
    amount: float


class SalesSummary(BaseModel):
    start_date: date
    end_date: date
    branch_id: Optional[int] = None
    transaction_count: int
    gross_sales: float
    total_discount: float
    net_sales: float
    by_payment_method: Dict[str, PaymentMethodTotal]
