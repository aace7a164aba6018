from pydantic import BaseModel, Field
from typing import List, Optional


SEVERITY_CRITICAL = "critical"
SEVERITY_WARNING = "warning"


class ConsistencyIssue(BaseModel):
    type: str                      # negative_stock / duplicate_sku / missing_uom
    severity: str
    product_id: int
    product_name: str
    branch_id: Optional[int] = None
    details: str
    suggestion: str


class ConsistencyReport(BaseModel):
    total_issues: int
    critical: int
    warning: int
    issues: List[ConsistencyIssue]


class Discrepancy(BaseModel):
    product_id: int
    product_name: Optional[str] = None
    branch_id: int
    branch_name: Optional[str] = None
    current_stock: int
    calculated_stock: int
    difference: int
    movement_count: int


class ReconcileResult(BaseModel):
    checked: int
    skipped_no_history: int
    discrepancies: List[Discrepancy]


class DiscrepancyFix(BaseModel):
    product_id: int
    branch_id: int
    current_stock: int
    calculated_stock: int


class FixRequest(BaseModel):
    discrepancies: List[DiscrepancyFix] = Field(min_length=1)
    reason: Optional[str] = None


class FixResult(BaseModel):
    fixed: List[dict]
    stale: List[dict]
    failed: List[dict]


class CorrectiveAdjustment(BaseModel):
    product_id: int
    branch_id: int
    correct_stock: int = Field(ge=0)
    reason: str = Field(min_length=1)
