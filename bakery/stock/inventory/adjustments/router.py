from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.stock.inventory.adjustments import schemas, service
from bakery.users.permissions import role_required, ADMIN, PRODUCTION_HEAD
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


@router.post("/initial")
def create_initial_stock(
    payload: schemas.InitialStockCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    adjustment = service.create_initial_stock(
        db, payload, BranchScope.for_user(current_user), performed_by=current_user.id
    )
    if adjustment is None:
        return {"message": "Quantity is zero, no initial stock recorded", "adjustment": None}
    return {
        "message": "Initial stock recorded",
        "adjustment": schemas.StockAdjustmentOut.model_validate(adjustment),
    }


@router.post("/", response_model=schemas.StockAdjustmentOut)
def create_adjustment(
    adjustment: schemas.StockAdjustmentCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    """
    Admin-only endpoint to adjust stock.
    Positive quantity_change = increase stock
    Negative quantity_change = decrease stock
    """
    return service.create_adjustment(
        db, adjustment, BranchScope.for_user(current_user), performed_by=current_user.id
    )


@router.get("/", response_model=List[schemas.StockAdjustmentListOut])
def list_adjustments(
    product_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    adjustment_type: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.list_adjustments(
        db=db,
        scope=scope,
        product_id=product_id,
        branch_id=branch_id,
        adjustment_type=adjustment_type,
        skip=skip,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
    )
