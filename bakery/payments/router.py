from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.payments import schemas, service
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


# -------------------------
# Settle a pending / partial transaction
# -------------------------
@router.post("/transaction/{transaction_id}", response_model=schemas.PaymentResult)
def record_payment(
    transaction_id: int,
    payment: schemas.PaymentCreate,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.record_payment(
        db=db,
        transaction_id=transaction_id,
        payment=payment,
        scope=scope,
        cashier_id=scope.user_id,
    )


@router.get("/", response_model=List[schemas.PaymentOut])
def list_payments(
    transaction_id: Optional[int] = Query(None, description="Filter by transaction"),
    branch_id: Optional[int] = Query(None, description="Filter by branch"),
    start_date: Optional[date] = Query(None, description="Start date"),
    end_date: Optional[date] = Query(None, description="End date"),
    payment_method: Optional[str] = Query(None, description="cash | transfer | qris"),
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.list_payments(
        db=db,
        scope=scope,
        transaction_id=transaction_id,
        branch_id=branch_id,
        start_date=start_date,
        end_date=end_date,
        payment_method=payment_method,
    )
