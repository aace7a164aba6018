from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.sales import schemas, service
from bakery.users.permissions import role_required, ADMIN, CASHIER
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


# ============================================================
# CREATE TRANSACTION (cart checkout)
# ============================================================
@router.post("/", response_model=schemas.TransactionOut, status_code=status.HTTP_201_CREATED)
def create_transaction(
    data: schemas.TransactionCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    scope = BranchScope.for_user(current_user)
    return service.create_transaction(db, data, scope, cashier_id=current_user.id)


@router.get("/", response_model=List[schemas.TransactionOut])
def list_transactions(
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.list_transactions(
        db,
        scope,
        branch_id=branch_id,
        status=status,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )


@router.get("/pending", response_model=List[schemas.TransactionOut])
def list_pending_transactions(
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.list_pending_transactions(db, scope, branch_id)


@router.post("/void", response_model=schemas.VoidResult)
def void_transactions(
    payload: schemas.VoidRequest,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return service.void_transactions(
        db,
        payload.transaction_ids,
        BranchScope.for_user(current_user),
        reason=payload.reason,
        performed_by=current_user.id,
    )


@router.get("/{transaction_id}", response_model=schemas.TransactionOut)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    transaction = service.get_transaction(db, transaction_id, scope)
    return service.to_transaction_out(transaction)
