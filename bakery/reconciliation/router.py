from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.reconciliation import schemas, service
from bakery.users.permissions import role_required, ADMIN, PRODUCTION_HEAD
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope

router = APIRouter()


@router.get("/check", response_model=schemas.ConsistencyReport)
def check_consistency(
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    return service.check_consistency(db, BranchScope.for_user(current_user), branch_id)


@router.get("/stock", response_model=schemas.ReconcileResult)
def reconcile_stock(
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    return service.reconcile_stock(db, BranchScope.for_user(current_user), branch_id)


@router.post("/fix", response_model=schemas.FixResult)
def fix_discrepancies(
    payload: schemas.FixRequest,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return service.fix_discrepancies(
        db, payload, BranchScope.for_user(current_user), performed_by=current_user.id
    )


@router.post("/corrective-adjustment")
def create_corrective_adjustment(
    payload: schemas.CorrectiveAdjustment,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return service.create_corrective_adjustment(
        db, payload, BranchScope.for_user(current_user), performed_by=current_user.id
    )
