from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.returns import schemas, service
from bakery.users.permissions import role_required, ADMIN, CASHIER
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


@router.post("/", response_model=schemas.ReturnOut, status_code=status.HTTP_201_CREATED)
def create_return(
    data: schemas.ReturnCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    record = service.create_return(
        db, data, BranchScope.for_user(current_user), created_by=current_user.id
    )
    return service.to_return_out(record)


@router.get("/", response_model=List[schemas.ReturnOut])
def list_returns(
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return [service.to_return_out(r) for r in service.list_returns(db, scope, branch_id, status)]


@router.get("/{return_id}", response_model=schemas.ReturnOut)
def get_return(
    return_id: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.to_return_out(service.get_return(db, return_id, scope))


@router.post("/{return_id}/process", response_model=schemas.ReturnOut)
def process_return(
    return_id: int,
    payload: schemas.ReturnProcess,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    record = service.process_return(
        db, return_id, payload, BranchScope.for_user(current_user), performed_by=current_user.id
    )
    return service.to_return_out(record)
