from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.production import schemas, service
from bakery.users.permissions import role_required, ADMIN, PRODUCTION_HEAD, CASHIER
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


@router.post("/", response_model=schemas.ProductionRequestOut, status_code=status.HTTP_201_CREATED)
def create_production_request(
    data: schemas.ProductionRequestCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD, CASHIER])),
):
    request = service.create_production_request(
        db, data, BranchScope.for_user(current_user), requested_by=current_user.id
    )
    return service.to_production_out(request)


@router.get("/", response_model=List[schemas.ProductionRequestOut])
def list_production_requests(
    status: Optional[str] = None,
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    requests = service.list_production_requests(db, scope, status=status, branch_id=branch_id)
    return [service.to_production_out(r) for r in requests]


@router.put("/{request_id}/status", response_model=schemas.ProductionRequestOut)
def update_production_status(
    request_id: int,
    data: schemas.ProductionStatusUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    request = service.update_production_request_status(
        db, request_id, data, produced_by=current_user.id
    )
    return service.to_production_out(request)


@router.delete("/{request_id}")
def delete_production_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    return service.delete_production_request(db, request_id)
