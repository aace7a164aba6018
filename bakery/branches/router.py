from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.branches import schemas, service
from bakery.users.permissions import role_required, ADMIN
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


@router.post("/", response_model=schemas.BranchOut, status_code=status.HTTP_201_CREATED)
def create_branch(
    branch: schemas.BranchCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return service.create_branch(db, branch)


@router.get("/", response_model=list[schemas.BranchOut])
def list_branches(
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.list_branches(db, scope)


@router.get("/{branch_id}", response_model=schemas.BranchOut)
def read_branch(
    branch_id: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    scope.ensure(branch_id)
    return service.get_branch(db, branch_id)


@router.put("/{branch_id}", response_model=schemas.BranchOut)
def update_branch(
    branch_id: int,
    branch_update: schemas.BranchUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return service.update_branch(db, branch_id, branch_update)


@router.delete("/{branch_id}")
def delete_branch(
    branch_id: int,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return service.delete_branch(db, branch_id)
