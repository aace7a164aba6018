from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from bakery.database import get_db
from bakery.stock.inventory import schemas, service
from bakery.users.permissions import role_required, ADMIN, PRODUCTION_HEAD
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


@router.get("/", response_model=List[schemas.InventoryOut])
def list_inventory(
    branch_id: Optional[int] = None,
    product_id: Optional[int] = None,
    product_name: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.list_inventory(
        db,
        scope,
        branch_id=branch_id,
        product_id=product_id,
        product_name=product_name,
        skip=skip,
        limit=limit,
    )


@router.get("/kpis", response_model=schemas.InventoryKPIs)
def inventory_kpis(
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.get_inventory_kpis(db, scope, branch_id)


@router.get("/validate")
def validate_stock(
    product_id: int,
    branch_id: int,
    required: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    scope.ensure(branch_id)
    return service.validate_stock(db, product_id, branch_id, required)


@router.post("/validate-cart")
def validate_cart(
    payload: schemas.CartValidation,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    scope.ensure(payload.branch_id)
    return service.validate_cart_stock(db, payload.items, payload.branch_id)


@router.post("/quick-update", response_model=schemas.InventoryChange)
def quick_update(
    payload: schemas.QuickUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    scope = BranchScope.for_user(current_user)
    return service.quick_update(db, payload, scope, performed_by=current_user.id)


@router.post("/bulk-edit", response_model=schemas.BulkEditResult)
def bulk_edit(
    payload: schemas.BulkEdit,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    scope = BranchScope.for_user(current_user)
    return service.bulk_edit_inventory(db, payload, scope, performed_by=current_user.id)


@router.get("/{inventory_id}", response_model=schemas.InventoryOut)
def get_inventory(
    inventory_id: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.get_inventory_detail(db, inventory_id, scope)
