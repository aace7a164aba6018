from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.stock.inventory.batch import schemas, service
from bakery.users.permissions import role_required, ADMIN, PRODUCTION_HEAD
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


@router.post("/", response_model=schemas.BatchStockResult)
def batch_add_stock(
    payload: schemas.BatchStockRequest,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD])),
):
    return service.batch_add_stock(
        db,
        payload.items,
        performed_by=current_user.id,
        scope=BranchScope.for_user(current_user),
    )


@router.get("/products", response_model=List[schemas.ProductWithStock])
def products_with_stock(
    branch_ids: Optional[List[int]] = Query(default=None),
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.fetch_products_with_stock(db, scope, branch_ids)
