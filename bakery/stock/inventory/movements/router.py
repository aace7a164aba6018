from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.stock.inventory.movements import schemas, service
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


# Read-only: the movement log has no update or delete endpoint
@router.get("/", response_model=List[schemas.StockMovementOut])
def list_movements(
    product_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    reference_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.list_movements(
        db,
        scope,
        product_id=product_id,
        branch_id=branch_id,
        movement_type=movement_type,
        reference_type=reference_type,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )
