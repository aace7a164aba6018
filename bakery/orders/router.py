from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.orders import schemas, service
from bakery.production import schemas as production_schemas
from bakery.production import service as production_service
from bakery.users.auth import get_current_user
from bakery.users.permissions import role_required, ADMIN, PRODUCTION_HEAD, CASHIER, COURIER
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope, get_branch_scope

router = APIRouter()


@router.post("/", response_model=schemas.OrderOut, status_code=status.HTTP_201_CREATED)
def create_order(
    data: schemas.OrderCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    order = service.create_order(
        db, data, BranchScope.for_user(current_user), created_by=current_user.id
    )
    return service.to_order_out(order)


@router.get("/", response_model=List[schemas.OrderOut])
def list_orders(
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    tracking_status: Optional[str] = None,
    courier_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    orders = service.list_orders(
        db, scope,
        branch_id=branch_id,
        status=status,
        tracking_status=tracking_status,
        courier_id=courier_id,
        skip=skip,
        limit=limit,
    )
    return [service.to_order_out(o) for o in orders]


@router.put("/bulk-status", response_model=schemas.BulkStatusResult)
def bulk_update_status(
    data: schemas.BulkStatusUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return service.bulk_update_status(
        db, data.order_ids, data.status, BranchScope.for_user(current_user),
        changed_by=current_user.id, notes=data.notes,
    )


@router.get("/{order_id}", response_model=schemas.OrderOut)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.to_order_out(service.get_order(db, order_id, scope))


@router.put("/{order_id}", response_model=schemas.OrderOut)
def update_order(
    order_id: int,
    data: schemas.OrderUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    order = service.update_order(db, order_id, data, BranchScope.for_user(current_user))
    return service.to_order_out(order)


@router.put("/{order_id}/status", response_model=schemas.OrderOut)
def update_order_status(
    order_id: int,
    data: schemas.OrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    order = service.update_order_status(
        db, order_id, data.status, BranchScope.for_user(current_user),
        changed_by=current_user.id, notes=data.notes,
    )
    return service.to_order_out(order)


@router.get("/{order_id}/status-history", response_model=List[schemas.StatusHistoryOut])
def get_status_history(
    order_id: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.get_status_history(db, order_id, scope)


# ===== Tracking =====
@router.put("/{order_id}/tracking", response_model=schemas.OrderOut)
def advance_tracking(
    order_id: int,
    data: schemas.TrackingAdvance,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(get_current_user),
):
    order = service.advance_tracking(
        db, order_id, data.tracking_status, current_user,
        BranchScope.for_user(current_user), notes=data.notes,
    )
    return service.to_order_out(order)


@router.get("/{order_id}/tracking", response_model=List[schemas.TrackingHistoryOut])
def get_tracking_history(
    order_id: int,
    db: Session = Depends(get_db),
    scope: BranchScope = Depends(get_branch_scope),
):
    return service.get_tracking_history(db, order_id, scope)


# ===== Payment / courier =====
@router.post("/{order_id}/payment", response_model=schemas.OrderOut)
def record_order_payment(
    order_id: int,
    data: schemas.OrderPayment,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER, COURIER])),
):
    order = service.record_order_payment(
        db, order_id, data.amount, BranchScope.for_user(current_user)
    )
    return service.to_order_out(order)


@router.put("/{order_id}/courier", response_model=schemas.OrderOut)
def assign_courier(
    order_id: int,
    data: schemas.CourierAssign,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, COURIER])),
):
    order = service.assign_courier(
        db, order_id, data.courier_id, current_user, BranchScope.for_user(current_user)
    )
    return service.to_order_out(order)


@router.post(
    "/{order_id}/production-request",
    response_model=production_schemas.ProductionRequestOut,
    status_code=status.HTTP_201_CREATED,
)
def create_production_request_for_order(
    order_id: int,
    data: schemas.OrderProductionRequest,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, PRODUCTION_HEAD, CASHIER])),
):
    request = service.create_production_request_for_order(
        db, order_id, data, BranchScope.for_user(current_user), requested_by=current_user.id
    )
    return production_service.to_production_out(request)
