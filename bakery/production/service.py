from typing import Optional

from fastapi import HTTPException
from loguru import logger
from sqlalchemy.orm import Session, joinedload

from bakery.branches.models import Branch
from bakery.production import models, schemas
from bakery.stock.products.models import Product
from bakery.users.scope import BranchScope


# allowed next statuses; completed and cancelled are terminal
STATUS_TRANSITIONS = {
    models.STATUS_PENDING: {models.STATUS_IN_PROGRESS, models.STATUS_CANCELLED},
    models.STATUS_IN_PROGRESS: {models.STATUS_COMPLETED, models.STATUS_CANCELLED},
    models.STATUS_COMPLETED: set(),
    models.STATUS_CANCELLED: set(),
}


def to_production_out(request: models.ProductionRequest) -> schemas.ProductionRequestOut:
    out = schemas.ProductionRequestOut.model_validate(request)
    out.product_name = request.product.name if request.product else None
    out.branch_name = request.branch.name if request.branch else None
    return out


def create_production_request(
    db: Session,
    data: schemas.ProductionRequestCreate,
    scope: BranchScope,
    requested_by: Optional[int] = None,
    commit: bool = True,
):
    scope.ensure(data.branch_id)

    product = db.query(Product).filter(Product.id == data.product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if not db.query(Branch.id).filter(Branch.id == data.branch_id).first():
        raise HTTPException(status_code=404, detail="Branch not found")

    request = models.ProductionRequest(
        product_id=data.product_id,
        branch_id=data.branch_id,
        order_id=data.order_id,
        quantity_requested=data.quantity_requested,
        production_date=data.production_date,
        notes=data.notes,
        status=models.STATUS_PENDING,
        requested_by=requested_by,
    )
    db.add(request)
    db.flush()

    if commit:
        db.commit()
        db.refresh(request)

    logger.info(
        f"Production request {request.id}: {data.quantity_requested} x {product.name} "
        f"for branch {data.branch_id}"
    )
    return request


def list_production_requests(
    db: Session,
    scope: BranchScope,
    status: Optional[str] = None,
    branch_id: Optional[int] = None,
):
    query = db.query(models.ProductionRequest).options(
        joinedload(models.ProductionRequest.product),
        joinedload(models.ProductionRequest.branch),
    )
    query = scope.apply(query, models.ProductionRequest.branch_id, branch_id)
    if status:
        query = query.filter(models.ProductionRequest.status == status)

    return query.order_by(
        models.ProductionRequest.production_date.asc(),
        models.ProductionRequest.id.asc(),
    ).all()


def get_production_request(db: Session, request_id: int):
    request = (
        db.query(models.ProductionRequest)
        .filter(models.ProductionRequest.id == request_id)
        .first()
    )
    if not request:
        raise HTTPException(status_code=404, detail="Production request not found")
    return request


def update_production_request_status(
    db: Session,
    request_id: int,
    data: schemas.ProductionStatusUpdate,
    produced_by: Optional[int] = None,
):
    """Status only. Finished goods reach inventory through a batch stock add."""
    request = get_production_request(db, request_id)

    if data.status not in STATUS_TRANSITIONS[request.status]:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change production status from {request.status} to {data.status}"
        )

    if data.status == models.STATUS_COMPLETED:
        if not data.quantity_produced or data.quantity_produced <= 0:
            raise HTTPException(
                status_code=400,
                detail="quantity_produced must be greater than zero to complete"
            )
        request.quantity_produced = data.quantity_produced

    if data.status in (models.STATUS_IN_PROGRESS, models.STATUS_COMPLETED):
        request.produced_by = produced_by

    request.status = data.status
    db.commit()
    db.refresh(request)

    logger.info(f"Production request {request.id} -> {request.status}")
    return request


def delete_production_request(db: Session, request_id: int):
    request = get_production_request(db, request_id)
    if request.status != models.STATUS_PENDING:
        raise HTTPException(
            status_code=400,
            detail="Only pending production requests can be deleted"
        )

    db.delete(request)
    db.commit()
    return {"message": "Production request deleted successfully"}
