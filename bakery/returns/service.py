from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from loguru import logger
from sqlalchemy.orm import Session, joinedload

from bakery.branches.models import Branch
from bakery.returns import models, schemas
from bakery.sales.models import Transaction
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import MOVEMENT_RETURN
from bakery.stock.products.models import Product
from bakery.users.scope import BranchScope


RETURN_REFERENCE_TYPE = "return"


def to_return_out(record: models.Return) -> schemas.ReturnOut:
    return schemas.ReturnOut(
        id=record.id,
        transaction_id=record.transaction_id,
        branch_id=record.branch_id,
        branch_name=record.branch.name if record.branch else None,
        reason=record.reason,
        notes=record.notes,
        status=record.status,
        created_by=record.created_by,
        processed_by=record.processed_by,
        return_date=record.return_date,
        processed_at=record.processed_at,
        items=[
            schemas.ReturnItemOut(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name if item.product else None,
                quantity=item.quantity,
                reason=item.reason,
                condition=item.condition,
            )
            for item in record.items
        ],
    )


def create_return(
    db: Session,
    data: schemas.ReturnCreate,
    scope: BranchScope,
    created_by: Optional[int] = None,
):
    scope.ensure(data.branch_id)

    if not db.query(Branch.id).filter(Branch.id == data.branch_id).first():
        raise HTTPException(status_code=404, detail="Branch not found")

    if data.transaction_id is not None:
        transaction = db.query(Transaction).filter(Transaction.id == data.transaction_id).first()
        if not transaction:
            raise HTTPException(status_code=404, detail="Transaction not found")
        if transaction.branch_id != data.branch_id:
            raise HTTPException(
                status_code=400,
                detail="Transaction belongs to a different branch"
            )

    product_ids = {item.product_id for item in data.items}
    found = {pid for (pid,) in db.query(Product.id).filter(Product.id.in_(product_ids)).all()}
    missing = sorted(product_ids - found)
    if missing:
        raise HTTPException(status_code=404, detail=f"Product not found: {missing}")

    try:
        record = models.Return(
            transaction_id=data.transaction_id,
            branch_id=data.branch_id,
            reason=data.reason,
            notes=data.notes,
            status=models.STATUS_PENDING,
            created_by=created_by,
        )
        db.add(record)
        db.flush()

        for item in data.items:
            db.add(models.ReturnItem(
                return_id=record.id,
                product_id=item.product_id,
                quantity=item.quantity,
                reason=item.reason,
                condition=item.condition,
            ))

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    logger.info(f"Return {record.id} created at branch {data.branch_id} with {len(data.items)} items")
    return record


def _return_query(db: Session):
    return db.query(models.Return).options(
        joinedload(models.Return.items).joinedload(models.ReturnItem.product),
        joinedload(models.Return.branch),
    )


def list_returns(
    db: Session,
    scope: BranchScope,
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
):
    query = scope.apply(_return_query(db), models.Return.branch_id, branch_id)
    if status:
        query = query.filter(models.Return.status == status)
    return query.order_by(models.Return.return_date.desc(), models.Return.id.desc()).all()


def get_return(db: Session, return_id: int, scope: BranchScope):
    record = _return_query(db).filter(models.Return.id == return_id).first()
    if not record:
        raise HTTPException(status_code=404, detail="Return not found")
    scope.ensure(record.branch_id)
    return record


def process_return(
    db: Session,
    return_id: int,
    payload: schemas.ReturnProcess,
    scope: BranchScope,
    performed_by: Optional[int] = None,
):
    """
    Approve: resaleable items go back into stock; every item gets a return
    movement (zero quantity when it is not resaleable).
    Reject: status only.
    """
    record = get_return(db, return_id, scope)

    if record.status != models.STATUS_PENDING:
        raise HTTPException(
            status_code=400,
            detail=f"Return already {record.status}"
        )

    restocked = 0
    try:
        if payload.action == "approve":
            # not resaleable: zero-quantity rows, audit only
            audit_entries = []
            for item in record.items:
                reason = f"Return: {item.reason or record.reason} - Condition: {item.condition}"

                if item.condition == models.CONDITION_RESALEABLE:
                    inventory_service.add_stock(
                        db,
                        product_id=item.product_id,
                        branch_id=record.branch_id,
                        quantity=item.quantity,
                        movement_type=MOVEMENT_RETURN,
                        reference_type=RETURN_REFERENCE_TYPE,
                        reference_id=record.id,
                        reason=reason,
                        performed_by=performed_by,
                    )
                    restocked += item.quantity
                else:
                    audit_entries.append({
                        "product_id": item.product_id,
                        "branch_id": record.branch_id,
                        "quantity_change": 0,
                        "movement_type": MOVEMENT_RETURN,
                        "reference_type": RETURN_REFERENCE_TYPE,
                        "reference_id": record.id,
                        "reason": reason,
                        "performed_by": performed_by,
                    })
            if audit_entries:
                movement_service.log_movements(db, audit_entries)
            record.status = models.STATUS_APPROVED
        else:
            record.status = models.STATUS_REJECTED

        if payload.notes is not None:
            record.notes = payload.notes
        record.processed_by = performed_by
        record.processed_at = datetime.utcnow()
    except Exception:
        db.rollback()
        raise

    inventory_service.commit_or_rollback(db)
    db.refresh(record)

    logger.info(f"Return {record.id} {record.status}, {restocked} units restocked")
    return record
