from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from bakery.branches.models import Branch
from bakery.stock.inventory.movements.models import StockMovement
from bakery.stock.products.models import Product
from bakery.users.models import User
from bakery.users.scope import BranchScope


# --------------------------
# Write: part of the caller's unit of work
# --------------------------
def log_movement(
    db: Session,
    product_id: int,
    branch_id: int,
    quantity_change: int,
    movement_type: str,
    reference_type: Optional[str] = None,
    reference_id=None,
    reason: Optional[str] = None,
    performed_by: Optional[int] = None,
) -> StockMovement:
    """
    Add a movement row to the current session. Never commits: the caller
    commits it together with the inventory mutation it describes.
    """
    movement = StockMovement(
        product_id=product_id,
        branch_id=branch_id,
        quantity_change=quantity_change,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        reason=reason,
        performed_by=performed_by,
    )
    db.add(movement)
    db.flush()
    return movement


def log_movements(db: Session, entries: Iterable[dict]):
    movements = []
    for entry in entries:
        data = dict(entry)
        if data.get("reference_id") is not None:
            data["reference_id"] = str(data["reference_id"])
        movements.append(StockMovement(**data))
    db.add_all(movements)
    db.flush()
    return movements


# --------------------------
# Read
# --------------------------
def list_movements(
    db: Session,
    scope: BranchScope,
    product_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    reference_type: Optional[str] = None,
    start_date=None,
    end_date=None,
    skip: int = 0,
    limit: int = 100,
):
    query = (
        db.query(
            StockMovement,
            Product.name.label("product_name"),
            Branch.name.label("branch_name"),
            User.username.label("performed_by_name"),
        )
        .join(Product, Product.id == StockMovement.product_id)
        .join(Branch, Branch.id == StockMovement.branch_id)
        .outerjoin(User, User.id == StockMovement.performed_by)
    )

    query = scope.apply(query, StockMovement.branch_id, branch_id)

    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.movement_type == movement_type)
    if reference_type:
        query = query.filter(StockMovement.reference_type == reference_type)

    if start_date:
        query = query.filter(
            StockMovement.created_at >= datetime.combine(start_date, datetime.min.time())
        )
    if end_date:
        query = query.filter(
            StockMovement.created_at <= datetime.combine(end_date, datetime.max.time())
        )

    rows = (
        query
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

    movements = []
    for movement, product_name, branch_name, performed_by_name in rows:
        movement.product_name = product_name
        movement.branch_name = branch_name
        movement.performed_by_name = performed_by_name
        movements.append(movement)

    return movements


def sum_movements(db: Session, product_id: int, branch_id: int):
    """Return ``(calculated_stock, movement_count)`` for one (product, branch) pair."""
    total, count = (
        db.query(
            func.coalesce(func.sum(StockMovement.quantity_change), 0),
            func.count(StockMovement.id),
        )
        .filter(
            StockMovement.product_id == product_id,
            StockMovement.branch_id == branch_id,
        )
        .one()
    )
    return int(total), int(count)


def movement_totals_by_pair(db: Session, branch_ids=None):
    """Same as :func:`sum_movements` for every pair at once, keyed by (product_id, branch_id)."""
    query = db.query(
        StockMovement.product_id,
        StockMovement.branch_id,
        func.coalesce(func.sum(StockMovement.quantity_change), 0),
        func.count(StockMovement.id),
    )
    if branch_ids is not None:
        query = query.filter(StockMovement.branch_id.in_(branch_ids))

    rows = query.group_by(StockMovement.product_id, StockMovement.branch_id).all()
    return {
        (product_id, branch_id): (int(total), int(count))
        for product_id, branch_id, total, count in rows
    }


def totals_by_reference(db: Session, reference_type: str, reference_id):
    """Net quantity moved per (product_id, branch_id) by one source document."""
    rows = (
        db.query(
            StockMovement.product_id,
            StockMovement.branch_id,
            func.coalesce(func.sum(StockMovement.quantity_change), 0),
        )
        .filter(
            StockMovement.reference_type == reference_type,
            StockMovement.reference_id == str(reference_id),
        )
        .group_by(StockMovement.product_id, StockMovement.branch_id)
        .all()
    )
    return {(product_id, branch_id): int(total) for product_id, branch_id, total in rows}
