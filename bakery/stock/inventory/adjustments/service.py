from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from bakery.branches.models import Branch
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.adjustments import models, schemas
from bakery.stock.inventory.models import Inventory
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import MOVEMENT_ADJUSTMENT
from bakery.stock.products.models import Product
from bakery.users.models import User
from bakery.users.scope import BranchScope


def record_adjustment(
    db: Session,
    product_id: int,
    branch_id: int,
    adjustment_type: str,
    quantity_change: int,
    reason: Optional[str] = None,
    performed_by: Optional[int] = None,
):
    """Add an audit row to the caller's unit of work."""
    adjustment = models.StockAdjustment(
        product_id=product_id,
        branch_id=branch_id,
        adjustment_type=adjustment_type,
        quantity_change=quantity_change,
        reason=reason,
        performed_by=performed_by,
    )
    db.add(adjustment)
    db.flush()
    return adjustment


def _ensure_product_and_branch(db: Session, product_id: int, branch_id: int):
    if not db.query(Product.id).filter(Product.id == product_id).first():
        raise HTTPException(status_code=404, detail="Product not found")
    if not db.query(Branch.id).filter(Branch.id == branch_id).first():
        raise HTTPException(status_code=404, detail="Branch not found")


def create_initial_stock(
    db: Session,
    payload: schemas.InitialStockCreate,
    scope: BranchScope,
    performed_by: Optional[int] = None,
):
    """Opening stock for a product at a branch. Zero quantity records nothing."""
    scope.ensure(payload.branch_id)
    _ensure_product_and_branch(db, payload.product_id, payload.branch_id)

    if payload.quantity <= 0:
        return None

    try:
        adjustment = record_adjustment(
            db,
            product_id=payload.product_id,
            branch_id=payload.branch_id,
            adjustment_type=models.ADJUST_INIT,
            quantity_change=payload.quantity,
            reason="Initial stock",
            performed_by=performed_by,
        )
        inventory_service.add_stock(
            db,
            product_id=payload.product_id,
            branch_id=payload.branch_id,
            quantity=payload.quantity,
            reference_type="initial_stock",
            reference_id=adjustment.id,
            reason="Initial stock",
            performed_by=performed_by,
        )
    except Exception:
        db.rollback()
        raise

    inventory_service.commit_or_rollback(db)
    db.refresh(adjustment)
    return adjustment


def create_adjustment(
    db: Session,
    payload: schemas.StockAdjustmentCreate,
    scope: BranchScope,
    performed_by: Optional[int] = None,
):
    """
    Signed adjustment of one (product, branch) stock level.
    Positive quantity_change = increase, negative = decrease.
    """
    scope.ensure(payload.branch_id)
    _ensure_product_and_branch(db, payload.product_id, payload.branch_id)

    if payload.quantity_change == 0:
        raise HTTPException(status_code=400, detail="Adjustment quantity cannot be zero")

    try:
        inventory = inventory_service.get_inventory_for_pair(
            db, payload.product_id, payload.branch_id, lock=True
        )
        current = inventory.quantity if inventory else 0

        new_stock = current + payload.quantity_change
        if new_stock < 0:
            raise HTTPException(
                status_code=400,
                detail="Adjustment would result in negative stock"
            )

        if not inventory:
            inventory = Inventory(
                product_id=payload.product_id,
                branch_id=payload.branch_id,
                quantity=0,
            )
            db.add(inventory)

        inventory.quantity = new_stock
        inventory.last_updated = datetime.utcnow()

        adjustment = record_adjustment(
            db,
            product_id=payload.product_id,
            branch_id=payload.branch_id,
            adjustment_type=(
                models.ADJUST_IN if payload.quantity_change > 0 else models.ADJUST_OUT
            ),
            quantity_change=payload.quantity_change,
            reason=payload.reason,
            performed_by=performed_by,
        )

        movement_service.log_movement(
            db,
            product_id=payload.product_id,
            branch_id=payload.branch_id,
            quantity_change=payload.quantity_change,
            movement_type=MOVEMENT_ADJUSTMENT,
            reference_type="stock_adjustment",
            reference_id=adjustment.id,
            reason=payload.reason,
            performed_by=performed_by,
        )
    except Exception:
        db.rollback()
        raise

    inventory_service.commit_or_rollback(db)
    db.refresh(adjustment)

    logger.info(
        f"Stock adjustment {adjustment.id}: product {payload.product_id} "
        f"branch {payload.branch_id} {payload.quantity_change:+d} -> {new_stock}"
    )
    return adjustment


def list_adjustments(
    db: Session,
    scope: BranchScope,
    product_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    adjustment_type: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    start_date=None,
    end_date=None,
):
    """
    List stock adjustments with product, branch and username,
    filtered by date range if provided
    """

    query = (
        db.query(
            models.StockAdjustment,
            Product.name.label("product_name"),
            Branch.name.label("branch_name"),
            User.username.label("performed_by_name"),
        )
        .join(Product, Product.id == models.StockAdjustment.product_id)
        .join(Branch, Branch.id == models.StockAdjustment.branch_id)
        .outerjoin(User, User.id == models.StockAdjustment.performed_by)
    )

    query = scope.apply(query, models.StockAdjustment.branch_id, branch_id)

    if product_id is not None:
        query = query.filter(models.StockAdjustment.product_id == product_id)
    if adjustment_type:
        query = query.filter(models.StockAdjustment.adjustment_type == adjustment_type)

    # ✅ Apply date filter
    if start_date:
        query = query.filter(
            models.StockAdjustment.created_at
            >= datetime.combine(start_date, datetime.min.time())
        )

    if end_date:
        query = query.filter(
            models.StockAdjustment.created_at
            <= datetime.combine(end_date, datetime.max.time())
        )

    results = (
        query
        .order_by(models.StockAdjustment.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

    adjustments = []
    for adj, product_name, branch_name, performed_by_name in results:
        adj.product_name = product_name
        adj.branch_name = branch_name
        adj.performed_by_name = performed_by_name
        adjustments.append(adj)

    return adjustments
