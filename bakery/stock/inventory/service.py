from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException
from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bakery.config import settings
from bakery.branches.models import Branch
from bakery.stock.inventory import schemas
from bakery.stock.inventory.models import Inventory
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_ADJUSTMENT,
)
from bakery.stock.products.models import Product
from bakery.users.scope import BranchScope


OPERATIONS = ("set", "add", "subtract", "reset")

STALE_WRITE_DETAIL = "Inventory changed concurrently, retry"


# --------------------------
# Unit of work helpers
# --------------------------
def commit_or_rollback(db: Session):
    """Commit the session; roll back and re-raise on failure, stale writes as 409."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("Stale inventory write detected, rolled back")
        raise HTTPException(status_code=409, detail=STALE_WRITE_DETAIL)
    except Exception:
        db.rollback()
        raise


def reorder_point_for(product: Product) -> int:
    if product.reorder_point is not None:
        return product.reorder_point
    return settings.DEFAULT_REORDER_POINT


def stock_status(quantity: int, reorder_point: int) -> str:
    if quantity > reorder_point:
        return "high"
    if quantity == reorder_point:
        return "medium"
    return "low"


def compute_operation(current: int, operation: str, value: int) -> int:
    """Resulting quantity for a quick adjustment. Subtract clamps at zero."""
    if operation not in OPERATIONS:
        raise HTTPException(status_code=400, detail=f"Unknown operation '{operation}'")
    if value is None or value < 0:
        raise HTTPException(status_code=400, detail="Value must be zero or greater")

    if operation == "set":
        return value
    if operation == "add":
        return current + value
    if operation == "subtract":
        return max(0, current - value)
    return 0


# --------------------------
# Lookups
# --------------------------
def get_inventory(db: Session, inventory_id: int, lock: bool = False):
    query = db.query(Inventory).filter(Inventory.id == inventory_id)
    if lock:
        query = query.with_for_update()
    return query.first()


def get_inventory_for_pair(db: Session, product_id: int, branch_id: int, lock: bool = False):
    query = db.query(Inventory).filter(
        Inventory.product_id == product_id,
        Inventory.branch_id == branch_id,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def _get_or_create_locked(db: Session, product_id: int, branch_id: int):
    """Return ``(inventory, created)`` with the row locked for this transaction."""
    inventory = get_inventory_for_pair(db, product_id, branch_id, lock=True)
    if inventory:
        return inventory, False

    inventory = Inventory(product_id=product_id, branch_id=branch_id, quantity=0)
    db.add(inventory)
    db.flush()
    return inventory, True


# --------------------------
# Read-only: list inventory
# --------------------------
def list_inventory(
    db: Session,
    scope: BranchScope,
    branch_id: Optional[int] = None,
    product_id: Optional[int] = None,
    product_name: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
):
    # 1️⃣ Base query joined with product and branch
    query = (
        db.query(Inventory, Product, Branch.name.label("branch_name"))
        .join(Product, Product.id == Inventory.product_id)
        .join(Branch, Branch.id == Inventory.branch_id)
    )

    # 2️⃣ Branch scope
    query = scope.apply(query, Inventory.branch_id, branch_id)

    # 3️⃣ Filters
    if product_id is not None:
        query = query.filter(Inventory.product_id == product_id)
    if product_name:
        query = query.filter(Product.name.ilike(f"%{product_name}%"))

    rows = (
        query
        .order_by(Branch.name.asc(), Product.name.asc())
        .offset(skip)
        .limit(limit)
        .all()
    )

    return [_to_inventory_out(inventory, product, branch_name) for inventory, product, branch_name in rows]


def _to_inventory_out(inventory: Inventory, product: Product, branch_name: str):
    reorder_point = reorder_point_for(product)
    return schemas.InventoryOut(
        id=inventory.id,
        product_id=inventory.product_id,
        product_name=product.name,
        sku=product.sku,
        uom=product.uom or settings.DEFAULT_UOM,
        branch_id=inventory.branch_id,
        branch_name=branch_name,
        quantity=inventory.quantity,
        reorder_point=reorder_point,
        stock_status=stock_status(inventory.quantity, reorder_point),
        version=inventory.version,
        last_updated=inventory.last_updated,
    )


def get_inventory_detail(db: Session, inventory_id: int, scope: BranchScope):
    row = (
        db.query(Inventory, Product, Branch.name)
        .join(Product, Product.id == Inventory.product_id)
        .join(Branch, Branch.id == Inventory.branch_id)
        .filter(Inventory.id == inventory_id)
        .first()
    )
    if not row:
        raise HTTPException(status_code=404, detail="Inventory record not found")

    inventory, product, branch_name = row
    scope.ensure(inventory.branch_id)
    return _to_inventory_out(inventory, product, branch_name)


def get_inventory_kpis(db: Session, scope: BranchScope, branch_id: Optional[int] = None):
    query = db.query(Inventory, Product).join(Product, Product.id == Inventory.product_id)
    query = scope.apply(query, Inventory.branch_id, branch_id)

    rows = query.all()

    active_skus = {inventory.product_id for inventory, _ in rows}
    total_units = sum(inventory.quantity or 0 for inventory, _ in rows)
    low_stock = sum(
        1 for inventory, product in rows
        if (inventory.quantity or 0) <= reorder_point_for(product)
    )

    return schemas.InventoryKPIs(
        active_skus=len(active_skus),
        total_units=total_units,
        low_stock_skus=low_stock,
    )


# --------------------------
# Internal: add stock
# --------------------------
def add_stock(
    db: Session,
    product_id: int,
    branch_id: int,
    quantity: int,
    movement_type: str = MOVEMENT_IN,
    reference_type: Optional[str] = None,
    reference_id=None,
    reason: Optional[str] = None,
    performed_by: Optional[int] = None,
    commit: bool = False,
):
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be greater than zero")

    inventory, _ = _get_or_create_locked(db, product_id, branch_id)
    inventory.quantity = (inventory.quantity or 0) + quantity
    inventory.last_updated = datetime.utcnow()

    movement_service.log_movement(
        db,
        product_id=product_id,
        branch_id=branch_id,
        quantity_change=quantity,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
        performed_by=performed_by,
    )

    if commit:
        commit_or_rollback(db)
        db.refresh(inventory)

    return inventory


# --------------------------
# Internal: remove stock (sale)
# --------------------------
def remove_stock(
    db: Session,
    product_id: int,
    branch_id: int,
    quantity: int,
    reference_type: Optional[str] = None,
    reference_id=None,
    reason: Optional[str] = None,
    performed_by: Optional[int] = None,
    commit: bool = False,
):
    """Decrement clamped at zero. The movement records what was actually removed."""
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be greater than zero")

    inventory, _ = _get_or_create_locked(db, product_id, branch_id)

    current = inventory.quantity or 0
    new_quantity = max(0, current - quantity)
    applied = new_quantity - current

    if current < quantity:
        logger.warning(
            f"Clamped stock removal for product {product_id} at branch {branch_id}: "
            f"requested {quantity}, available {current}"
        )

    inventory.quantity = new_quantity
    inventory.last_updated = datetime.utcnow()

    if applied != 0:
        movement_service.log_movement(
            db,
            product_id=product_id,
            branch_id=branch_id,
            quantity_change=applied,
            movement_type=MOVEMENT_OUT,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
            performed_by=performed_by,
        )

    if commit:
        commit_or_rollback(db)
        db.refresh(inventory)

    return inventory


# --------------------------
# Single-item quick adjustment
# --------------------------
def apply_operation(
    db: Session,
    inventory: Inventory,
    operation: str,
    value: int,
    reason: Optional[str] = None,
    performed_by: Optional[int] = None,
    reference_type: str = "quick_adjustment",
    reference_id=None,
):
    """Apply set/add/subtract/reset to a locked row. Returns ``(old_qty, new_qty)``."""
    old_quantity = inventory.quantity or 0
    new_quantity = compute_operation(old_quantity, operation, value)
    delta = new_quantity - old_quantity

    inventory.quantity = new_quantity
    inventory.last_updated = datetime.utcnow()

    if delta != 0:
        movement_service.log_movement(
            db,
            product_id=inventory.product_id,
            branch_id=inventory.branch_id,
            quantity_change=delta,
            movement_type=MOVEMENT_ADJUSTMENT,
            reference_type=reference_type,
            reference_id=reference_id if reference_id is not None else inventory.id,
            reason=reason or f"Quick {operation}",
            performed_by=performed_by,
        )

    return old_quantity, new_quantity


def _locate_for_update(db: Session, payload: schemas.QuickUpdate, scope: BranchScope):
    if payload.inventory_id is not None:
        inventory = get_inventory(db, payload.inventory_id, lock=True)
        if not inventory:
            raise HTTPException(status_code=404, detail="Inventory record not found")
        scope.ensure(inventory.branch_id)
        return inventory

    if payload.product_id is not None and payload.branch_id is not None:
        scope.ensure(payload.branch_id)
        _ensure_pair_exists(db, payload.product_id, payload.branch_id)
        inventory, _ = _get_or_create_locked(db, payload.product_id, payload.branch_id)
        return inventory

    raise HTTPException(
        status_code=400,
        detail="Provide inventory_id or both product_id and branch_id"
    )


def quick_update(
    db: Session,
    payload: schemas.QuickUpdate,
    scope: BranchScope,
    performed_by: Optional[int] = None,
):
    try:
        inventory = _locate_for_update(db, payload, scope)
        old_quantity, new_quantity = apply_operation(
            db,
            inventory,
            payload.operation,
            payload.value,
            reason=payload.reason,
            performed_by=performed_by,
        )
    except StaleDataError:
        db.rollback()
        logger.warning("Stale inventory write detected, rolled back")
        raise HTTPException(status_code=409, detail=STALE_WRITE_DETAIL)
    except Exception:
        db.rollback()
        raise

    commit_or_rollback(db)
    db.refresh(inventory)

    logger.info(
        f"Inventory {inventory.id} {payload.operation}: {old_quantity} -> {new_quantity}"
    )
    return schemas.InventoryChange(id=inventory.id, old_qty=old_quantity, new_qty=new_quantity)


def bulk_edit_inventory(
    db: Session,
    payload: schemas.BulkEdit,
    scope: BranchScope,
    performed_by: Optional[int] = None,
):
    # validate once; a bad operation would fail every row the same way
    compute_operation(0, payload.operation, payload.value)

    updated, failed = [], []

    for inventory_id in dict.fromkeys(payload.inventory_ids):
        try:
            with db.begin_nested():
                inventory = get_inventory(db, inventory_id, lock=True)
                if not inventory:
                    raise HTTPException(status_code=404, detail="Inventory record not found")
                scope.ensure(inventory.branch_id)

                old_quantity, new_quantity = apply_operation(
                    db,
                    inventory,
                    payload.operation,
                    payload.value,
                    reason=payload.reason,
                    performed_by=performed_by,
                    reference_type="bulk_edit",
                )
                db.flush()
            updated.append({"id": inventory_id, "old_qty": old_quantity, "new_qty": new_quantity})
        except (HTTPException, StaleDataError) as e:
            message = e.detail if isinstance(e, HTTPException) else STALE_WRITE_DETAIL
            logger.warning(f"Bulk edit failed for inventory {inventory_id}: {message}")
            failed.append({"id": inventory_id, "error": message})

    commit_or_rollback(db)

    logger.info(f"Bulk edit {payload.operation}: {len(updated)} updated, {len(failed)} failed")
    return {"updated": updated, "failed": failed}


# --------------------------
# Stock validation
# --------------------------
def validate_stock(db: Session, product_id: int, branch_id: int, required: int):
    inventory = get_inventory_for_pair(db, product_id, branch_id)
    available = inventory.quantity if inventory else 0

    if available >= required:
        return {"is_valid": True, "available_stock": available}

    return {
        "is_valid": False,
        "available_stock": available,
        "message": f"Insufficient stock. Available: {available}, required: {required}",
    }


def validate_cart_stock(db: Session, items: List[schemas.CartLine], branch_id: int):
    """Availability per product, with quantities of repeated lines summed."""
    required = {}
    for item in items:
        required[item.product_id] = required.get(item.product_id, 0) + item.quantity

    names = {
        p.id: p.name
        for p in db.query(Product.id, Product.name).filter(Product.id.in_(list(required))).all()
    }

    lines, insufficient = [], []
    for product_id, quantity in required.items():
        check = validate_stock(db, product_id, branch_id, quantity)
        line = {
            "product_id": product_id,
            "product_name": names.get(product_id),
            "required": quantity,
            "available": check["available_stock"],
            "deficit": max(0, quantity - check["available_stock"]),
        }
        lines.append(line)
        if not check["is_valid"]:
            insufficient.append(line)

    return {"is_valid": not insufficient, "items": lines, "insufficient": insufficient}


def _ensure_pair_exists(db: Session, product_id: int, branch_id: int):
    if not db.query(Product.id).filter(Product.id == product_id).first():
        raise HTTPException(status_code=404, detail="Product not found")
    if not db.query(Branch.id).filter(Branch.id == branch_id).first():
        raise HTTPException(status_code=404, detail="Branch not found")
