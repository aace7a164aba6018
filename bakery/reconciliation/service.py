"""
Inventory consistency checks.

``check_consistency`` looks for rows that break the data rules outright
(negative quantities, shared SKUs, missing unit of measure).
``reconcile_stock`` compares each inventory row with the sum of its movement
log and reports the drift; ``fix_discrepancies`` writes the calculated value
back for rows whose stock and movement sum have not changed since they
were reported.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException
from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bakery.branches.models import Branch
from bakery.reconciliation import schemas
from bakery.reconciliation.schemas import SEVERITY_CRITICAL, SEVERITY_WARNING
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.adjustments import service as adjustment_service
from bakery.stock.inventory.adjustments.models import ADJUST_RECONCILIATION
from bakery.stock.inventory.models import Inventory
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import MOVEMENT_ADJUSTMENT
from bakery.stock.products.models import Product
from bakery.users.scope import BranchScope


# ----------------------------
# Consistency scan
# ----------------------------
def check_consistency(db: Session, scope: BranchScope, branch_id: Optional[int] = None):
    issues: List[schemas.ConsistencyIssue] = []

    # 1️⃣ Negative stock
    negative_rows = scope.apply(
        db.query(Inventory, Product.name)
        .join(Product, Product.id == Inventory.product_id)
        .filter(Inventory.quantity < 0),
        Inventory.branch_id,
        branch_id,
    ).order_by(Inventory.id).all()

    for inventory, product_name in negative_rows:
        issues.append(schemas.ConsistencyIssue(
            type="negative_stock",
            severity=SEVERITY_CRITICAL,
            product_id=inventory.product_id,
            product_name=product_name,
            branch_id=inventory.branch_id,
            details=f"Stock is {inventory.quantity}",
            suggestion="Run reconciliation or set the correct stock with a corrective adjustment",
        ))

    # 2️⃣ Duplicate SKU (products are global, not branch scoped)
    duplicated = [
        sku for (sku,) in db.query(Product.sku)
        .filter(Product.sku.isnot(None), Product.sku != "")
        .group_by(Product.sku)
        .having(func.count(Product.id) > 1)
        .all()
    ]
    duplicate_products = (
        db.query(Product)
        .filter(Product.sku.in_(duplicated))
        .order_by(Product.sku, Product.id)
        .all()
    )
    for product in duplicate_products:
        issues.append(schemas.ConsistencyIssue(
            type="duplicate_sku",
            severity=SEVERITY_CRITICAL,
            product_id=product.id,
            product_name=product.name,
            details=f"SKU '{product.sku}' is shared with another product",
            suggestion="Give each product a unique SKU",
        ))

    # 3️⃣ Missing unit of measure
    missing_uom = (
        db.query(Product)
        .filter(
            Product.is_active.is_(True),
            (Product.uom.is_(None)) | (func.trim(Product.uom) == ""),
        )
        .order_by(Product.id)
        .all()
    )
    for product in missing_uom:
        issues.append(schemas.ConsistencyIssue(
            type="missing_uom",
            severity=SEVERITY_WARNING,
            product_id=product.id,
            product_name=product.name,
            details="Active product has no unit of measure",
            suggestion="Set the unit of measure (pcs, box, kg, ...)",
        ))

    critical = sum(1 for i in issues if i.severity == SEVERITY_CRITICAL)
    return schemas.ConsistencyReport(
        total_issues=len(issues),
        critical=critical,
        warning=len(issues) - critical,
        issues=issues,
    )


# ----------------------------
# Movement reconciliation
# ----------------------------
def reconcile_stock(db: Session, scope: BranchScope, branch_id: Optional[int] = None):
    rows = scope.apply(
        db.query(Inventory, Product.name, Branch.name)
        .join(Product, Product.id == Inventory.product_id)
        .join(Branch, Branch.id == Inventory.branch_id),
        Inventory.branch_id,
        branch_id,
    ).order_by(Inventory.branch_id, Inventory.product_id).all()

    if branch_id is not None:
        branch_filter = [branch_id]
    elif scope.is_restricted:
        branch_filter = list(scope.branch_ids)
    else:
        branch_filter = None
    totals = movement_service.movement_totals_by_pair(db, branch_ids=branch_filter)

    discrepancies = []
    skipped = 0

    for inventory, product_name, branch_name in rows:
        calculated, count = totals.get((inventory.product_id, inventory.branch_id), (0, 0))
        if count == 0:
            # no history to compare against
            skipped += 1
            continue

        difference = inventory.quantity - calculated
        if difference != 0:
            discrepancies.append(schemas.Discrepancy(
                product_id=inventory.product_id,
                product_name=product_name,
                branch_id=inventory.branch_id,
                branch_name=branch_name,
                current_stock=inventory.quantity,
                calculated_stock=calculated,
                difference=difference,
                movement_count=count,
            ))

    logger.info(
        f"Reconciliation checked {len(rows)} rows: "
        f"{len(discrepancies)} discrepancies, {skipped} without history"
    )
    return schemas.ReconcileResult(
        checked=len(rows),
        skipped_no_history=skipped,
        discrepancies=discrepancies,
    )


def fix_discrepancies(
    db: Session,
    payload: schemas.FixRequest,
    scope: BranchScope,
    performed_by: Optional[int] = None,
):
    fixed, stale, failed = [], [], []
    reason = payload.reason or "Reconciliation fix"

    for item in payload.discrepancies:
        key = {"product_id": item.product_id, "branch_id": item.branch_id}
        try:
            with db.begin_nested():
                scope.ensure(item.branch_id)
                inventory = inventory_service.get_inventory_for_pair(
                    db, item.product_id, item.branch_id, lock=True
                )
                if not inventory:
                    raise HTTPException(status_code=404, detail="Inventory not found")

                calculated, _ = movement_service.sum_movements(
                    db, item.product_id, item.branch_id
                )
                if (
                    inventory.quantity != item.current_stock
                    or calculated != item.calculated_stock
                ):
                    stale.append({
                        **key,
                        "current_stock": inventory.quantity,
                        "calculated_stock": calculated,
                    })
                    continue

                target = max(0, calculated)
                change = target - inventory.quantity
                inventory.quantity = target
                inventory.last_updated = datetime.utcnow()

                # the movement log already sums to the target; no movement row
                adjustment_service.record_adjustment(
                    db,
                    product_id=item.product_id,
                    branch_id=item.branch_id,
                    adjustment_type=ADJUST_RECONCILIATION,
                    quantity_change=change,
                    reason=reason,
                    performed_by=performed_by,
                )
                db.flush()

            fixed.append({**key, "old_stock": item.current_stock, "new_stock": target})
        except (HTTPException, StaleDataError) as e:
            message = e.detail if isinstance(e, HTTPException) else inventory_service.STALE_WRITE_DETAIL
            logger.warning(f"Reconciliation fix failed for {key}: {message}")
            failed.append({**key, "error": message})

    inventory_service.commit_or_rollback(db)

    logger.info(
        f"Reconciliation fix: {len(fixed)} fixed, {len(stale)} stale, {len(failed)} failed"
    )
    return {"fixed": fixed, "stale": stale, "failed": failed}


def create_corrective_adjustment(
    db: Session,
    payload: schemas.CorrectiveAdjustment,
    scope: BranchScope,
    performed_by: Optional[int] = None,
):
    scope.ensure(payload.branch_id)

    try:
        inventory = inventory_service.get_inventory_for_pair(
            db, payload.product_id, payload.branch_id, lock=True
        )
        if not inventory:
            raise HTTPException(status_code=404, detail="Inventory not found")

        old_stock = inventory.quantity
        change = payload.correct_stock - old_stock
        if change == 0:
            raise HTTPException(status_code=400, detail="Stock is already at the requested value")

        inventory.quantity = payload.correct_stock
        inventory.last_updated = datetime.utcnow()

        adjustment = adjustment_service.record_adjustment(
            db,
            product_id=payload.product_id,
            branch_id=payload.branch_id,
            adjustment_type=ADJUST_RECONCILIATION,
            quantity_change=change,
            reason=payload.reason,
            performed_by=performed_by,
        )
        movement_service.log_movement(
            db,
            product_id=payload.product_id,
            branch_id=payload.branch_id,
            quantity_change=change,
            movement_type=MOVEMENT_ADJUSTMENT,
            reference_type="corrective_adjustment",
            reference_id=adjustment.id,
            reason=payload.reason,
            performed_by=performed_by,
        )
    except Exception:
        db.rollback()
        raise

    inventory_service.commit_or_rollback(db)

    logger.info(
        f"Corrective adjustment: product {payload.product_id} branch {payload.branch_id} "
        f"{old_stock} -> {payload.correct_stock}"
    )
    return {
        "adjustment_id": adjustment.id,
        "product_id": payload.product_id,
        "branch_id": payload.branch_id,
        "old_stock": old_stock,
        "new_stock": payload.correct_stock,
    }
