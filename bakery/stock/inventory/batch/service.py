"""
Batch stock upsert.

Lines with a non-positive quantity are rejected up front. The remaining lines
are merged per (product, branch) pair, so a pair listed twice becomes one
inventory mutation and one movement carrying the summed delta. Pairs are
applied chunk by chunk; each chunk is one commit and each pair runs inside a
SAVEPOINT so a failing pair only costs its own lines.

Every input line lands in exactly one bucket of the result:

    total_updated + total_inserted + merged + len(rejected) + len(errors) == len(items)
"""
import uuid
from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from bakery.config import settings
from bakery.branches.models import Branch
from bakery.stock.category.models import Category
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.batch import schemas
from bakery.stock.inventory.models import Inventory
from bakery.stock.products.models import Product
from bakery.users.scope import BranchScope


BATCH_REFERENCE_TYPE = "batch_stock_add"


def _chunks(seq, size):
    for start in range(0, len(seq), size):
        yield seq[start:start + size]


def _pair_error(product_id: int, branch_id: int, message: str) -> str:
    return f"Product {product_id} at branch {branch_id}: {message}"


def batch_add_stock(
    db: Session,
    items: List[schemas.BatchStockItem],
    performed_by: Optional[int] = None,
    chunk_size: Optional[int] = None,
    scope: Optional[BranchScope] = None,
) -> schemas.BatchStockResult:
    chunk_size = chunk_size or settings.BATCH_CHUNK_SIZE
    scope = scope or BranchScope.unrestricted()
    batch_id = uuid.uuid4().hex

    result = schemas.BatchStockResult(success=False, batch_id=batch_id)

    # 1️⃣ Reject non-positive lines
    pairs = {}
    for index, item in enumerate(items):
        if item.quantity <= 0:
            result.rejected.append(schemas.RejectedItem(
                index=index,
                product_id=item.product_id,
                branch_id=item.branch_id,
                quantity=item.quantity,
                error="Quantity must be greater than zero",
            ))
            continue

        # 2️⃣ Merge duplicate pairs, insertion order kept
        key = (item.product_id, item.branch_id)
        entry = pairs.setdefault(key, {"quantity": 0, "lines": 0})
        entry["quantity"] += item.quantity
        entry["lines"] += 1

    if not pairs:
        result.message = "No items with a valid quantity"
        logger.warning(f"Batch {batch_id}: all {len(items)} items rejected")
        return result

    # 3️⃣ Unknown ids and out-of-scope branches fail per line
    product_ids = {p for p, _ in pairs}
    branch_ids = {b for _, b in pairs}
    known_products = {
        pid for (pid,) in db.query(Product.id).filter(Product.id.in_(product_ids)).all()
    }
    known_branches = {
        bid for (bid,) in db.query(Branch.id).filter(Branch.id.in_(branch_ids)).all()
    }

    applicable = []
    for (product_id, branch_id), entry in pairs.items():
        if product_id not in known_products:
            message = "product not found"
        elif branch_id not in known_branches:
            message = "branch not found"
        elif not scope.allows(branch_id):
            message = "branch is outside your assigned branches"
        else:
            applicable.append((product_id, branch_id, entry))
            continue
        result.errors.extend(
            [_pair_error(product_id, branch_id, message)] * entry["lines"]
        )

    # 4️⃣ Apply chunk by chunk
    for chunk_number, chunk in enumerate(_chunks(applicable, chunk_size), start=1):
        updated, inserted, merged = 0, 0, 0
        chunk_errors = []

        for product_id, branch_id, entry in chunk:
            try:
                with db.begin_nested():
                    existed = (
                        db.query(Inventory.id)
                        .filter(
                            Inventory.product_id == product_id,
                            Inventory.branch_id == branch_id,
                        )
                        .first()
                        is not None
                    )
                    inventory_service.add_stock(
                        db,
                        product_id=product_id,
                        branch_id=branch_id,
                        quantity=entry["quantity"],
                        reference_type=BATCH_REFERENCE_TYPE,
                        reference_id=batch_id,
                        reason="Batch stock add",
                        performed_by=performed_by,
                    )
                    db.flush()
            except Exception as e:
                logger.warning(
                    f"Batch {batch_id}: product {product_id} branch {branch_id} failed: {e}"
                )
                chunk_errors.extend(
                    [_pair_error(product_id, branch_id, str(e))] * entry["lines"]
                )
                continue

            if existed:
                updated += 1
            else:
                inserted += 1
            merged += entry["lines"] - 1

        try:
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception(f"Batch {batch_id}: chunk {chunk_number} commit failed")
            # nothing in this chunk was persisted
            chunk_errors = [
                _pair_error(product_id, branch_id, f"chunk commit failed: {e}")
                for product_id, branch_id, entry in chunk
                for _ in range(entry["lines"])
            ]
            updated, inserted, merged = 0, 0, 0

        result.total_updated += updated
        result.total_inserted += inserted
        result.merged += merged
        result.errors.extend(chunk_errors)

    result.success = not result.errors and (result.total_updated + result.total_inserted) > 0

    logger.info(
        f"Batch {batch_id}: {result.total_updated} updated, {result.total_inserted} inserted, "
        f"{result.merged} merged, {len(result.rejected)} rejected, {len(result.errors)} errors"
    )
    return result


def fetch_products_with_stock(
    db: Session,
    scope: BranchScope,
    branch_ids: Optional[List[int]] = None,
):
    """Active products with their stock per branch, for the batch entry grid."""
    if branch_ids:
        for branch_id in branch_ids:
            scope.ensure(branch_id)
    elif scope.is_restricted:
        branch_ids = sorted(scope.branch_ids)
    else:
        branch_ids = [bid for (bid,) in db.query(Branch.id).order_by(Branch.id).all()]

    products = (
        db.query(Product, Category.name)
        .join(Category, Category.id == Product.category_id)
        .filter(Product.is_active.is_(True))
        .order_by(Category.name.asc(), Product.name.asc())
        .all()
    )

    stock = {}
    if branch_ids:
        rows = (
            db.query(Inventory.product_id, Inventory.branch_id, Inventory.quantity)
            .filter(Inventory.branch_id.in_(branch_ids))
            .all()
        )
        for product_id, branch_id, quantity in rows:
            stock.setdefault(product_id, {})[branch_id] = quantity

    return [
        schemas.ProductWithStock(
            id=product.id,
            name=product.name,
            price=product.price or 0,
            category=category_name,
            sku=product.sku,
            stock={bid: stock.get(product.id, {}).get(bid, 0) for bid in branch_ids},
        )
        for product, category_name in products
    ]
