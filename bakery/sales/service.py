from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException
from loguru import logger
from sqlalchemy.orm import Session, joinedload

from bakery.config import settings
from bakery.branches.models import Branch
from bakery.payments.models import PaymentHistory
from bakery.sales import models, schemas
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import MOVEMENT_IN
from bakery.stock.products.models import Product
from bakery.users.scope import BranchScope


SALE_REFERENCE_TYPE = "transaction"
VOID_REFERENCE_TYPE = "transaction_void"


def resolve_payment(payment: schemas.PaymentData, total: float):
    """Return ``(payment_status, amount_paid, amount_remaining)`` for a new transaction."""
    if payment.payment_type == "deferred":
        return models.PAYMENT_PENDING, 0.0, total

    if payment.payment_type == "down_payment":
        amount_paid = payment.amount_paid or 0
        if amount_paid <= 0 or amount_paid >= total:
            raise HTTPException(
                status_code=400,
                detail="Down payment must be greater than zero and less than the total"
            )
        return models.PAYMENT_PARTIAL, amount_paid, total - amount_paid

    return models.PAYMENT_PAID, total, 0.0


def to_transaction_out(transaction: models.Transaction, warnings: Optional[List[str]] = None):
    return schemas.TransactionOut(
        id=transaction.id,
        branch_id=transaction.branch_id,
        branch_name=transaction.branch.name if transaction.branch else None,
        cashier_id=transaction.cashier_id,
        cashier_name=transaction.cashier.username if transaction.cashier else None,
        transaction_date=transaction.transaction_date,
        total_amount=transaction.total_amount,
        discount_amount=transaction.discount_amount or 0,
        payment_method=transaction.payment_method,
        payment_status=transaction.payment_status,
        amount_paid=transaction.amount_paid or 0,
        amount_remaining=transaction.amount_remaining or 0,
        due_date=transaction.due_date,
        status=transaction.status,
        notes=transaction.notes,
        source_type=transaction.source_type,
        items=[
            schemas.TransactionItemOut(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name if item.product else None,
                quantity=item.quantity,
                price_per_item=item.price_per_item,
                subtotal=item.subtotal,
            )
            for item in transaction.items
        ],
        warnings=warnings or [],
    )


def create_transaction(
    db: Session,
    data: schemas.TransactionCreate,
    scope: BranchScope,
    cashier_id: Optional[int] = None,
):
    """
    Create a sale with all items in one unit of work: header, items,
    payment history and stock decrements commit together or not at all.
    """
    if not data.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    scope.ensure(data.branch_id)

    if not db.query(Branch.id).filter(Branch.id == data.branch_id).first():
        raise HTTPException(status_code=404, detail="Branch not found")

    override = bool(settings.ALLOW_NEGATIVE_STOCK_OVERRIDE and data.override_reason)
    warnings = []

    try:
        # 1️⃣ Price the cart
        products = {}
        gross_amount = 0.0
        required = {}
        for item in data.items:
            product = products.get(item.product_id)
            if product is None:
                product = db.query(Product).filter(Product.id == item.product_id).first()
                if not product:
                    raise HTTPException(
                        status_code=404,
                        detail=f"Product {item.product_id} not found"
                    )
                if not product.is_active:
                    raise HTTPException(
                        status_code=400,
                        detail=f"Product '{product.name}' is not active"
                    )
                products[item.product_id] = product

            gross_amount += (product.price or 0) * item.quantity
            required[item.product_id] = required.get(item.product_id, 0) + item.quantity

        if data.discount_amount > gross_amount:
            raise HTTPException(status_code=400, detail="Discount exceeds the cart total")

        total_amount = gross_amount - data.discount_amount
        payment_status, amount_paid, amount_remaining = resolve_payment(data.payment, total_amount)

        # 2️⃣ Lock and check stock per product
        for product_id, quantity in required.items():
            inventory = inventory_service.get_inventory_for_pair(
                db, product_id, data.branch_id, lock=True
            )
            available = inventory.quantity if inventory else 0
            if available < quantity:
                message = (
                    f"Insufficient stock for {products[product_id].name}. "
                    f"Available: {available}, required: {quantity}"
                )
                if not override:
                    raise HTTPException(status_code=400, detail=message)
                warnings.append(message)

        # 3️⃣ Header
        transaction = models.Transaction(
            branch_id=data.branch_id,
            cashier_id=cashier_id,
            total_amount=total_amount,
            discount_amount=data.discount_amount,
            payment_method=data.payment.payment_method,
            payment_status=payment_status,
            amount_paid=amount_paid,
            amount_remaining=amount_remaining,
            due_date=data.payment.due_date,
            notes=data.payment.notes,
            override_reason=data.override_reason if warnings else None,
        )
        db.add(transaction)
        db.flush()

        # 4️⃣ Items
        for item in data.items:
            price = products[item.product_id].price or 0
            db.add(models.TransactionItem(
                transaction_id=transaction.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price_per_item=price,
                subtotal=price * item.quantity,
            ))

        # 5️⃣ Payment history for anything paid now
        if amount_paid > 0:
            db.add(PaymentHistory(
                transaction_id=transaction.id,
                amount_paid=amount_paid,
                payment_method=data.payment.payment_method,
                cashier_id=cashier_id,
                notes=data.payment.notes,
            ))

        # 6️⃣ Deduct stock
        for product_id, quantity in required.items():
            inventory_service.remove_stock(
                db,
                product_id=product_id,
                branch_id=data.branch_id,
                quantity=quantity,
                reference_type=SALE_REFERENCE_TYPE,
                reference_id=transaction.id,
                reason=f"Sale #{transaction.id}",
                performed_by=cashier_id,
            )
    except Exception:
        db.rollback()
        raise

    inventory_service.commit_or_rollback(db)
    db.refresh(transaction)

    if warnings:
        logger.warning(f"Transaction {transaction.id} sold past stock: {data.override_reason}")
    logger.info(
        f"Transaction {transaction.id} created at branch {data.branch_id}: "
        f"{len(data.items)} lines, total {total_amount}, {payment_status}"
    )
    return to_transaction_out(transaction, warnings)


def _transaction_query(db: Session):
    return db.query(models.Transaction).options(
        joinedload(models.Transaction.items).joinedload(models.TransactionItem.product),
        joinedload(models.Transaction.branch),
        joinedload(models.Transaction.cashier),
    )


def list_transactions(
    db: Session,
    scope: BranchScope,
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    start_date=None,
    end_date=None,
    skip: int = 0,
    limit: int = 100,
):
    query = scope.apply(_transaction_query(db), models.Transaction.branch_id, branch_id)

    if status:
        query = query.filter(models.Transaction.status == status)
    if payment_status:
        query = query.filter(models.Transaction.payment_status == payment_status)
    if start_date:
        query = query.filter(
            models.Transaction.transaction_date >= datetime.combine(start_date, datetime.min.time())
        )
    if end_date:
        query = query.filter(
            models.Transaction.transaction_date <= datetime.combine(end_date, datetime.max.time())
        )

    transactions = (
        query
        .order_by(models.Transaction.transaction_date.desc(), models.Transaction.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return [to_transaction_out(t) for t in transactions]


def get_transaction(db: Session, transaction_id: int, scope: BranchScope):
    transaction = _transaction_query(db).filter(models.Transaction.id == transaction_id).first()
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    scope.ensure(transaction.branch_id)
    return transaction


def list_pending_transactions(db: Session, scope: BranchScope, branch_id: Optional[int] = None):
    query = scope.apply(_transaction_query(db), models.Transaction.branch_id, branch_id)
    transactions = (
        query
        .filter(
            models.Transaction.payment_status.in_([models.PAYMENT_PENDING, models.PAYMENT_PARTIAL]),
            models.Transaction.status != models.STATUS_CANCELLED,
        )
        .order_by(models.Transaction.due_date.asc(), models.Transaction.id.asc())
        .all()
    )
    return [to_transaction_out(t) for t in transactions]


def void_transactions(
    db: Session,
    transaction_ids: List[int],
    scope: BranchScope,
    reason: Optional[str] = None,
    performed_by: Optional[int] = None,
):
    """
    Cancel transactions and put their items back into stock.
    Each transaction is voided in its own savepoint.
    """
    voided, failed = [], []
    stock_returned = 0

    for transaction_id in dict.fromkeys(transaction_ids):
        try:
            with db.begin_nested():
                transaction = (
                    db.query(models.Transaction)
                    .filter(models.Transaction.id == transaction_id)
                    .with_for_update()
                    .first()
                )
                if not transaction:
                    raise HTTPException(status_code=404, detail="Transaction not found")
                scope.ensure(transaction.branch_id)
                if transaction.status == models.STATUS_CANCELLED:
                    raise HTTPException(status_code=400, detail="Transaction already cancelled")

                transaction.status = models.STATUS_CANCELLED
                transaction.payment_status = models.PAYMENT_CANCELLED
                transaction.void_reason = reason

                # restock what the sale actually removed; clamped lines removed less
                removed = movement_service.totals_by_reference(
                    db, SALE_REFERENCE_TYPE, transaction.id
                )
                returned = 0
                for (product_id, branch_id), total in sorted(removed.items()):
                    if total >= 0:
                        continue
                    inventory_service.add_stock(
                        db,
                        product_id=product_id,
                        branch_id=branch_id,
                        quantity=-total,
                        movement_type=MOVEMENT_IN,
                        reference_type=VOID_REFERENCE_TYPE,
                        reference_id=transaction.id,
                        reason=reason or f"Void transaction #{transaction.id}",
                        performed_by=performed_by,
                    )
                    returned += -total
                db.flush()
        except HTTPException as e:
            logger.warning(f"Void failed for transaction {transaction_id}: {e.detail}")
            failed.append({"id": transaction_id, "error": e.detail})
            continue
        except Exception as e:
            logger.exception(f"Void failed for transaction {transaction_id}")
            failed.append({"id": transaction_id, "error": str(e)})
            continue

        voided.append(transaction_id)
        stock_returned += returned

    inventory_service.commit_or_rollback(db)

    logger.info(f"Voided {len(voided)} transactions, {stock_returned} units returned to stock")
    return {"voided": voided, "stock_returned": stock_returned, "failed": failed}
