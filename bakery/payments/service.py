from datetime import datetime, time, date
from typing import Optional

from fastapi import HTTPException
from loguru import logger
from sqlalchemy.orm import Session, joinedload

from bakery.payments import models, schemas
from bakery.sales import models as sales_models
from bakery.users.scope import BranchScope


# -------------------------
# Record a payment against a pending / partial transaction
# -------------------------
def record_payment(
    db: Session,
    transaction_id: int,
    payment: schemas.PaymentCreate,
    scope: BranchScope,
    cashier_id: Optional[int] = None,
):
    transaction = (
        db.query(sales_models.Transaction)
        .filter(sales_models.Transaction.id == transaction_id)
        .with_for_update()
        .first()
    )
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    scope.ensure(transaction.branch_id)

    if transaction.status == sales_models.STATUS_CANCELLED:
        raise HTTPException(status_code=400, detail="Transaction is cancelled")

    remaining_balance = transaction.amount_remaining or 0
    if remaining_balance <= 0:
        raise HTTPException(status_code=400, detail="Transaction is already paid")

    # Prevent overpayment
    if payment.amount_paid > remaining_balance:
        raise HTTPException(
            status_code=400,
            detail=f"Payment exceeds balance due ({remaining_balance})"
        )

    try:
        new_payment = models.PaymentHistory(
            transaction_id=transaction.id,
            amount_paid=payment.amount_paid,
            payment_method=payment.payment_method,
            notes=payment.notes,
            cashier_id=cashier_id,
        )
        db.add(new_payment)

        transaction.amount_paid = (transaction.amount_paid or 0) + payment.amount_paid
        transaction.amount_remaining = remaining_balance - payment.amount_paid

        if transaction.amount_remaining <= 0:
            transaction.amount_remaining = 0
            transaction.payment_status = sales_models.PAYMENT_PAID
        else:
            transaction.payment_status = sales_models.PAYMENT_PARTIAL

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(new_payment)
    db.refresh(transaction)

    logger.info(
        f"Payment {new_payment.id} of {payment.amount_paid} on transaction {transaction.id}, "
        f"remaining {transaction.amount_remaining}"
    )

    return schemas.PaymentResult(
        payment=_to_payment_out(new_payment),
        transaction_id=transaction.id,
        amount_paid=transaction.amount_paid,
        amount_remaining=transaction.amount_remaining,
        payment_status=transaction.payment_status,
    )


def _to_payment_out(payment: models.PaymentHistory) -> schemas.PaymentOut:
    return schemas.PaymentOut(
        id=payment.id,
        transaction_id=payment.transaction_id,
        amount_paid=payment.amount_paid,
        payment_method=payment.payment_method,
        notes=payment.notes,
        cashier_id=payment.cashier_id,
        cashier_name=payment.cashier.username if payment.cashier else None,
        payment_date=payment.payment_date,
    )


# -------------------------
# List payments
# -------------------------
def list_payments(
    db: Session,
    scope: BranchScope,
    transaction_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    payment_method: Optional[str] = None,
):
    query = (
        db.query(models.PaymentHistory)
        .join(sales_models.Transaction, sales_models.Transaction.id == models.PaymentHistory.transaction_id)
        .options(joinedload(models.PaymentHistory.cashier))
    )
    query = scope.apply(query, sales_models.Transaction.branch_id, branch_id)

    if transaction_id is not None:
        query = query.filter(models.PaymentHistory.transaction_id == transaction_id)

    # ----------------- Date Filter -----------------
    if start_date:
        query = query.filter(models.PaymentHistory.payment_date >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(models.PaymentHistory.payment_date <= datetime.combine(end_date, time.max))

    # ----------------- Payment Method Filter -----------------
    if payment_method:
        query = query.filter(models.PaymentHistory.payment_method.ilike(payment_method.lower()))

    payments = query.order_by(models.PaymentHistory.payment_date.desc()).all()
    return [_to_payment_out(p) for p in payments]
