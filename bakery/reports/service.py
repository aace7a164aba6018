import io
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Optional

import pandas as pd
import pytz
from sqlalchemy import func
from sqlalchemy.orm import Session

from bakery.config import settings
from bakery.reports import schemas
from bakery.returns.models import Return, ReturnItem, STATUS_REJECTED
from bakery.sales import models as sales_models
from bakery.stock.inventory.models import Inventory
from bakery.stock.inventory.movements.models import StockMovement, MOVEMENT_IN
from bakery.stock.products.models import Product
from bakery.users.scope import BranchScope


def business_day_bounds(report_date: date):
    """Start (inclusive) and end (exclusive) of a local business day as naive UTC datetimes."""
    tz = pytz.timezone(settings.TIMEZONE)
    start_local = tz.localize(datetime.combine(report_date, time.min))
    end_local = tz.localize(datetime.combine(report_date + timedelta(days=1), time.min))
    return (
        start_local.astimezone(pytz.utc).replace(tzinfo=None),
        end_local.astimezone(pytz.utc).replace(tzinfo=None),
    )


def _paid_transactions(db: Session, scope: BranchScope, branch_id, start, end):
    query = db.query(sales_models.Transaction).filter(
        sales_models.Transaction.transaction_date >= start,
        sales_models.Transaction.transaction_date < end,
        sales_models.Transaction.status == sales_models.STATUS_COMPLETED,
        sales_models.Transaction.payment_status == sales_models.PAYMENT_PAID,
    )
    return scope.apply(query, sales_models.Transaction.branch_id, branch_id)


# ==============================
# DAILY SALES REPORT
# ==============================
def daily_sales_report(
    db: Session,
    report_date: date,
    scope: BranchScope,
    branch_id: Optional[int] = None,
):
    """
    Per-product sales for one business day.

    Closing stock is the current inventory; opening stock is worked back
    from it: closing - stock in + sold - returned, floored at zero.
    Revenue spreads each transaction's discount over its lines in
    proportion to the line subtotal.
    """
    start, end = business_day_bounds(report_date)

    # ==============================
    # SALES
    # ==============================
    transactions = (
        _paid_transactions(db, scope, branch_id, start, end)
        .filter(sales_models.Transaction.source_type != "order")
        .all()
    )

    sold = defaultdict(int)
    revenue = defaultdict(float)
    for txn in transactions:
        gross = sum(item.subtotal or 0 for item in txn.items)
        ratio = (txn.total_amount or 0) / gross if gross > 0 else 1.0
        for item in txn.items:
            sold[item.product_id] += item.quantity or 0
            revenue[item.product_id] += (item.subtotal or 0) * ratio

    # ==============================
    # STOCK IN
    # ==============================
    stock_in_query = (
        db.query(StockMovement.product_id, func.sum(func.abs(StockMovement.quantity_change)))
        .filter(
            StockMovement.movement_type == MOVEMENT_IN,
            StockMovement.created_at >= start,
            StockMovement.created_at < end,
        )
    )
    stock_in_query = scope.apply(stock_in_query, StockMovement.branch_id, branch_id)
    stock_in = {
        pid: int(total or 0)
        for pid, total in stock_in_query.group_by(StockMovement.product_id).all()
    }

    # ==============================
    # RETURNS
    # ==============================
    returns_query = (
        db.query(ReturnItem.product_id, func.sum(ReturnItem.quantity))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(
            Return.return_date >= start,
            Return.return_date < end,
            Return.status != STATUS_REJECTED,
        )
    )
    returns_query = scope.apply(returns_query, Return.branch_id, branch_id)
    returned = {
        pid: int(total or 0)
        for pid, total in returns_query.group_by(ReturnItem.product_id).all()
    }

    # ==============================
    # CLOSING STOCK
    # ==============================
    closing_query = db.query(Inventory.product_id, func.sum(Inventory.quantity))
    closing_query = scope.apply(closing_query, Inventory.branch_id, branch_id)
    closing = {
        pid: int(total or 0)
        for pid, total in closing_query.group_by(Inventory.product_id).all()
    }

    # active products, plus inactive ones that still sold that day
    products = (
        db.query(Product)
        .filter((Product.is_active.is_(True)) | (Product.id.in_(list(sold) or [0])))
        .order_by(Product.name)
        .all()
    )

    # ==============================
    # BUILD RESPONSE
    # ==============================
    rows = []
    for product in products:
        closing_stock = closing.get(product.id, 0)
        product_in = stock_in.get(product.id, 0)
        product_sold = sold.get(product.id, 0)
        product_returned = returned.get(product.id, 0)
        opening_stock = max(0, closing_stock - product_in + product_sold - product_returned)

        if not any([opening_stock, product_in, product_sold, product_returned, closing_stock]):
            continue

        rows.append(schemas.DailySalesRow(
            no=len(rows) + 1,
            product_id=product.id,
            product_name=product.name,
            price=product.price or 0,
            opening_stock=opening_stock,
            stock_in=product_in,
            returned=product_returned,
            sold=product_sold,
            closing_stock=closing_stock,
            revenue=round(revenue.get(product.id, 0.0)),
            is_inactive=not product.is_active,
        ))

    return schemas.DailySalesReport(
        report_date=report_date,
        branch_id=branch_id,
        items=rows,
        summary=schemas.DailySalesSummary(
            total_revenue=sum(r.revenue for r in rows),
            total_sold=sum(r.sold for r in rows),
            total_returned=sum(r.returned for r in rows),
            total_stock_in=sum(r.stock_in for r in rows),
        ),
    )


# ==============================
# SALES SUMMARY
# ==============================
def sales_summary(
    db: Session,
    scope: BranchScope,
    start_date: date,
    end_date: date,
    branch_id: Optional[int] = None,
):
    start, _ = business_day_bounds(start_date)
    _, end = business_day_bounds(end_date)

    transactions = _paid_transactions(db, scope, branch_id, start, end).all()

    by_method = {}
    net_sales = 0.0
    total_discount = 0.0
    for txn in transactions:
        amount = txn.total_amount or 0
        net_sales += amount
        total_discount += txn.discount_amount or 0

        bucket = by_method.setdefault(txn.payment_method, {"count": 0, "amount": 0.0})
        bucket["count"] += 1
        bucket["amount"] += amount

    return schemas.SalesSummary(
        start_date=start_date,
        end_date=end_date,
        branch_id=branch_id,
        transaction_count=len(transactions),
        gross_sales=net_sales + total_discount,
        total_discount=total_discount,
        net_sales=net_sales,
        by_payment_method=by_method,
    )


# ==============================
# CSV EXPORT
# ==============================
def _to_csv(df: pd.DataFrame) -> str:
    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    return buffer.getvalue()


def export_daily_sales_csv(
    db: Session,
    report_date: date,
    scope: BranchScope,
    branch_id: Optional[int] = None,
) -> str:
    report = daily_sales_report(db, report_date, scope, branch_id)
    columns = list(schemas.DailySalesRow.model_fields)
    df = pd.DataFrame([r.model_dump() for r in report.items], columns=columns)
    return _to_csv(df)


def export_transactions_csv(
    db: Session,
    scope: BranchScope,
    start_date: date,
    end_date: date,
    branch_id: Optional[int] = None,
) -> str:
    start, _ = business_day_bounds(start_date)
    _, end = business_day_bounds(end_date)

    query = db.query(sales_models.Transaction).filter(
        sales_models.Transaction.transaction_date >= start,
        sales_models.Transaction.transaction_date < end,
    )
    query = scope.apply(query, sales_models.Transaction.branch_id, branch_id)
    transactions = query.order_by(sales_models.Transaction.transaction_date).all()

    columns = [
        "id", "transaction_date", "branch", "cashier", "total_amount",
        "discount_amount", "payment_method", "payment_status",
        "amount_paid", "amount_remaining", "status",
    ]
    records = [
        {
            "id": t.id,
            "transaction_date": t.transaction_date,
            "branch": t.branch.name if t.branch else None,
            "cashier": t.cashier.username if t.cashier else None,
            "total_amount": t.total_amount,
            "discount_amount": t.discount_amount,
            "payment_method": t.payment_method,
            "payment_status": t.payment_status,
            "amount_paid": t.amount_paid,
            "amount_remaining": t.amount_remaining,
            "status": t.status,
        }
        for t in transactions
    ]
    return _to_csv(pd.DataFrame(records, columns=columns))
