from datetime import datetime
from typing import List, Optional

import pytz
from fastapi import HTTPException
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from bakery.config import settings
from bakery.branches.models import Branch
from bakery.orders import models, schemas, tracking
from bakery.production import schemas as production_schemas
from bakery.production import service as production_service
from bakery.stock.products.models import Product
from bakery.users.models import User
from bakery.users.permissions import OWNER, ADMIN, COURIER
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope


# ----------------------------
# Helpers
# ----------------------------
def business_today():
    return datetime.now(pytz.timezone(settings.TIMEZONE)).date()


def generate_order_number(db: Session, order_day, offset: int = 0) -> str:
    """``ORD-YYYYMMDD-NNNN``: one past the highest number issued that day."""
    prefix = f"ORD-{order_day.strftime('%Y%m%d')}-"
    numbers = [
        n for (n,) in db.query(models.Order.order_number)
        .filter(models.Order.order_number.like(f"{prefix}%"))
        .all()
    ]
    highest = 0
    for number in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1 + offset:04d}"


def _payment_fields(payment_type: str, total: float, dp_amount: float):
    """Return ``(payment_status, dp_amount, remaining_amount)``."""
    if payment_type == models.PAY_FULL:
        return "paid", 0.0, 0.0

    if payment_type == models.PAY_DP:
        if dp_amount <= 0 or dp_amount >= total:
            raise HTTPException(
                status_code=400,
                detail="Down payment must be greater than zero and less than the total"
            )
        return "partial", dp_amount, total - dp_amount

    return "pending", 0.0, total


def _build_items(db: Session, items: List[schemas.OrderItemCreate]):
    if not items:
        raise HTTPException(status_code=400, detail="Order must have at least one item")

    product_ids = {i.product_id for i in items}
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()}
    missing = sorted(product_ids - set(products))
    if missing:
        raise HTTPException(status_code=404, detail=f"Product not found: {missing}")

    built = []
    for item in items:
        unit_price = item.unit_price if item.unit_price is not None else (products[item.product_id].price or 0)
        built.append(models.OrderItem(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=unit_price,
            subtotal=unit_price * item.quantity,
            notes=item.notes,
        ))
    return built


def _ensure_order_in_scope(order: models.Order, scope: BranchScope):
    if scope.allows(order.branch_id):
        return
    if order.pickup_branch_id is not None and scope.allows(order.pickup_branch_id):
        return
    scope.ensure(order.branch_id)


def _ensure_editable(order: models.Order):
    if order.status in (models.ORDER_CANCELLED, models.ORDER_COMPLETED):
        raise HTTPException(status_code=400, detail=f"Order is already {order.status}")


def to_order_out(order: models.Order) -> schemas.OrderOut:
    out = schemas.OrderOut.model_validate(order)
    out.branch_name = order.branch.name if order.branch else None
    out.courier_name = order.courier.username if order.courier else None
    out.next_tracking_status = tracking.next_tracking_status(order.tracking_status)
    out.items = [
        schemas.OrderItemOut(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product.name if item.product else None,
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=item.subtotal,
            notes=item.notes,
        )
        for item in order.items
    ]
    return out


# ----------------------------
# Create
# ----------------------------
def create_order(
    db: Session,
    data: schemas.OrderCreate,
    scope: BranchScope,
    created_by: Optional[int] = None,
):
    scope.ensure(data.branch_id)

    branch_ids = {data.branch_id}
    if data.pickup_branch_id:
        branch_ids.add(data.pickup_branch_id)
    found = {bid for (bid,) in db.query(Branch.id).filter(Branch.id.in_(branch_ids)).all()}
    if found != branch_ids:
        raise HTTPException(status_code=404, detail="Branch not found")

    items = _build_items(db, data.items)
    total_amount = sum(i.subtotal for i in items) + data.shipping_cost
    payment_status, dp_amount, remaining = _payment_fields(
        data.payment_type, total_amount, data.dp_amount
    )

    order_day = business_today()
    order = None

    for attempt in range(settings.ORDER_NUMBER_RETRIES):
        order_number = generate_order_number(db, order_day, offset=attempt)
        try:
            with db.begin_nested():
                order = models.Order(
                    order_number=order_number,
                    branch_id=data.branch_id,
                    pickup_branch_id=data.pickup_branch_id or data.branch_id,
                    customer_name=data.customer_name.strip(),
                    customer_phone=data.customer_phone,
                    delivery_address=data.delivery_address,
                    order_date=data.order_date or order_day,
                    delivery_date=data.delivery_date,
                    shipping_cost=data.shipping_cost,
                    total_amount=total_amount,
                    payment_type=data.payment_type,
                    payment_status=payment_status,
                    dp_amount=dp_amount,
                    remaining_amount=remaining,
                    status=models.ORDER_NEW,
                    tracking_status=tracking.IN_PRODUCTION,
                    notes=data.notes,
                    created_by=created_by,
                    items=items,
                )
                db.add(order)
                db.flush()
            break
        except IntegrityError:
            logger.warning(f"Order number {order_number} taken, retrying ({attempt + 1})")
            order = None
            # the failed savepoint expunged the items with the order
            items = _build_items(db, data.items)

    if order is None:
        db.rollback()
        raise HTTPException(
            status_code=409,
            detail="Could not allocate an order number, please retry"
        )

    try:
        db.add(models.OrderTrackingHistory(
            order_id=order.id,
            old_tracking_status=None,
            new_tracking_status=tracking.IN_PRODUCTION,
            notes="Order created",
            updated_by=created_by,
        ))
        db.add(models.OrderStatusHistory(
            order_id=order.id,
            old_status=None,
            new_status=models.ORDER_NEW,
            notes="Order created",
            changed_by=created_by,
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(f"Order {order.order_number} created, total {order.total_amount}")
    return order


# ----------------------------
# Read
# ----------------------------
def _order_query(db: Session):
    return db.query(models.Order).options(
        joinedload(models.Order.items).joinedload(models.OrderItem.product),
        joinedload(models.Order.branch),
        joinedload(models.Order.courier),
    )


def list_orders(
    db: Session,
    scope: BranchScope,
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    tracking_status: Optional[str] = None,
    courier_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
):
    query = scope.apply(_order_query(db), models.Order.branch_id, branch_id)

    if status:
        query = query.filter(models.Order.status == status)
    if tracking_status:
        query = query.filter(models.Order.tracking_status == tracking_status)
    if courier_id is not None:
        query = query.filter(models.Order.courier_id == courier_id)

    return (
        query
        .order_by(models.Order.delivery_date.asc(), models.Order.id.asc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_order(db: Session, order_id: int, scope: BranchScope, lock: bool = False):
    query = _order_query(db) if not lock else db.query(models.Order).with_for_update()
    order = query.filter(models.Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    _ensure_order_in_scope(order, scope)
    return order


# ----------------------------
# Update
# ----------------------------
def update_order(db: Session, order_id: int, data: schemas.OrderUpdate, scope: BranchScope):
    order = get_order(db, order_id, scope)
    _ensure_editable(order)

    update_data = data.model_dump(exclude_unset=True, exclude={"items"})
    paid_so_far = (order.total_amount or 0) - (order.remaining_amount or 0)

    try:
        for field, value in update_data.items():
            if value is not None:
                setattr(order, field, value)

        if data.items is not None:
            order.items = _build_items(db, data.items)

        order.total_amount = sum(i.subtotal for i in order.items) + (order.shipping_cost or 0)
        order.remaining_amount = max(0.0, order.total_amount - paid_so_far)
        if order.remaining_amount == 0:
            order.payment_status = "paid"
        elif paid_so_far > 0:
            order.payment_status = "partial"
        else:
            order.payment_status = "pending"

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    return order


def _record_status_change(
    db: Session,
    order: models.Order,
    new_status: str,
    changed_by: Optional[int] = None,
    notes: Optional[str] = None,
):
    db.add(models.OrderStatusHistory(
        order_id=order.id,
        old_status=order.status,
        new_status=new_status,
        notes=notes,
        changed_by=changed_by,
    ))
    order.status = new_status


def _apply_status(
    db: Session,
    order: models.Order,
    new_status: str,
    changed_by: Optional[int] = None,
    notes: Optional[str] = None,
):
    if order.status == new_status:
        raise HTTPException(status_code=400, detail=f"Order is already {new_status}")
    _ensure_editable(order)
    _record_status_change(db, order, new_status, changed_by, notes)


def update_order_status(
    db: Session,
    order_id: int,
    new_status: str,
    scope: BranchScope,
    changed_by: Optional[int] = None,
    notes: Optional[str] = None,
):
    order = get_order(db, order_id, scope)
    try:
        _apply_status(db, order, new_status, changed_by, notes)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)

    logger.info(f"Order {order.order_number} status -> {new_status}")
    return order


def bulk_update_status(
    db: Session,
    order_ids: List[int],
    new_status: str,
    scope: BranchScope,
    changed_by: Optional[int] = None,
    notes: Optional[str] = None,
):
    updated, failed = [], []

    for order_id in dict.fromkeys(order_ids):
        try:
            with db.begin_nested():
                order = get_order(db, order_id, scope)
                _apply_status(db, order, new_status, changed_by, notes)
                db.flush()
            updated.append(order_id)
        except HTTPException as e:
            failed.append({"id": order_id, "error": e.detail})

    db.commit()
    logger.info(f"Bulk order status {new_status}: {len(updated)} updated, {len(failed)} failed")
    return {"updated": updated, "failed": failed}


# ----------------------------
# Tracking
# ----------------------------
def advance_tracking(
    db: Session,
    order_id: int,
    target: str,
    user: UserDisplaySchema,
    scope: BranchScope,
    notes: Optional[str] = None,
):
    order = get_order(db, order_id, scope, lock=True)

    if order.status == models.ORDER_CANCELLED:
        raise HTTPException(status_code=400, detail="Order is cancelled")

    tracking.validate_transition(user.role, order.tracking_status, target, order.payment_status)

    if user.role == COURIER and order.courier_id != user.id:
        raise HTTPException(status_code=403, detail="Order is not assigned to you")

    try:
        old_status = order.tracking_status
        order.tracking_status = target
        db.add(models.OrderTrackingHistory(
            order_id=order.id,
            old_tracking_status=old_status,
            new_tracking_status=target,
            notes=notes,
            updated_by=user.id,
        ))

        if target == tracking.DELIVERED:
            _record_status_change(
                db, order, models.ORDER_COMPLETED, changed_by=user.id, notes="Delivered"
            )

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(f"Order {order.order_number} tracking {old_status} -> {target} by {user.username}")
    return order


def get_tracking_history(db: Session, order_id: int, scope: BranchScope):
    order = get_order(db, order_id, scope)
    return order.tracking_history


def get_status_history(db: Session, order_id: int, scope: BranchScope):
    order = get_order(db, order_id, scope)
    return order.status_history


# ----------------------------
# Payment
# ----------------------------
def record_order_payment(db: Session, order_id: int, amount: float, scope: BranchScope):
    order = get_order(db, order_id, scope, lock=True)

    if order.status == models.ORDER_CANCELLED:
        raise HTTPException(status_code=400, detail="Order is cancelled")

    remaining = order.remaining_amount or 0
    if remaining <= 0:
        raise HTTPException(status_code=400, detail="Order is already paid")
    if amount > remaining:
        raise HTTPException(
            status_code=400,
            detail=f"Payment exceeds remaining amount ({remaining})"
        )

    order.remaining_amount = remaining - amount
    order.payment_status = "paid" if order.remaining_amount <= 0 else "partial"
    db.commit()
    db.refresh(order)

    logger.info(f"Order {order.order_number} payment {amount}, remaining {order.remaining_amount}")
    return order


# ----------------------------
# Courier
# ----------------------------
def assign_courier(
    db: Session,
    order_id: int,
    courier_id: Optional[int],
    user: UserDisplaySchema,
    scope: BranchScope,
):
    order = get_order(db, order_id, scope, lock=True)
    _ensure_editable(order)

    if user.role == COURIER:
        # couriers can only pick up an unassigned, ready order for themselves
        if courier_id != user.id:
            raise HTTPException(status_code=403, detail="Couriers can only assign themselves")
        if order.courier_id is not None:
            raise HTTPException(status_code=409, detail="Order already has a courier")
        if order.tracking_status != tracking.READY_TO_SHIP:
            raise HTTPException(status_code=400, detail="Order is not ready to ship")
    elif user.role not in (OWNER, ADMIN):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    if courier_id is not None:
        courier = db.query(User).filter(User.id == courier_id).first()
        if not courier or courier.role != COURIER or not courier.is_active:
            raise HTTPException(status_code=404, detail="Courier not found")

    order.courier_id = courier_id
    db.commit()
    db.refresh(order)

    logger.info(f"Order {order.order_number} courier -> {courier_id}")
    return order


# ----------------------------
# Production
# ----------------------------
def create_production_request_for_order(
    db: Session,
    order_id: int,
    data: schemas.OrderProductionRequest,
    scope: BranchScope,
    requested_by: Optional[int] = None,
):
    order = get_order(db, order_id, scope)
    _ensure_editable(order)

    if data.product_id not in {item.product_id for item in order.items}:
        raise HTTPException(status_code=400, detail="Product is not part of this order")

    return production_service.create_production_request(
        db,
        production_schemas.ProductionRequestCreate(
            product_id=data.product_id,
            branch_id=order.branch_id,
            quantity_requested=data.quantity,
            production_date=data.production_date or order.delivery_date,
            notes=data.notes or f"For order {order.order_number}",
            order_id=order.id,
        ),
        BranchScope.unrestricted(),
        requested_by=requested_by,
    )
