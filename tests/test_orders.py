import re
from datetime import date, timedelta

import pytest
from fastapi import HTTPException

from bakery.orders import models, schemas
from bakery.orders import service as order_service
from bakery.orders import tracking
from bakery.production.models import ProductionRequest

from conftest import auth_headers, display, scope_for


def _order_data(branch, product, **overrides):
    data = {
        "branch_id": branch.id,
        "customer_name": "Ibu Sari",
        "customer_phone": "0812000000",
        "delivery_date": date.today() + timedelta(days=2),
        "shipping_cost": 15000,
        "items": [{"product_id": product.id, "quantity": 10}],
    }
    data.update(overrides)
    return schemas.OrderCreate(**data)


@pytest.fixture
def order(db_session, branch, cake, admin):
    return order_service.create_order(
        db_session,
        _order_data(branch, cake, payment_type="full_payment"),
        scope_for(admin),
        created_by=admin.id,
    )


def _advance(db, order, target, user):
    return order_service.advance_tracking(db, order.id, target, display(user), scope_for(user))


# ----------------------------
# Create
# ----------------------------
def test_create_order_totals_and_number(db_session, order, cake):
    assert re.fullmatch(r"ORD-\d{8}-0001", order.order_number)
    assert order.total_amount == cake.price * 10 + 15000
    assert order.status == models.ORDER_NEW
    assert order.tracking_status == tracking.IN_PRODUCTION
    assert order.payment_status == "paid"
    assert order.remaining_amount == 0
    assert len(order.tracking_history) == 1


def test_order_numbers_increment(db_session, order, branch, cake, admin):
    second = order_service.create_order(db_session, _order_data(branch, cake), scope_for(admin))

    assert second.order_number.endswith("-0002")
    assert second.order_number[:12] == order.order_number[:12]


def test_cash_on_delivery_leaves_full_balance(db_session, branch, bread, admin):
    created = order_service.create_order(db_session, _order_data(branch, bread), scope_for(admin))

    assert created.payment_status == "pending"
    assert created.remaining_amount == created.total_amount


def test_down_payment_must_be_partial(db_session, branch, bread, admin):
    with pytest.raises(HTTPException) as exc:
        order_service.create_order(
            db_session,
            _order_data(branch, bread, payment_type="dp", dp_amount=10_000_000),
            scope_for(admin),
        )
    assert exc.value.status_code == 400

    created = order_service.create_order(
        db_session, _order_data(branch, bread, payment_type="dp", dp_amount=50000), scope_for(admin)
    )
    assert created.payment_status == "partial"
    assert created.remaining_amount == created.total_amount - 50000


def test_order_without_items_rejected(db_session, branch, bread, admin):
    with pytest.raises(HTTPException) as exc:
        order_service.create_order(db_session, _order_data(branch, bread, items=[]), scope_for(admin))
    assert exc.value.status_code == 400


# ----------------------------
# Tracking
# ----------------------------
def test_full_lifecycle_completes_order(db_session, order, production_head, courier, cashier, admin):
    order_service.assign_courier(db_session, order.id, courier.id, display(admin), scope_for(admin))

    _advance(db_session, order, tracking.READY_TO_SHIP, production_head)
    _advance(db_session, order, tracking.IN_TRANSIT, courier)
    _advance(db_session, order, tracking.ARRIVED_AT_STORE, courier)
    finished = _advance(db_session, order, tracking.DELIVERED, cashier)

    assert finished.tracking_status == tracking.DELIVERED
    assert finished.status == models.ORDER_COMPLETED

    history = order_service.get_tracking_history(db_session, order.id, scope_for(admin))
    assert [h.new_tracking_status for h in history] == tracking.TRACKING_STATUS_ORDER

    statuses = order_service.get_status_history(db_session, order.id, scope_for(admin))
    assert [(s.old_status, s.new_status) for s in statuses] == [
        (None, models.ORDER_NEW),
        (models.ORDER_NEW, models.ORDER_COMPLETED),
    ]
    assert statuses[-1].changed_by == cashier.id


def test_skipping_a_stage_is_rejected(db_session, order, admin):
    with pytest.raises(HTTPException) as exc:
        _advance(db_session, order, tracking.IN_TRANSIT, admin)
    assert exc.value.status_code == 409

    db_session.refresh(order)
    assert order.tracking_status == tracking.IN_PRODUCTION


def test_courier_only_moves_assigned_orders(db_session, order, courier, admin):
    _advance(db_session, order, tracking.READY_TO_SHIP, admin)

    with pytest.raises(HTTPException) as exc:
        _advance(db_session, order, tracking.IN_TRANSIT, courier)
    assert exc.value.status_code == 403


def test_courier_self_assigns_ready_order(db_session, order, courier, admin):
    with pytest.raises(HTTPException) as exc:
        order_service.assign_courier(db_session, order.id, courier.id, display(courier), scope_for(courier))
    assert exc.value.status_code == 400

    _advance(db_session, order, tracking.READY_TO_SHIP, admin)
    assigned = order_service.assign_courier(
        db_session, order.id, courier.id, display(courier), scope_for(courier)
    )
    assert assigned.courier_id == courier.id


def test_unpaid_order_cannot_be_delivered(db_session, branch, bread, admin):
    created = order_service.create_order(db_session, _order_data(branch, bread), scope_for(admin))
    for target in tracking.TRACKING_STATUS_ORDER[1:4]:
        _advance(db_session, created, target, admin)

    with pytest.raises(HTTPException) as exc:
        _advance(db_session, created, tracking.DELIVERED, admin)
    assert exc.value.status_code == 400

    order_service.record_order_payment(db_session, created.id, created.remaining_amount, scope_for(admin))
    delivered = _advance(db_session, created, tracking.DELIVERED, admin)
    assert delivered.status == models.ORDER_COMPLETED


# ----------------------------
# Updates
# ----------------------------
def test_update_items_recomputes_total(db_session, branch, bread, admin):
    created = order_service.create_order(
        db_session, _order_data(branch, bread, payment_type="dp", dp_amount=20000), scope_for(admin)
    )

    updated = order_service.update_order(
        db_session,
        created.id,
        schemas.OrderUpdate(items=[{"product_id": bread.id, "quantity": 2}], shipping_cost=0),
        scope_for(admin),
    )

    assert updated.total_amount == bread.price * 2
    assert updated.remaining_amount == bread.price * 2 - 20000


def test_cancelled_order_is_frozen(db_session, order, admin):
    order_service.update_order_status(db_session, order.id, models.ORDER_CANCELLED, scope_for(admin))

    with pytest.raises(HTTPException):
        order_service.update_order(
            db_session, order.id, schemas.OrderUpdate(notes="late"), scope_for(admin)
        )
    with pytest.raises(HTTPException):
        _advance(db_session, order, tracking.READY_TO_SHIP, admin)


def test_bulk_status_reports_failures(db_session, order, admin):
    result = order_service.bulk_update_status(
        db_session, [order.id, 4040], models.ORDER_CANCELLED, scope_for(admin)
    )

    assert result["updated"] == [order.id]
    assert result["failed"] == [{"id": 4040, "error": "Order not found"}]

    again = order_service.bulk_update_status(
        db_session, [order.id], models.ORDER_CANCELLED, scope_for(admin), changed_by=admin.id
    )
    assert again["failed"] == [{"id": order.id, "error": "Order is already cancelled"}]
    statuses = order_service.get_status_history(db_session, order.id, scope_for(admin))
    assert [s.new_status for s in statuses] == [models.ORDER_NEW, models.ORDER_CANCELLED]


def test_production_request_for_order(db_session, order, cake, admin):
    request = order_service.create_production_request_for_order(
        db_session,
        order.id,
        schemas.OrderProductionRequest(product_id=cake.id, quantity=10),
        scope_for(admin),
        requested_by=admin.id,
    )

    assert request.order_id == order.id
    assert request.production_date == order.delivery_date
    assert db_session.query(ProductionRequest).count() == 1


# ----------------------------
# API
# ----------------------------
def test_cashier_sees_only_own_branch_orders(client, db_session, branch, other_branch, bread, admin, cashier):
    order_service.create_order(db_session, _order_data(branch, bread), scope_for(admin))
    order_service.create_order(db_session, _order_data(other_branch, bread), scope_for(admin))

    response = client.get("/orders/", headers=auth_headers(cashier))

    assert response.status_code == 200
    assert [o["branch_id"] for o in response.json()] == [branch.id]


def test_tracking_endpoint(client, order, admin):
    response = client.put(
        f"/orders/{order.id}/tracking",
        json={"tracking_status": tracking.READY_TO_SHIP},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["tracking_status"] == tracking.READY_TO_SHIP
    assert body["next_tracking_status"] == tracking.IN_TRANSIT


def test_status_change_is_recorded_in_history(db_session, order, admin):
    order_service.update_order_status(
        db_session, order.id, models.ORDER_CANCELLED, scope_for(admin),
        changed_by=admin.id, notes="Customer cancelled by phone",
    )

    history = order_service.get_status_history(db_session, order.id, scope_for(admin))

    assert len(history) == 2
    latest = history[-1]
    assert (latest.old_status, latest.new_status) == (models.ORDER_NEW, models.ORDER_CANCELLED)
    assert latest.changed_by == admin.id
    assert latest.notes == "Customer cancelled by phone"


def test_status_history_endpoint(client, order, admin):
    response = client.put(
        f"/orders/{order.id}/status",
        json={"status": models.ORDER_COMPLETED, "notes": "Picked up"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200

    response = client.get(f"/orders/{order.id}/status-history", headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert [h["new_status"] for h in body] == [models.ORDER_NEW, models.ORDER_COMPLETED]
    assert body[-1]["notes"] == "Picked up"
    assert body[-1]["changed_by"] == admin.id
