import pytest
from fastapi import HTTPException

from bakery.config import settings
from bakery.payments import schemas as payment_schemas
from bakery.payments import service as payment_service
from bakery.sales import schemas
from bakery.sales import service as sales_service
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import StockMovement

from conftest import auth_headers, scope_for, set_stock


def _cart(branch, *lines, **payment):
    return schemas.TransactionCreate(
        branch_id=branch.id,
        items=[{"product_id": p.id, "quantity": q} for p, q in lines],
        payment=schemas.PaymentData(**payment) if payment else schemas.PaymentData(),
    )


def _stock(db, product, branch):
    return inventory_service.get_inventory_for_pair(db, product.id, branch.id).quantity


def test_sale_decrements_stock_and_logs_out_movements(db_session, bread, cake, branch, cashier):
    set_stock(db_session, bread.id, branch.id, 10)
    set_stock(db_session, cake.id, branch.id, 2)

    result = sales_service.create_transaction(
        db_session, _cart(branch, (bread, 3), (cake, 2), (bread, 1)), scope_for(cashier), cashier_id=cashier.id
    )

    assert result.total_amount == bread.price * 4 + cake.price * 2
    assert result.payment_status == "paid"
    assert len(result.items) == 3
    assert _stock(db_session, bread, branch) == 6
    assert _stock(db_session, cake, branch) == 0

    movements = db_session.query(StockMovement).filter(StockMovement.reference_type == "transaction").all()
    assert sorted(m.quantity_change for m in movements) == [-4, -2]


def test_insufficient_stock_rolls_back_everything(db_session, bread, cake, branch, cashier):
    set_stock(db_session, bread.id, branch.id, 10)
    set_stock(db_session, cake.id, branch.id, 1)

    with pytest.raises(HTTPException) as exc:
        sales_service.create_transaction(
            db_session, _cart(branch, (bread, 3), (cake, 2)), scope_for(cashier)
        )

    assert exc.value.status_code == 400
    assert _stock(db_session, bread, branch) == 10
    assert db_session.query(StockMovement).count() == 0


def test_cashier_cannot_sell_at_other_branch(db_session, bread, other_branch, cashier):
    set_stock(db_session, bread.id, other_branch.id, 10)

    with pytest.raises(HTTPException) as exc:
        sales_service.create_transaction(db_session, _cart(other_branch, (bread, 1)), scope_for(cashier))
    assert exc.value.status_code == 403


def test_down_payment_then_settle(db_session, cake, branch, cashier):
    set_stock(db_session, cake.id, branch.id, 5)

    sale = sales_service.create_transaction(
        db_session,
        _cart(branch, (cake, 2), payment_type="down_payment", amount_paid=30000),
        scope_for(cashier),
    )
    assert sale.payment_status == "partial"
    assert sale.amount_remaining == cake.price * 2 - 30000

    with pytest.raises(HTTPException):
        payment_service.record_payment(
            db_session, sale.id, payment_schemas.PaymentCreate(amount_paid=10_000_000), scope_for(cashier)
        )

    settled = payment_service.record_payment(
        db_session, sale.id, payment_schemas.PaymentCreate(amount_paid=sale.amount_remaining), scope_for(cashier)
    )
    assert settled.payment_status == "paid"
    assert settled.amount_remaining == 0

    pending = sales_service.list_pending_transactions(db_session, scope_for(cashier))
    assert pending == []


def test_void_returns_stock(db_session, bread, branch, cashier, admin):
    set_stock(db_session, bread.id, branch.id, 10)
    sale = sales_service.create_transaction(db_session, _cart(branch, (bread, 4)), scope_for(cashier))

    result = sales_service.void_transactions(
        db_session, [sale.id, sale.id, 777], scope_for(admin), reason="Salah input"
    )

    assert result["voided"] == [sale.id]
    assert result["stock_returned"] == 4
    assert result["failed"] == [{"id": 777, "error": "Transaction not found"}]
    assert _stock(db_session, bread, branch) == 10
    assert movement_service.sum_movements(db_session, bread.id, branch.id) == (0, 2)

    again = sales_service.void_transactions(db_session, [sale.id], scope_for(admin))
    assert again["failed"][0]["error"] == "Transaction already cancelled"


def test_void_after_clamped_override_sale_restores_only_removed_stock(
    monkeypatch, db_session, bread, cake, branch, cashier, admin
):
    monkeypatch.setattr(settings, "ALLOW_NEGATIVE_STOCK_OVERRIDE", True)
    inventory_service.add_stock(db_session, bread.id, branch.id, 2, commit=True)
    inventory_service.add_stock(db_session, cake.id, branch.id, 5, commit=True)

    data = _cart(branch, (bread, 5), (cake, 1))
    data.override_reason = "Pre-ordered by phone"
    sale = sales_service.create_transaction(db_session, data, scope_for(cashier))

    assert _stock(db_session, bread, branch) == 0
    assert _stock(db_session, cake, branch) == 4

    result = sales_service.void_transactions(db_session, [sale.id], scope_for(admin))

    assert result["voided"] == [sale.id]
    assert result["stock_returned"] == 3
    assert _stock(db_session, bread, branch) == 2
    assert _stock(db_session, cake, branch) == 5
    assert movement_service.sum_movements(db_session, bread.id, branch.id) == (2, 3)


def test_checkout_endpoint(client, db_session, bread, branch, cashier):
    set_stock(db_session, bread.id, branch.id, 3)

    response = client.post(
        "/sales/",
        json={"branch_id": branch.id, "items": [{"product_id": bread.id, "quantity": 2}]},
        headers=auth_headers(cashier),
    )

    assert response.status_code == 201
    assert response.json()["cashier_name"] == cashier.username


def test_empty_cart_rejected(client, branch, cashier):
    response = client.post(
        "/sales/", json={"branch_id": branch.id, "items": []}, headers=auth_headers(cashier)
    )
    assert response.status_code == 400


def test_courier_cannot_sell(client, branch, courier):
    response = client.post(
        "/sales/", json={"branch_id": branch.id, "items": []}, headers=auth_headers(courier)
    )
    assert response.status_code == 403
