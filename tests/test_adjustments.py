import pytest
from fastapi import HTTPException

from bakery.stock.inventory.adjustments import schemas
from bakery.stock.inventory.adjustments import service as adjustment_service
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.movements import service as movement_service
from bakery.users.scope import BranchScope

from conftest import auth_headers, set_stock


def test_initial_stock_creates_row_adjustment_and_movement(db_session, bread, branch, admin):
    adjustment = adjustment_service.create_initial_stock(
        db_session,
        schemas.InitialStockCreate(product_id=bread.id, branch_id=branch.id, quantity=25),
        BranchScope.unrestricted(),
        performed_by=admin.id,
    )

    assert adjustment.adjustment_type == "init"
    assert inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id).quantity == 25
    assert movement_service.sum_movements(db_session, bread.id, branch.id) == (25, 1)


def test_zero_initial_stock_records_nothing(db_session, bread, branch):
    adjustment = adjustment_service.create_initial_stock(
        db_session,
        schemas.InitialStockCreate(product_id=bread.id, branch_id=branch.id, quantity=0),
        BranchScope.unrestricted(),
    )

    assert adjustment is None
    assert inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id) is None


def test_adjustment_cannot_go_negative(db_session, bread, branch):
    set_stock(db_session, bread.id, branch.id, 2)

    with pytest.raises(HTTPException) as exc:
        adjustment_service.create_adjustment(
            db_session,
            schemas.StockAdjustmentCreate(product_id=bread.id, branch_id=branch.id, quantity_change=-3, reason="Rusak"),
            BranchScope.unrestricted(),
        )
    assert exc.value.status_code == 400


def test_signed_adjustment(db_session, bread, branch, admin):
    set_stock(db_session, bread.id, branch.id, 10)

    adjustment = adjustment_service.create_adjustment(
        db_session,
        schemas.StockAdjustmentCreate(product_id=bread.id, branch_id=branch.id, quantity_change=-4, reason="Basi"),
        BranchScope.unrestricted(),
        performed_by=admin.id,
    )

    assert adjustment.adjustment_type == "adjust_out"
    assert inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id).quantity == 6

    listed = adjustment_service.list_adjustments(db_session, BranchScope.unrestricted())
    assert listed[0].performed_by_name == admin.username


def test_initial_stock_endpoint(client, bread, branch, production_head):
    response = client.post(
        "/stock/inventory/adjustments/initial",
        json={"product_id": bread.id, "branch_id": branch.id, "quantity": 5},
        headers=auth_headers(production_head),
    )

    assert response.status_code == 200
    assert response.json()["adjustment"]["quantity_change"] == 5


def test_movements_endpoint_lists_log(client, db_session, bread, branch, admin):
    inventory_service.add_stock(db_session, bread.id, branch.id, 3, reference_type="test", commit=True)

    response = client.get("/stock/inventory/movements/", headers=auth_headers(admin))

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["quantity_change"] == 3
