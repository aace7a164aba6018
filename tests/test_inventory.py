import pytest
from fastapi import HTTPException
from sqlalchemy.orm import sessionmaker

from bakery.stock.inventory import schemas
from bakery.stock.inventory.models import Inventory
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import StockMovement, MOVEMENT_ADJUSTMENT, MOVEMENT_OUT
from bakery.users.scope import BranchScope

from conftest import auth_headers, scope_for, set_stock


# ----------------------------
# compute_operation
# ----------------------------
@pytest.mark.parametrize("current,value,expected", [
    (10, 3, 7),
    (10, 10, 0),
    (5, 8, 0),
    (0, 1, 0),
])
def test_subtract_never_goes_negative(current, value, expected):
    assert inventory_service.compute_operation(current, "subtract", value) == expected


@pytest.mark.parametrize("current", [0, 1, 250])
def test_reset_always_zero(current):
    assert inventory_service.compute_operation(current, "reset", 99) == 0


def test_set_and_add():
    assert inventory_service.compute_operation(4, "set", 17) == 17
    assert inventory_service.compute_operation(4, "add", 17) == 21


def test_unknown_operation_rejected():
    with pytest.raises(HTTPException) as exc:
        inventory_service.compute_operation(4, "multiply", 2)
    assert exc.value.status_code == 400


def test_stock_status_thresholds():
    assert inventory_service.stock_status(31, 30) == "high"
    assert inventory_service.stock_status(30, 30) == "medium"
    assert inventory_service.stock_status(29, 30) == "low"


# ----------------------------
# add / remove
# ----------------------------
def test_add_stock_inserts_row_and_logs_movement(db_session, bread, branch):
    inventory = inventory_service.add_stock(
        db_session, bread.id, branch.id, 12, reference_type="test", commit=True
    )

    assert inventory.quantity == 12
    total, count = movement_service.sum_movements(db_session, bread.id, branch.id)
    assert (total, count) == (12, 1)


def test_remove_stock_clamps_and_logs_applied_change(db_session, bread, branch):
    set_stock(db_session, bread.id, branch.id, 3)

    inventory = inventory_service.remove_stock(
        db_session, bread.id, branch.id, 5, reference_type="transaction", commit=True
    )

    assert inventory.quantity == 0
    movement = db_session.query(StockMovement).one()
    assert movement.movement_type == MOVEMENT_OUT
    assert movement.quantity_change == -3


def test_version_increments_on_update(db_session, bread, branch):
    inventory = set_stock(db_session, bread.id, branch.id, 3)
    assert inventory.version == 1

    inventory_service.add_stock(db_session, bread.id, branch.id, 2, commit=True)

    db_session.refresh(inventory)
    assert inventory.version == 2


def _write_from_another_session(db_engine, inventory_id: int, quantity: int):
    other = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        row = other.get(Inventory, inventory_id)
        row.quantity = quantity
        other.commit()
    finally:
        other.close()


def test_stale_commit_is_rejected_with_409(db_engine, db_session, bread, branch):
    db_session.expire_on_commit = False
    inventory = set_stock(db_session, bread.id, branch.id, 5)
    db_session.commit()

    _write_from_another_session(db_engine, inventory.id, 9)

    # this session still holds version 1
    inventory.quantity = 6
    with pytest.raises(HTTPException) as exc:
        inventory_service.commit_or_rollback(db_session)

    assert exc.value.status_code == 409
    assert exc.value.detail == inventory_service.STALE_WRITE_DETAIL
    db_session.expire_all()
    assert inventory.quantity == 9
    assert inventory.version == 2


def test_quick_update_on_stale_row_returns_409(db_engine, db_session, bread, branch):
    db_session.expire_on_commit = False
    inventory = set_stock(db_session, bread.id, branch.id, 5)
    db_session.commit()

    _write_from_another_session(db_engine, inventory.id, 9)

    with pytest.raises(HTTPException) as exc:
        inventory_service.quick_update(
            db_session,
            schemas.QuickUpdate(inventory_id=inventory.id, operation="add", value=1),
            BranchScope.unrestricted(),
        )

    assert exc.value.status_code == 409
    db_session.expire_all()
    assert inventory.quantity == 9
    assert db_session.query(StockMovement).count() == 0


def test_bulk_edit_reports_stale_row_as_failed(db_engine, db_session, bread, cake, branch):
    db_session.expire_on_commit = False
    first = set_stock(db_session, bread.id, branch.id, 8)
    second = set_stock(db_session, cake.id, branch.id, 2)
    db_session.commit()

    _write_from_another_session(db_engine, first.id, 20)

    result = inventory_service.bulk_edit_inventory(
        db_session,
        schemas.BulkEdit(inventory_ids=[first.id, second.id], operation="add", value=5),
        BranchScope.unrestricted(),
    )

    assert result["failed"] == [{"id": first.id, "error": inventory_service.STALE_WRITE_DETAIL}]
    assert result["updated"] == [{"id": second.id, "old_qty": 2, "new_qty": 7}]
    db_session.expire_all()
    assert first.quantity == 20
    assert second.quantity == 7


# ----------------------------
# quick update / bulk edit
# ----------------------------
def test_quick_update_subtract_by_pair(db_session, bread, branch, admin):
    set_stock(db_session, bread.id, branch.id, 4)

    change = inventory_service.quick_update(
        db_session,
        schemas.QuickUpdate(product_id=bread.id, branch_id=branch.id, operation="subtract", value=10),
        scope_for(admin),
        performed_by=admin.id,
    )

    assert change.old_qty == 4
    assert change.new_qty == 0
    movement = db_session.query(StockMovement).one()
    assert movement.movement_type == MOVEMENT_ADJUSTMENT
    assert movement.quantity_change == -4


def test_quick_update_no_change_writes_no_movement(db_session, bread, branch):
    inventory = set_stock(db_session, bread.id, branch.id, 0)

    inventory_service.quick_update(
        db_session,
        schemas.QuickUpdate(inventory_id=inventory.id, operation="reset"),
        BranchScope.unrestricted(),
    )

    assert db_session.query(StockMovement).count() == 0


def test_quick_update_requires_target(db_session):
    with pytest.raises(HTTPException) as exc:
        inventory_service.quick_update(
            db_session,
            schemas.QuickUpdate(operation="reset"),
            BranchScope.unrestricted(),
        )
    assert exc.value.status_code == 400


def test_quick_update_outside_scope_forbidden(db_session, bread, branch, other_branch, cashier):
    inventory = set_stock(db_session, bread.id, other_branch.id, 5)

    with pytest.raises(HTTPException) as exc:
        inventory_service.quick_update(
            db_session,
            schemas.QuickUpdate(inventory_id=inventory.id, operation="add", value=1),
            scope_for(cashier),
        )
    assert exc.value.status_code == 403


def test_bulk_edit_reports_missing_rows(db_session, bread, cake, branch):
    first = set_stock(db_session, bread.id, branch.id, 8)
    second = set_stock(db_session, cake.id, branch.id, 2)

    result = inventory_service.bulk_edit_inventory(
        db_session,
        schemas.BulkEdit(inventory_ids=[first.id, 9999, second.id], operation="add", value=5),
        BranchScope.unrestricted(),
    )

    assert [u["new_qty"] for u in result["updated"]] == [13, 7]
    assert result["failed"] == [{"id": 9999, "error": "Inventory record not found"}]


# ----------------------------
# validation / kpis
# ----------------------------
def test_validate_cart_sums_repeated_lines(db_session, bread, branch):
    set_stock(db_session, bread.id, branch.id, 5)

    result = inventory_service.validate_cart_stock(
        db_session,
        [schemas.CartLine(product_id=bread.id, quantity=3), schemas.CartLine(product_id=bread.id, quantity=3)],
        branch.id,
    )

    assert result["is_valid"] is False
    assert result["insufficient"][0]["deficit"] == 1


def test_kpis_count_low_stock(db_session, bread, cake, branch):
    set_stock(db_session, bread.id, branch.id, 100)
    set_stock(db_session, cake.id, branch.id, 30)

    kpis = inventory_service.get_inventory_kpis(db_session, BranchScope.unrestricted())

    assert kpis.active_skus == 2
    assert kpis.total_units == 130
    assert kpis.low_stock_skus == 1


# ----------------------------
# API
# ----------------------------
def test_list_inventory_scoped_for_cashier(client, db_session, bread, branch, other_branch, cashier):
    set_stock(db_session, bread.id, branch.id, 5)
    set_stock(db_session, bread.id, other_branch.id, 9)

    response = client.get("/stock/inventory/", headers=auth_headers(cashier))

    assert response.status_code == 200
    rows = response.json()
    assert [r["branch_id"] for r in rows] == [branch.id]


def test_cashier_cannot_request_other_branch(client, other_branch, cashier):
    response = client.get(
        f"/stock/inventory/?branch_id={other_branch.id}", headers=auth_headers(cashier)
    )
    assert response.status_code == 403


def test_cashier_without_branch_is_refused(client, make_user):
    lonely = make_user("kasir2", "kasir_cabang")

    response = client.get("/stock/inventory/", headers=auth_headers(lonely))

    assert response.status_code == 403
    assert response.json()["detail"] == "Cashier account is not linked to a branch"


def test_quick_update_endpoint_requires_stock_role(client, db_session, bread, branch, cashier):
    set_stock(db_session, bread.id, branch.id, 5)

    response = client.post(
        "/stock/inventory/quick-update",
        json={"product_id": bread.id, "branch_id": branch.id, "operation": "reset"},
        headers=auth_headers(cashier),
    )

    assert response.status_code == 403


# ----------------------------
# movement log
# ----------------------------
def test_log_movements_adds_rows_to_the_open_unit_of_work(db_session, bread, cake, branch):
    movements = movement_service.log_movements(db_session, [
        {"product_id": bread.id, "branch_id": branch.id, "quantity_change": 4,
         "movement_type": "in", "reference_type": "delivery", "reference_id": 12},
        {"product_id": cake.id, "branch_id": branch.id, "quantity_change": 0,
         "movement_type": "return", "reference_type": "return", "reference_id": 12},
    ])

    assert all(m.id is not None for m in movements)
    assert {m.reference_id for m in movements} == {"12"}

    db_session.rollback()
    assert db_session.query(StockMovement).count() == 0
