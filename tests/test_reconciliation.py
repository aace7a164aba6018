from sqlalchemy.orm.exc import StaleDataError

from bakery.reconciliation import schemas
from bakery.reconciliation import service as reconciliation_service
from bakery.stock.inventory import service as inventory_service
from bakery.stock.inventory.adjustments.models import StockAdjustment, ADJUST_RECONCILIATION
from bakery.stock.inventory.movements import service as movement_service
from bakery.stock.inventory.movements.models import StockMovement
from bakery.users.scope import BranchScope

from conftest import auth_headers, make_product, set_stock


def test_negative_stock_reported_once_as_critical(db_session, bread, cake, branch):
    set_stock(db_session, bread.id, branch.id, -2)
    set_stock(db_session, cake.id, branch.id, 5)

    report = reconciliation_service.check_consistency(db_session, BranchScope.unrestricted())

    negative = [i for i in report.issues if i.type == "negative_stock"]
    assert len(negative) == 1
    assert negative[0].severity == "critical"
    assert negative[0].product_id == bread.id
    assert negative[0].branch_id == branch.id


def test_duplicate_sku_flags_each_product(db_session, category):
    first = make_product(db_session, category, "Donat Gula", sku="DUP-1")
    second = make_product(db_session, category, "Donat Keju", sku="DUP-1")
    make_product(db_session, category, "Donat Coklat", sku="UNIQ-1")

    report = reconciliation_service.check_consistency(db_session, BranchScope.unrestricted())

    duplicates = [i for i in report.issues if i.type == "duplicate_sku"]
    assert {i.product_id for i in duplicates} == {first.id, second.id}
    assert all(i.severity == "critical" for i in duplicates)


def test_missing_uom_is_a_warning_for_active_products(db_session, category):
    active = make_product(db_session, category, "Croissant", uom=None)
    make_product(db_session, category, "Baguette", uom=None, is_active=False)

    report = reconciliation_service.check_consistency(db_session, BranchScope.unrestricted())

    missing = [i for i in report.issues if i.type == "missing_uom"]
    assert [i.product_id for i in missing] == [active.id]
    assert missing[0].severity == "warning"
    assert report.warning == 1


def test_reconcile_reports_drift_and_skips_rows_without_history(db_session, bread, cake, branch):
    inventory_service.add_stock(db_session, bread.id, branch.id, 10, commit=True)
    # drift: quantity changed without a movement
    inventory = inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id)
    inventory.quantity = 7
    db_session.commit()
    set_stock(db_session, cake.id, branch.id, 3)

    result = reconciliation_service.reconcile_stock(db_session, BranchScope.unrestricted())

    assert result.checked == 2
    assert result.skipped_no_history == 1
    assert len(result.discrepancies) == 1
    discrepancy = result.discrepancies[0]
    assert (discrepancy.current_stock, discrepancy.calculated_stock, discrepancy.difference) == (7, 10, -3)


def test_fix_sets_calculated_value_and_skips_stale_rows(db_session, bread, cake, branch, admin):
    inventory_service.add_stock(db_session, bread.id, branch.id, 10, commit=True)
    inventory_service.add_stock(db_session, cake.id, branch.id, 4, commit=True)
    for product_id, quantity in ((bread.id, 7), (cake.id, 1)):
        row = inventory_service.get_inventory_for_pair(db_session, product_id, branch.id)
        row.quantity = quantity
    db_session.commit()

    payload = schemas.FixRequest(discrepancies=[
        schemas.DiscrepancyFix(product_id=bread.id, branch_id=branch.id, current_stock=7, calculated_stock=10),
        # observed value no longer matches the row
        schemas.DiscrepancyFix(product_id=cake.id, branch_id=branch.id, current_stock=2, calculated_stock=4),
        schemas.DiscrepancyFix(product_id=999, branch_id=branch.id, current_stock=0, calculated_stock=1),
    ])
    result = reconciliation_service.fix_discrepancies(
        db_session, payload, BranchScope.unrestricted(), performed_by=admin.id
    )

    assert [f["product_id"] for f in result["fixed"]] == [bread.id]
    assert [s["product_id"] for s in result["stale"]] == [cake.id]
    assert [f["product_id"] for f in result["failed"]] == [999]

    assert inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id).quantity == 10
    assert inventory_service.get_inventory_for_pair(db_session, cake.id, branch.id).quantity == 1

    adjustment = db_session.query(StockAdjustment).one()
    assert adjustment.adjustment_type == ADJUST_RECONCILIATION
    assert adjustment.quantity_change == 3
    # movement log already matched the fixed value
    assert movement_service.sum_movements(db_session, bread.id, branch.id) == (10, 1)


def test_corrective_adjustment_writes_adjustment_and_movement(db_session, bread, branch, admin):
    set_stock(db_session, bread.id, branch.id, 12)

    result = reconciliation_service.create_corrective_adjustment(
        db_session,
        schemas.CorrectiveAdjustment(product_id=bread.id, branch_id=branch.id, correct_stock=9, reason="Stock opname"),
        BranchScope.unrestricted(),
        performed_by=admin.id,
    )

    assert (result["old_stock"], result["new_stock"]) == (12, 9)
    movement = db_session.query(StockMovement).one()
    assert movement.quantity_change == -3
    assert movement.reference_id == str(result["adjustment_id"])


def test_check_endpoint_forbidden_for_cashier(client, cashier):
    response = client.get("/reconciliation/check", headers=auth_headers(cashier))
    assert response.status_code == 403


def test_check_endpoint(client, db_session, bread, branch, admin):
    set_stock(db_session, bread.id, branch.id, -2)

    response = client.get("/reconciliation/check", headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["critical"] == 1
    assert body["issues"][0]["type"] == "negative_stock"


def test_fix_ignores_client_target_that_disagrees_with_movement_log(db_session, bread, branch, admin):
    inventory_service.add_stock(db_session, bread.id, branch.id, 10, commit=True)
    row = inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id)
    row.quantity = 7
    db_session.commit()

    payload = schemas.FixRequest(discrepancies=[
        schemas.DiscrepancyFix(product_id=bread.id, branch_id=branch.id, current_stock=7, calculated_stock=500),
    ])
    result = reconciliation_service.fix_discrepancies(
        db_session, payload, BranchScope.unrestricted(), performed_by=admin.id
    )

    assert result["fixed"] == []
    assert result["stale"] == [
        {"product_id": bread.id, "branch_id": branch.id, "current_stock": 7, "calculated_stock": 10}
    ]
    assert inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id).quantity == 7
    assert db_session.query(StockAdjustment).count() == 0

    after = reconciliation_service.reconcile_stock(db_session, BranchScope.unrestricted())
    assert [(d.current_stock, d.calculated_stock) for d in after.discrepancies] == [(7, 10)]


def test_fix_reports_version_conflict_as_failed(monkeypatch, db_session, bread, cake, branch, admin):
    inventory_service.add_stock(db_session, bread.id, branch.id, 10, commit=True)
    inventory_service.add_stock(db_session, cake.id, branch.id, 4, commit=True)
    for product_id, quantity in ((bread.id, 7), (cake.id, 1)):
        row = inventory_service.get_inventory_for_pair(db_session, product_id, branch.id)
        row.quantity = quantity
    db_session.commit()

    record_adjustment = reconciliation_service.adjustment_service.record_adjustment

    def conflict_on_bread(db, **kwargs):
        if kwargs["product_id"] == bread.id:
            raise StaleDataError("UPDATE statement on table 'inventory' expected to update 1 row(s); 0 were matched.")
        return record_adjustment(db, **kwargs)

    monkeypatch.setattr(reconciliation_service.adjustment_service, "record_adjustment", conflict_on_bread)

    payload = schemas.FixRequest(discrepancies=[
        schemas.DiscrepancyFix(product_id=bread.id, branch_id=branch.id, current_stock=7, calculated_stock=10),
        schemas.DiscrepancyFix(product_id=cake.id, branch_id=branch.id, current_stock=1, calculated_stock=4),
    ])
    result = reconciliation_service.fix_discrepancies(
        db_session, payload, BranchScope.unrestricted(), performed_by=admin.id
    )

    assert result["failed"] == [
        {"product_id": bread.id, "branch_id": branch.id, "error": inventory_service.STALE_WRITE_DETAIL}
    ]
    assert [f["product_id"] for f in result["fixed"]] == [cake.id]
    assert inventory_service.get_inventory_for_pair(db_session, bread.id, branch.id).quantity == 7
    assert inventory_service.get_inventory_for_pair(db_session, cake.id, branch.id).quantity == 4
