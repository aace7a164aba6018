import io

from bakery.stock.products import service as product_service
from bakery.stock.products.models import Product

from conftest import auth_headers, set_stock


def test_generate_sku():
    assert product_service.generate_sku("Roti Coklat Keju Spesial", 12) == "RCK-0012"
    assert product_service.generate_sku("donat", 3) == "D-0003"


def test_clean_price():
    assert product_service.clean_price("Rp12,500.00") == 12500.0
    assert product_service.clean_price(7) == 7.0
    assert product_service.clean_price(None) == 0.0


def test_create_product_generates_sku(client, category, admin):
    response = client.post(
        "/stock/products/",
        json={"name": "Roti Sobek", "category": category.name, "price": 15000},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["sku"] == f"RS-{body['id']:04d}"
    assert body["uom"] == "pcs"
    assert body["reorder_point"] == 30


def test_duplicate_sku_conflict(client, bread, category, admin):
    response = client.post(
        "/stock/products/",
        json={"name": "Roti Lain", "category": category.name, "price": 1000, "sku": bread.sku},
        headers=auth_headers(admin),
    )
    assert response.status_code == 409


def test_unknown_category_rejected(client, admin):
    response = client.post(
        "/stock/products/",
        json={"name": "Roti", "category": "Tidak Ada", "price": 1000},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400


def test_cashier_cannot_create_products(client, category, cashier):
    response = client.post(
        "/stock/products/",
        json={"name": "Roti", "category": category.name, "price": 1000},
        headers=auth_headers(cashier),
    )
    assert response.status_code == 403


def test_bulk_delete_archives_referenced_products(db_session, bread, cake, branch):
    set_stock(db_session, bread.id, branch.id, 1)

    result = product_service.delete_products(db_session, [bread.id, cake.id, 404])

    assert result["archived"] == [bread.id]
    assert result["deleted"] == [cake.id]
    assert result["failed"] == [{"id": 404, "error": "Product not found"}]
    assert db_session.get(Product, bread.id).is_active is False
    assert db_session.get(Product, cake.id) is None


def test_import_csv_reports_skipped_rows(client, bread, category, admin):
    content = (
        "name,category,price,uom\n"
        f"Kue Lapis,{category.name},\"Rp8,000\",pcs\n"
        f"{bread.name},{category.name},12000,pcs\n"
        "Kue Sus,Minuman,5000,pcs\n"
    )
    response = client.post(
        "/stock/products/import",
        files={"file": ("products.csv", io.BytesIO(content.encode()), "text/csv")},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["imported"] == 1
    assert [s["row"] for s in body["skipped"]] == [3, 4]
