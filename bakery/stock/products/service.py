import re
from typing import List, Optional

import pandas as pd
from fastapi import HTTPException, UploadFile
from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from bakery.config import settings
from bakery.stock.products import models, schemas
from bakery.stock.products.models import Product
from bakery.stock.category.models import Category
from bakery.stock.inventory.models import Inventory
from bakery.sales.models import TransactionItem
from bakery.orders.models import OrderItem
from bakery.production.models import ProductionRequest


def generate_sku(name: str, product_id: int) -> str:
    """Initials of up to three words, upper-cased, then the zero-padded id: ``RCK-0012``."""
    words = [w for w in re.split(r"\s+", name.strip()) if w]
    initials = "".join(w[0] for w in words[:3]).upper() or "P"
    return f"{initials}-{product_id:04d}"


def to_product_out(product: Product) -> schemas.ProductOut:
    return schemas.ProductOut(
        id=product.id,
        name=product.name,
        category=product.category.name if product.category else None,
        price=product.price or 0,
        sku=product.sku,
        uom=product.uom or settings.DEFAULT_UOM,
        reorder_point=(
            product.reorder_point
            if product.reorder_point is not None
            else settings.DEFAULT_REORDER_POINT
        ),
        is_active=product.is_active,
        created_at=product.created_at,
    )


def _get_category_by_name(db: Session, name: str) -> Category:
    category = db.query(Category).filter(Category.name == name.strip()).first()
    if not category:
        raise HTTPException(
            status_code=400,
            detail=f"Category '{name}' does not exist."
        )
    return category


def _ensure_sku_free(db: Session, sku: str, exclude_id: Optional[int] = None):
    query = db.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail=f"SKU '{sku}' is already in use")


def create_product(db: Session, product: schemas.ProductCreate):

    # 1️⃣ Find category by name
    category = _get_category_by_name(db, product.category)

    # 2️⃣ Duplicate check (name + category)
    exists = (
        db.query(models.Product)
        .filter(
            models.Product.name == product.name.strip(),
            models.Product.category_id == category.id
        )
        .first()
    )

    if exists:
        raise HTTPException(
            status_code=400,
            detail="Product already exists in this category."
        )

    sku = product.sku.strip() if product.sku and product.sku.strip() else None
    if sku:
        _ensure_sku_free(db, sku)

    # 3️⃣ Create product
    db_product = models.Product(
        name=product.name.strip(),
        category_id=category.id,
        price=product.price,
        sku=sku,
        uom=product.uom.strip() if product.uom else None,
        reorder_point=product.reorder_point,
    )

    try:
        db.add(db_product)
        db.flush()  # get product ID before generating the SKU

        # 4️⃣ Generated SKU needs the id
        if not db_product.sku:
            db_product.sku = generate_sku(db_product.name, db_product.id)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(db_product)
    logger.info(f"Product created: {db_product.name} ({db_product.sku})")
    return db_product


def get_products(
    db: Session,
    category: Optional[str] = None,
    name: Optional[str] = None,
    active_only: bool = False,
):
    query = db.query(models.Product).options(joinedload(models.Product.category))

    if active_only:
        query = query.filter(models.Product.is_active.is_(True))

    if category:
        query = query.join(models.Product.category).filter(
            func.lower(Category.name) == category.lower().strip()
        )

    if name:
        query = query.filter(
            func.lower(models.Product.name).contains(name.lower().strip())
        )

    return query.order_by(models.Product.name.asc()).all()


def get_product_by_id(db: Session, product_id: int):
    return (
        db.query(models.Product)
        .options(joinedload(models.Product.category))
        .filter(models.Product.id == product_id)
        .first()
    )


def update_product(
    db: Session,
    product_id: int,
    product: schemas.ProductUpdate
):
    db_product = get_product_by_id(db, product_id)

    if not db_product:
        return None

    update_data = product.model_dump(exclude_unset=True)

    # -----------------------
    # Handle category update
    # -----------------------
    if "category" in update_data:
        category_name = update_data.pop("category")
        if category_name:
            db_product.category_id = _get_category_by_name(db, category_name).id

    # -----------------------
    # Duplicate protection
    # -----------------------
    new_name = (update_data.get("name") or db_product.name).strip()
    update_data["name"] = new_name

    duplicate = (
        db.query(models.Product)
        .filter(
            models.Product.id != product_id,
            models.Product.name == new_name,
            models.Product.category_id == db_product.category_id
        )
        .first()
    )

    if duplicate:
        raise HTTPException(
            status_code=400,
            detail="Product with same name already exists in this category."
        )

    if update_data.get("sku"):
        update_data["sku"] = update_data["sku"].strip()
        _ensure_sku_free(db, update_data["sku"], exclude_id=product_id)

    if "price" in update_data and update_data["price"] is not None and update_data["price"] < 0:
        raise HTTPException(status_code=400, detail="Price cannot be negative.")

    # -----------------------
    # Update remaining fields
    # -----------------------
    for field, value in update_data.items():
        setattr(db_product, field, value)

    db.commit()
    db.refresh(db_product)

    return db_product


def update_product_status(
    db: Session,
    product_id: int,
    is_active: bool
):
    product = get_product_by_id(db, product_id)

    if not product:
        return None

    product.is_active = is_active
    db.commit()
    db.refresh(product)

    return product


def _is_referenced(db: Session, product_id: int) -> bool:
    for column in (
        Inventory.product_id,
        TransactionItem.product_id,
        OrderItem.product_id,
        ProductionRequest.product_id,
    ):
        if db.query(column).filter(column == product_id).first():
            return True
    return False


def delete_products(db: Session, product_ids: List[int]):
    """
    Bulk delete. Products that still have inventory, sales, orders or
    production history are archived (is_active = False) instead of deleted.
    """
    deleted, archived, failed = [], [], []

    for product_id in dict.fromkeys(product_ids):
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            failed.append({"id": product_id, "error": "Product not found"})
            continue

        try:
            with db.begin_nested():
                if _is_referenced(db, product_id):
                    product.is_active = False
                    archived.append(product_id)
                else:
                    db.delete(product)
                    deleted.append(product_id)
        except Exception as e:
            logger.warning(f"Failed to delete product {product_id}: {e}")
            failed.append({"id": product_id, "error": str(e)})

    db.commit()

    logger.info(
        f"Product bulk delete: {len(deleted)} deleted, "
        f"{len(archived)} archived, {len(failed)} failed"
    )
    return {"deleted": deleted, "archived": archived, "failed": failed}


# --------------------------------------------------
# Helper: Clean price values from a spreadsheet
# --------------------------------------------------
def clean_price(value):
    """
    Accepts: int, float, str (Rp12,500.00), or NaN
    Returns: float
    """
    if value is None or pd.isna(value):
        return 0.0

    if isinstance(value, (int, float)):
        return float(value)

    value = str(value)
    value = re.sub(r"[^\d.]", "", value)

    try:
        return float(value)
    except ValueError:
        return 0.0


def _read_upload(file: UploadFile) -> pd.DataFrame:
    filename = (file.filename or "").lower()
    if filename.endswith(".csv"):
        return pd.read_csv(file.file)
    if filename.endswith((".xlsx", ".xls")):
        return pd.read_excel(file.file)
    raise HTTPException(
        status_code=400,
        detail="Invalid file type. Upload .csv, .xlsx or .xls"
    )


# --------------------------------------------------
# Main import
# --------------------------------------------------
def import_products(db: Session, file: UploadFile):
    try:
        df = _read_upload(file)

        # Normalize column names (important!)
        df.columns = [str(c).strip().lower() for c in df.columns]

        required_columns = {"name", "category", "price"}
        if not required_columns.issubset(df.columns):
            raise HTTPException(
                status_code=400,
                detail=f"File must contain columns: {sorted(required_columns)}"
            )

        def normalize(text: str) -> str:
            return " ".join(text.lower().strip().split())

        def optional(row, column):
            if column not in df.columns or pd.isna(row[column]):
                return None
            return str(row[column]).strip() or None

        # -----------------------
        # Cache lookups
        # -----------------------
        categories = {normalize(c.name): c.id for c in db.query(Category).all()}
        if not categories:
            raise HTTPException(
                status_code=400,
                detail="No categories found. Create categories first."
            )

        existing_products = {
            (p.name.lower().strip(), p.category_id)
            for p in db.query(Product.name, Product.category_id).all()
        }
        existing_skus = {
            s for (s,) in db.query(Product.sku).filter(Product.sku.isnot(None)).all()
        }

        products_to_add = []
        skipped = []

        # -----------------------
        # Process rows
        # -----------------------
        for index, row in df.iterrows():
            line = index + 2  # header is line 1

            if pd.isna(row["name"]) or pd.isna(row["category"]):
                skipped.append({"row": line, "reason": "Missing name or category"})
                continue

            name = str(row["name"]).strip()
            category_key = normalize(str(row["category"]))

            if category_key not in categories:
                skipped.append({"row": line, "reason": f"Unknown category '{row['category']}'"})
                continue

            category_id = categories[category_key]
            key = (name.lower(), category_id)
            if key in existing_products:
                skipped.append({"row": line, "reason": f"Duplicate product '{name}'"})
                continue

            sku = optional(row, "sku")
            if sku and sku in existing_skus:
                skipped.append({"row": line, "reason": f"Duplicate SKU '{sku}'"})
                continue

            reorder_point = optional(row, "reorder_point")

            products_to_add.append(Product(
                name=name,
                category_id=category_id,
                price=clean_price(row["price"]),
                sku=sku,
                uom=optional(row, "uom"),
                reorder_point=int(float(reorder_point)) if reorder_point else None,
            ))
            existing_products.add(key)
            if sku:
                existing_skus.add(sku)

        if not products_to_add:
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "Import unsuccessful",
                    "imported": 0,
                    "skipped": skipped,
                    "reason": "All rows were invalid or duplicated"
                }
            )

        db.add_all(products_to_add)
        db.flush()
        for product in products_to_add:
            if not product.sku:
                product.sku = generate_sku(product.name, product.id)
        db.commit()

        logger.info(f"Imported {len(products_to_add)} products, skipped {len(skipped)}")
        return {
            "message": "Import completed successfully",
            "imported": len(products_to_add),
            "skipped": skipped
        }

    except HTTPException:
        raise

    except Exception as e:
        db.rollback()
        logger.exception("Product import failed")
        raise HTTPException(
            status_code=500,
            detail=f"Import failed: {str(e)}"
        )
