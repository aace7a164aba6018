from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File
from sqlalchemy.orm import Session
from typing import List, Optional

from bakery.database import get_db
from bakery.stock.products import schemas, service
from bakery.users.auth import get_current_user
from bakery.users.permissions import role_required, ADMIN
from bakery.users.schemas import UserDisplaySchema


router = APIRouter()


@router.post(
    "/",
    response_model=schemas.ProductOut,
    status_code=status.HTTP_201_CREATED
)
def create_product(
    product: schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN]))
):
    db_product = service.create_product(db, product)
    return service.to_product_out(db_product)


@router.get("/", response_model=List[schemas.ProductOut])
def list_products(
    category: Optional[str] = None,
    name: Optional[str] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(get_current_user)
):
    products = service.get_products(
        db, category=category, name=name, active_only=active_only
    )
    return [service.to_product_out(p) for p in products]


@router.post("/import")
def import_products(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN]))
):
    return service.import_products(db, file)


@router.post("/bulk-delete", response_model=schemas.ProductBulkDeleteResult)
def bulk_delete_products(
    payload: schemas.ProductBulkDelete,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN]))
):
    return service.delete_products(db, payload.product_ids)


@router.get("/{product_id}", response_model=schemas.ProductOut)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(get_current_user)
):
    product = service.get_product_by_id(db, product_id)

    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )

    return service.to_product_out(product)


@router.put("/{product_id}", response_model=schemas.ProductOut)
def update_product(
    product_id: int,
    product: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN]))
):
    updated_product = service.update_product(db, product_id, product)

    if not updated_product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )

    return service.to_product_out(updated_product)


@router.put("/{product_id}/status", response_model=schemas.ProductOut)
def update_product_status(
    product_id: int,
    payload: schemas.ProductStatusUpdate,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN]))
):
    product = service.update_product_status(db, product_id, payload.is_active)

    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    return service.to_product_out(product)


@router.delete("/{product_id}", response_model=schemas.ProductBulkDeleteResult)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN]))
):
    result = service.delete_products(db, [product_id])
    if result["failed"]:
        raise HTTPException(status_code=404, detail="Product not found")
    return result
