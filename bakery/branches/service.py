from fastapi import HTTPException, status
from loguru import logger
from sqlalchemy.orm import Session

from bakery.branches import models, schemas
from bakery.sales.models import Transaction
from bakery.stock.inventory.models import Inventory
from bakery.users.scope import BranchScope


def create_branch(db: Session, branch: schemas.BranchCreate):
    name = branch.name.strip()

    existing = db.query(models.Branch).filter(models.Branch.name == name).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Branch '{name}' already exists"
        )

    new_branch = models.Branch(
        name=name,
        address=branch.address,
        phone=branch.phone,
    )
    db.add(new_branch)
    db.commit()
    db.refresh(new_branch)

    logger.info(f"Branch created: {new_branch.name} (id={new_branch.id})")
    return new_branch


def list_branches(db: Session, scope: BranchScope):
    query = db.query(models.Branch)
    query = scope.apply(query, models.Branch.id)
    return query.order_by(models.Branch.name).all()


def get_branch(db: Session, branch_id: int):
    branch = db.query(models.Branch).filter(models.Branch.id == branch_id).first()
    if not branch:
        raise HTTPException(status_code=404, detail="Branch not found")
    return branch


def update_branch(db: Session, branch_id: int, branch_update: schemas.BranchUpdate):
    branch = get_branch(db, branch_id)

    data = branch_update.model_dump(exclude_unset=True)
    if data.get("name"):
        data["name"] = data["name"].strip()
        duplicate = (
            db.query(models.Branch)
            .filter(models.Branch.name == data["name"], models.Branch.id != branch_id)
            .first()
        )
        if duplicate:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Another branch with this name already exists"
            )

    for key, value in data.items():
        setattr(branch, key, value)

    db.commit()
    db.refresh(branch)
    return branch


def delete_branch(db: Session, branch_id: int):
    branch = get_branch(db, branch_id)

    if db.query(Inventory).filter(Inventory.branch_id == branch_id).first():
        raise HTTPException(
            status_code=400,
            detail="Cannot delete branch with inventory records"
        )

    if db.query(Transaction).filter(Transaction.branch_id == branch_id).first():
        raise HTTPException(
            status_code=400,
            detail="Cannot delete branch with existing transactions"
        )

    db.delete(branch)
    db.commit()

    logger.info(f"Branch {branch_id} deleted")
    return {"message": "Branch deleted successfully"}
