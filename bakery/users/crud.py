from fastapi import HTTPException
from sqlalchemy.orm import Session

from bakery.users.models import User, UserBranch
from bakery.users import schemas as user_schema
from bakery.branches.models import Branch


def create_user(db: Session, user: user_schema.UserSchema, hashed_password: str):
    new_user = User(
        username=user.username,
        full_name=user.full_name,
        hashed_password=hashed_password,
        role=user.role,
    )
    db.add(new_user)
    db.flush()

    if user.branch_ids:
        _replace_branches(db, new_user, user.branch_ids)

    db.commit()
    db.refresh(new_user)
    return new_user


def get_user_by_username(db: Session, username: str):
    return db.query(User).filter(User.username == username).first()


def get_user(db: Session, user_id: int):
    return db.query(User).filter(User.id == user_id).first()


def get_all_users(db: Session, skip: int = 0, limit: int = 50, role: str | None = None):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.username).offset(skip).limit(limit).all()
    return [user_schema.UserDisplaySchema.model_validate(u) for u in users]


def update_user(db: Session, username: str, updated_user: user_schema.UserUpdateSchema, hashed_password: str = None):
    user = get_user_by_username(db, username)
    if not user:
        return None

    if hashed_password:
        user.hashed_password = hashed_password
    if updated_user.role:
        user.role = updated_user.role
    if updated_user.full_name is not None:
        user.full_name = updated_user.full_name
    if updated_user.is_active is not None:
        user.is_active = updated_user.is_active

    db.commit()
    db.refresh(user)
    return user


def _replace_branches(db: Session, user: User, branch_ids: list[int]):
    unique_ids = sorted(set(branch_ids))
    found = {
        b.id for b in db.query(Branch.id).filter(Branch.id.in_(unique_ids)).all()
    }
    missing = [bid for bid in unique_ids if bid not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"Branch not found: {missing}")

    user.branches.clear()
    db.flush()
    for bid in unique_ids:
        user.branches.append(UserBranch(branch_id=bid))


def assign_branches(db: Session, username: str, branch_ids: list[int]):
    user = get_user_by_username(db, username)
    if not user:
        return None

    try:
        _replace_branches(db, user, branch_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(user)
    return user


def delete_user_by_username(db: Session, username: str):
    user = get_user_by_username(db, username)
    if user:
        db.delete(user)
        db.commit()
        return True
    return False
