from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from loguru import logger

from bakery.config import settings
from bakery.database import get_db
from bakery.users.auth import pwd_context, authenticate_user, create_access_token, get_current_user
from bakery.users import crud as user_crud, schemas
from bakery.users.permissions import role_required, ADMIN

router = APIRouter()


@router.post("/register/", status_code=status.HTTP_201_CREATED)
def sign_up(user: schemas.UserSchema, db: Session = Depends(get_db)):
    # Normalize username
    user.username = user.username.strip().lower()

    existing_user = user_crud.get_user_by_username(db, user.username)
    if existing_user:
        raise HTTPException(status_code=409, detail="Username already exists")

    # Enforce admin secret for ALL registrations
    if not user.admin_password or user.admin_password != settings.ADMIN_SECRET:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admin can register users. Invalid admin password."
        )

    hashed_password = pwd_context.hash(user.password)
    user_crud.create_user(db, user, hashed_password)

    logger.info(f"User registered: {user.username} ({user.role})")
    return {"message": f"User {user.username} registered successfully"}


@router.post("/token", response_model=schemas.TokenOut)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    username = form_data.username.strip().lower()

    user = authenticate_user(db, username, form_data.password)
    if not user:
        logger.warning(f"Authentication denied for username: {username}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    access_token = create_access_token(data={"sub": username})
    logger.info(f"User authenticated: {username}")

    return schemas.TokenOut(
        id=user.id,
        username=user.username,
        role=user.role,
        branch_ids=user.branch_ids,
        access_token=access_token,
    )


@router.get("/", response_model=list[schemas.UserDisplaySchema])
def list_all_users(
    role: str | None = None,
    db: Session = Depends(get_db),
    current_user: schemas.UserDisplaySchema = Depends(role_required([ADMIN])),
):
    return user_crud.get_all_users(db, role=role)


@router.get("/me", response_model=schemas.UserDisplaySchema)
def get_current_user_info(
    current_user: schemas.UserDisplaySchema = Depends(get_current_user),
):
    return current_user


@router.put("/{username}", response_model=schemas.UserDisplaySchema)
def update_user(
    username: str,
    updated_user: schemas.UserUpdateSchema,
    db: Session = Depends(get_db),
    current_user: schemas.UserDisplaySchema = Depends(role_required([ADMIN])),
):
    hashed_password = pwd_context.hash(updated_user.password) if updated_user.password else None

    user = user_crud.update_user(db, username, updated_user, hashed_password)
    if not user:
        logger.warning(f"User not found: {username}")
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(f"User {username} updated by {current_user.username}")
    return user


@router.put("/{username}/branches", response_model=schemas.UserDisplaySchema)
def assign_user_branches(
    username: str,
    payload: schemas.UserBranchAssign,
    db: Session = Depends(get_db),
    current_user: schemas.UserDisplaySchema = Depends(role_required([ADMIN])),
):
    user = user_crud.assign_branches(db, username, payload.branch_ids)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(f"Branches for {username} set to {user.branch_ids}")
    return user


@router.delete("/{username}")
def delete_user(
    username: str,
    db: Session = Depends(get_db),
    current_user: schemas.UserDisplaySchema = Depends(role_required([ADMIN])),
):
    # Prevent self-deletion
    if username == current_user.username:
        logger.warning(f"{current_user.username} attempted to delete themselves.")
        raise HTTPException(status_code=400, detail="You cannot delete yourself.")

    if not user_crud.delete_user_by_username(db, username):
        logger.warning(f"User not found: {username}")
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(f"User {username} deleted successfully")
    return {"message": f"User {username} deleted successfully"}
