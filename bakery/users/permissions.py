from fastapi import Depends, HTTPException, status
from typing import List, Set


OWNER = "owner"
ADMIN = "admin_pusat"
PRODUCTION_HEAD = "kepala_produksi"
CASHIER = "kasir_cabang"
COURIER = "kurir"

ROLES = (OWNER, ADMIN, PRODUCTION_HEAD, CASHIER, COURIER)

# Roles that manage stock across every branch
STOCK_MANAGERS = [ADMIN, PRODUCTION_HEAD]


def role_required(allowed_roles: List[str]):
    # imported here: auth depends on schemas, which depends on this module
    from bakery.users.auth import get_current_user
    from bakery.users.schemas import UserDisplaySchema

    allowed_set: Set[str] = set(r.strip().lower() for r in (allowed_roles or []))

    def wrapper(current_user: UserDisplaySchema = Depends(get_current_user)):
        role = (current_user.role or "").strip().lower()

        # Owner bypass
        if role == OWNER:
            return current_user

        if role not in allowed_set:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )

        return current_user

    return wrapper
