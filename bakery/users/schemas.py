from pydantic import BaseModel, ConfigDict, field_validator
from typing import List, Optional

from bakery.users.permissions import ROLES


# -------- USERS --------
class UserSchema(BaseModel):
    username: str
    password: str
    full_name: Optional[str] = None
    role: str = "kasir_cabang"
    branch_ids: List[int] = []
    admin_password: Optional[str] = None

    @field_validator("role")
    @classmethod
    def check_role(cls, v):
        v = v.strip().lower()
        if v not in ROLES:
            raise ValueError(f"Unknown role '{v}'")
        return v


class UserUpdateSchema(BaseModel):
    password: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("role")
    @classmethod
    def check_role(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        if v not in ROLES:
            raise ValueError(f"Unknown role '{v}'")
        return v


class UserBranchAssign(BaseModel):
    branch_ids: List[int]


class UserDisplaySchema(BaseModel):
    id: int
    username: str
    full_name: Optional[str] = None
    role: str
    branch_ids: List[int] = []
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class TokenOut(BaseModel):
    id: int
    username: str
    role: str
    branch_ids: List[int]
    access_token: str
    token_type: str = "bearer"
