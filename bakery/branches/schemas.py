from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class BranchBase(BaseModel):
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None


class BranchCreate(BranchBase):
    pass


class BranchUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class BranchOut(BranchBase):
    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
