"""
Branch scoping for queries.

Every read or write that touches branch-owned rows receives a ``BranchScope``
built from the authenticated user. Branch cashiers are limited to the
branches assigned to them in ``user_branches``; every other role sees all
branches. Service functions call ``scope.apply(query, column)`` to filter and
``scope.ensure(branch_id)`` before mutating.
"""
from dataclasses import dataclass
from typing import Optional, FrozenSet

from fastapi import Depends, HTTPException, status

from bakery.users.auth import get_current_user
from bakery.users.permissions import CASHIER
from bakery.users.schemas import UserDisplaySchema


@dataclass(frozen=True)
class BranchScope:
    user_id: Optional[int] = None
    role: Optional[str] = None
    # None means unrestricted
    branch_ids: Optional[FrozenSet[int]] = None

    @classmethod
    def unrestricted(cls, user_id: Optional[int] = None, role: Optional[str] = None):
        return cls(user_id=user_id, role=role, branch_ids=None)

    @classmethod
    def for_user(cls, user: UserDisplaySchema):
        if user.role == CASHIER:
            if not user.branch_ids:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Cashier account is not linked to a branch",
                )
            return cls(user_id=user.id, role=user.role, branch_ids=frozenset(user.branch_ids))
        return cls.unrestricted(user_id=user.id, role=user.role)

    @property
    def is_restricted(self) -> bool:
        return self.branch_ids is not None

    def allows(self, branch_id: int) -> bool:
        return self.branch_ids is None or branch_id in self.branch_ids

    def ensure(self, branch_id: int) -> None:
        if not self.allows(branch_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Branch {branch_id} is outside your assigned branches",
            )

    def apply(self, query, column, branch_id: Optional[int] = None):
        """Filter ``query`` on ``column`` by the scope and an optional explicit branch."""
        if branch_id is not None:
            self.ensure(branch_id)
            return query.filter(column == branch_id)
        if self.branch_ids is not None:
            return query.filter(column.in_(self.branch_ids))
        return query


def get_branch_scope(
    current_user: UserDisplaySchema = Depends(get_current_user),
) -> BranchScope:
    return BranchScope.for_user(current_user)
