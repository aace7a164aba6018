"""
Delivery tracking progression.

An order moves through five stages, one step at a time and never back:

    in_production -> ready_to_ship -> in_transit -> arrived_at_store -> delivered

Which steps a user may take depends on the role. Owners and head-office
admins may take any forward step; everyone else is limited to the steps
listed in ``ROLE_STEPS``. Cancelling is not a tracking step, it lives on the
order status.
"""
from typing import Optional

from fastapi import HTTPException, status

from bakery.users.permissions import OWNER, ADMIN, PRODUCTION_HEAD, CASHIER, COURIER


IN_PRODUCTION = "in_production"
READY_TO_SHIP = "ready_to_ship"
IN_TRANSIT = "in_transit"
ARRIVED_AT_STORE = "arrived_at_store"
DELIVERED = "delivered"

TRACKING_STATUS_ORDER = [IN_PRODUCTION, READY_TO_SHIP, IN_TRANSIT, ARRIVED_AT_STORE, DELIVERED]

FULL_ACCESS_ROLES = {OWNER, ADMIN}

# (from, to) steps each restricted role may take
ROLE_STEPS = {
    PRODUCTION_HEAD: {(IN_PRODUCTION, READY_TO_SHIP)},
    COURIER: {
        (READY_TO_SHIP, IN_TRANSIT),
        (IN_TRANSIT, ARRIVED_AT_STORE),
        (ARRIVED_AT_STORE, DELIVERED),
    },
    CASHIER: {(ARRIVED_AT_STORE, DELIVERED)},
}


def next_tracking_status(current: str) -> Optional[str]:
    if current not in TRACKING_STATUS_ORDER:
        raise HTTPException(status_code=400, detail=f"Unknown tracking status '{current}'")
    index = TRACKING_STATUS_ORDER.index(current)
    if index + 1 < len(TRACKING_STATUS_ORDER):
        return TRACKING_STATUS_ORDER[index + 1]
    return None


def can_advance(role: str, current: str) -> bool:
    """True when ``role`` may move an order from ``current`` to the next stage."""
    target = next_tracking_status(current)
    if target is None:
        return False
    if role in FULL_ACCESS_ROLES:
        return True
    return (current, target) in ROLE_STEPS.get(role, set())


def validate_transition(
    role: str,
    current: str,
    target: str,
    payment_status: Optional[str] = None,
) -> None:
    if target not in TRACKING_STATUS_ORDER:
        raise HTTPException(status_code=400, detail=f"Unknown tracking status '{target}'")

    expected = next_tracking_status(current)
    if target != expected:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"Tracking must advance one stage at a time: "
                f"{current} -> {expected or 'none (already delivered)'}, got {target}"
            ),
        )

    if not can_advance(role, current):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role '{role}' cannot move an order from {current} to {target}",
        )

    if target == DELIVERED and payment_status != "paid":
        raise HTTPException(
            status_code=400,
            detail="Order must be fully paid before it can be delivered",
        )
