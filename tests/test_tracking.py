import pytest
from fastapi import HTTPException

from bakery.orders import tracking
from bakery.users.permissions import OWNER, ADMIN, PRODUCTION_HEAD, CASHIER, COURIER


def test_next_status_walks_the_sequence():
    seen = [tracking.IN_PRODUCTION]
    while True:
        nxt = tracking.next_tracking_status(seen[-1])
        if nxt is None:
            break
        seen.append(nxt)
    assert seen == tracking.TRACKING_STATUS_ORDER


@pytest.mark.parametrize("current,target", [
    (tracking.IN_PRODUCTION, tracking.IN_TRANSIT),          # skip
    (tracking.IN_PRODUCTION, tracking.DELIVERED),           # skip to end
    (tracking.IN_TRANSIT, tracking.READY_TO_SHIP),          # backward
    (tracking.ARRIVED_AT_STORE, tracking.ARRIVED_AT_STORE), # same stage
    (tracking.DELIVERED, tracking.IN_PRODUCTION),           # restart
])
def test_only_the_next_stage_is_reachable(current, target):
    with pytest.raises(HTTPException) as exc:
        tracking.validate_transition(ADMIN, current, target, payment_status="paid")
    assert exc.value.status_code == 409


def test_unknown_target_rejected():
    with pytest.raises(HTTPException) as exc:
        tracking.validate_transition(ADMIN, tracking.IN_PRODUCTION, "lost")
    assert exc.value.status_code == 400


@pytest.mark.parametrize("role", [OWNER, ADMIN])
def test_full_access_roles_take_any_forward_step(role):
    for current in tracking.TRACKING_STATUS_ORDER[:-1]:
        assert tracking.can_advance(role, current)


def test_cashier_only_performs_final_step():
    allowed = [s for s in tracking.TRACKING_STATUS_ORDER[:-1] if tracking.can_advance(CASHIER, s)]
    assert allowed == [tracking.ARRIVED_AT_STORE]


def test_production_head_only_releases_from_production():
    allowed = [s for s in tracking.TRACKING_STATUS_ORDER[:-1] if tracking.can_advance(PRODUCTION_HEAD, s)]
    assert allowed == [tracking.IN_PRODUCTION]


def test_courier_steps():
    allowed = [s for s in tracking.TRACKING_STATUS_ORDER[:-1] if tracking.can_advance(COURIER, s)]
    assert allowed == [tracking.READY_TO_SHIP, tracking.IN_TRANSIT, tracking.ARRIVED_AT_STORE]


def test_role_not_allowed_is_forbidden():
    with pytest.raises(HTTPException) as exc:
        tracking.validate_transition(CASHIER, tracking.IN_PRODUCTION, tracking.READY_TO_SHIP)
    assert exc.value.status_code == 403


def test_delivery_requires_full_payment():
    with pytest.raises(HTTPException) as exc:
        tracking.validate_transition(
            CASHIER, tracking.ARRIVED_AT_STORE, tracking.DELIVERED, payment_status="partial"
        )
    assert exc.value.status_code == 400

    tracking.validate_transition(
        CASHIER, tracking.ARRIVED_AT_STORE, tracking.DELIVERED, payment_status="paid"
    )


def test_nothing_after_delivered():
    assert tracking.next_tracking_status(tracking.DELIVERED) is None
    assert not tracking.can_advance(OWNER, tracking.DELIVERED)
