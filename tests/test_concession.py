"""Tests for concession receipt timer settings."""

from datetime import timedelta

import pytest

from canteen_shared.errors import ForbiddenError, NotFoundError, ValidationError
from canteen_shared.services import concession_service, order_service


def test_update_receipt_timer(seed, concessionaire):
    result = concession_service.update_receipt_timer(seed["concession_id"], "00:20:00", concessionaire)
    assert result == {"concession_id": seed["concession_id"], "receipt_timer": "00:20:00"}


def test_minutes_are_accepted(seed, concessionaire):
    result = concession_service.update_receipt_timer(seed["concession_id"], 10, concessionaire)
    assert result["receipt_timer"] == "00:10:00"


@pytest.mark.parametrize("value", [0, "00:00:00", "00:45", "soon", True])
def test_invalid_timers(seed, concessionaire, value):
    with pytest.raises(ValidationError):
        concession_service.update_receipt_timer(seed["concession_id"], value, concessionaire)


def test_only_the_owner_may_change_it(seed, other_concessionaire):
    with pytest.raises(ForbiddenError):
        concession_service.update_receipt_timer(seed["concession_id"], "00:20:00", other_concessionaire)


def test_unknown_concession(concessionaire):
    with pytest.raises(NotFoundError):
        concession_service.update_receipt_timer(9999, "00:20:00", concessionaire)


def test_new_timer_applies_to_next_acceptance(seed, place_order, concessionaire, t0):
    already_accepted = order_service.accept_order(place_order()["id"], concessionaire, now=t0)
    concession_service.update_receipt_timer(seed["concession_id"], "00:20:00", concessionaire)
    accepted = order_service.accept_order(place_order()["id"], concessionaire, now=t0)

    assert accepted["payment_receipt_expires_at"] == (t0 + timedelta(minutes=20)).isoformat()
    # Orders accepted earlier keep their own copy
    timer = order_service.get_receipt_timer(
        already_accepted["id"], concessionaire, now=t0 + timedelta(minutes=16)
    )
    assert timer["auto_declined"] is True
    assert timer["status"] == "declined"


def test_sub_minute_timer_is_spelled_out(seed, place_order, concessionaire, notifier, t0):
    concession_service.update_receipt_timer(seed["concession_id"], "00:00:30", concessionaire)
    order_service.accept_order(place_order()["id"], concessionaire, now=t0)
    reminder = notifier.sent[-1]
    assert reminder["notification_type"] == "Payment Reminder"
    assert "within 30 seconds" in reminder["message"]
