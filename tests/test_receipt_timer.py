"""Tests for the GCash receipt timer."""

from datetime import datetime, timedelta

import pytest

from canteen_shared.constants import OrderStatus
from canteen_shared.datetime_utils import humanize_duration
from canteen_shared.models import Concession, Order
from canteen_shared.policy import OrderPolicy, install_policy
from canteen_shared.services import receipt_timer
from canteen_shared.services.receipt_timer import Expired, NotApplicable, Running

T0 = datetime(2026, 3, 2, 9, 0, 0)


def accepted_order(**overrides):
    values = {
        "status": OrderStatus.ACCEPTED,
        "payment_method": "gcash",
        "accepted_at": T0,
        "receipt_timer": timedelta(minutes=15),
        "payment_receipt_expires_at": T0 + timedelta(minutes=15),
    }
    values.update(overrides)
    return Order(**values)


class TestRemaining:
    def test_running_just_before_deadline(self):
        order = accepted_order()
        reading = receipt_timer.remaining(order, T0 + timedelta(minutes=14, seconds=59))
        assert isinstance(reading, Running)
        assert reading.remaining == timedelta(seconds=1)
        assert not receipt_timer.is_expired(order, T0 + timedelta(minutes=14, seconds=59))

    def test_expired_just_after_deadline(self):
        order = accepted_order()
        now = T0 + timedelta(minutes=15, seconds=1)
        assert isinstance(receipt_timer.remaining(order, now), Expired)
        assert receipt_timer.is_expired(order, now)
        assert receipt_timer.should_auto_decline(order, now)

    def test_exact_deadline_is_not_expired(self):
        order = accepted_order()
        assert not receipt_timer.is_expired(order, T0 + timedelta(minutes=15))

    def test_on_counter_orders_have_no_timer(self):
        order = accepted_order(payment_method="on-counter")
        assert isinstance(receipt_timer.remaining(order, T0), NotApplicable)
        assert not receipt_timer.should_auto_decline(order, T0 + timedelta(hours=1))

    def test_pending_orders_have_no_timer(self):
        order = accepted_order(status=OrderStatus.PENDING)
        assert receipt_timer.remaining(order, T0) is receipt_timer.NOT_APPLICABLE

    def test_uploaded_screenshot_stops_auto_decline(self):
        order = accepted_order(gcash_screenshot=b"png")
        assert not receipt_timer.should_auto_decline(order, T0 + timedelta(hours=1))

    def test_deadline_derived_from_accepted_at(self):
        order = accepted_order(payment_receipt_expires_at=None, receipt_timer=timedelta(minutes=5))
        assert receipt_timer.deadline(order) == T0 + timedelta(minutes=5)

    def test_to_dict(self):
        reading = receipt_timer.remaining(accepted_order(), T0 + timedelta(minutes=10))
        assert reading.to_dict()["state"] == "running"
        assert reading.to_dict()["remaining"] == "00:05:00"
        assert reading.to_dict()["remaining_seconds"] == 300


class TestTimerSource:
    def test_order_copy_wins(self):
        order = accepted_order(concession=Concession(receipt_timer=timedelta(minutes=20)))
        assert receipt_timer.timer_for(order) == timedelta(minutes=15)
        assert receipt_timer.live_timer_for(order) == timedelta(minutes=20)

    def test_falls_back_to_concession(self):
        order = accepted_order(
            receipt_timer=None, concession=Concession(receipt_timer=timedelta(minutes=10))
        )
        assert receipt_timer.timer_for(order) == timedelta(minutes=10)

    def test_falls_back_to_policy_default(self):
        install_policy(OrderPolicy(default_receipt_timer=timedelta(minutes=7)))
        order = accepted_order(receipt_timer=None)
        assert receipt_timer.timer_for(order) == timedelta(minutes=7)


@pytest.mark.parametrize("method", ["gcash", "GCash", " gcash "])
def test_gcash_spellings(method):
    assert receipt_timer.is_gcash(Order(payment_method=method))


@pytest.mark.parametrize(
    "timer, text",
    [
        (timedelta(minutes=15), "15 minutes"),
        (timedelta(minutes=1), "1 minute"),
        (timedelta(hours=1, minutes=5), "1 hour 5 minutes"),
        (timedelta(seconds=30), "30 seconds"),
        (timedelta(minutes=2, seconds=1), "2 minutes 1 second"),
        (timedelta(0), "0 seconds"),
    ],
)
def test_humanized_timer(timer, text):
    assert humanize_duration(timer) == text
