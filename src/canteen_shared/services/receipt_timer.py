"""
GCash receipt timer.

After a GCash order is accepted the customer has ``receipt_timer`` to upload a
payment screenshot. The deadline is evaluated lazily: read paths and the
check-expired endpoints ask whether an order is overdue and decline it then.
There is no background scheduler; a stale reading only delays a decline.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from canteen_shared.constants import OrderStatus, PaymentMethod
from canteen_shared.datetime_utils import format_duration
from canteen_shared.models import Order
from canteen_shared.policy import get_policy


@dataclass(frozen=True)
class Running:
    remaining: timedelta
    deadline: datetime

    def to_dict(self) -> dict:
        return {
            "state": "running",
            "remaining_seconds": int(self.remaining.total_seconds()),
            "remaining": format_duration(self.remaining),
            "deadline": self.deadline.isoformat(),
        }


@dataclass(frozen=True)
class Expired:
    deadline: datetime

    def to_dict(self) -> dict:
        return {
            "state": "expired",
            "remaining_seconds": 0,
            "remaining": format_duration(timedelta(0)),
            "deadline": self.deadline.isoformat(),
        }


@dataclass(frozen=True)
class NotApplicable:
    def to_dict(self) -> dict:
        return {"state": "not_applicable", "remaining_seconds": None, "remaining": None, "deadline": None}


NOT_APPLICABLE = NotApplicable()


def is_gcash(order: Order) -> bool:
    try:
        return PaymentMethod.normalize(order.payment_method) == PaymentMethod.GCASH
    except ValueError:
        return False


def timer_for(order: Order) -> timedelta:
    """The order's copied timer, falling back to the concession's live value."""
    if order.receipt_timer is not None:
        return order.receipt_timer
    if order.concession is not None and order.concession.receipt_timer is not None:
        return order.concession.receipt_timer
    return get_policy().default_receipt_timer


def live_timer_for(order: Order) -> timedelta:
    """The concession's current timer; copied onto the order at acceptance and reopening."""
    if order.concession is not None and order.concession.receipt_timer is not None:
        return order.concession.receipt_timer
    return timer_for(order)


def deadline(order: Order) -> datetime | None:
    if order.payment_receipt_expires_at is not None:
        return order.payment_receipt_expires_at
    if order.accepted_at is None:
        return None
    return order.accepted_at + timer_for(order)


def remaining(order: Order, now: datetime) -> Running | Expired | NotApplicable:
    if not is_gcash(order) or order.status != OrderStatus.ACCEPTED:
        return NOT_APPLICABLE
    due = deadline(order)
    if due is None:
        return NOT_APPLICABLE
    if now > due:
        return Expired(due)
    return Running(due - now, due)


def is_expired(order: Order, now: datetime) -> bool:
    due = deadline(order)
    return due is not None and now > due


def should_auto_decline(order: Order, now: datetime) -> bool:
    """Accepted GCash order, no screenshot, deadline passed."""
    return (
        order.status == OrderStatus.ACCEPTED
        and is_gcash(order)
        and order.gcash_screenshot is None
        and is_expired(order, now)
    )
