"""
Order policy: reason catalogues and the limits the order services enforce.

The services never hardcode these values; they read the active ``OrderPolicy``
which the application installs at startup from ``AppConfig``. Tests install
their own policy to exercise limits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from canteen_shared.config import AppConfig


class DeclineCategory(str, Enum):
    """Reasons a concessionaire can pick when declining an order."""

    ITEM_NOT_AVAILABLE = "item_not_available"
    INSUFFICIENT_INGREDIENTS = "insufficient_ingredients"
    CONCESSION_CLOSED = "concession_closed"
    ORDER_TOO_LARGE = "order_too_large"
    PAYMENT_NOT_RECEIVED = "payment_not_received"
    RECEIPT_TIMEOUT = "receipt_timeout"
    OTHER = "other"


DECLINE_MESSAGES = {
    DeclineCategory.ITEM_NOT_AVAILABLE: "Item not available",
    DeclineCategory.INSUFFICIENT_INGREDIENTS: "Insufficient ingredients",
    DeclineCategory.CONCESSION_CLOSED: "Concession is closed or about to close",
    DeclineCategory.ORDER_TOO_LARGE: "Order too large to fulfill",
    DeclineCategory.PAYMENT_NOT_RECEIVED: "Valid GCash payment was not received",
    DeclineCategory.RECEIPT_TIMEOUT: (
        "Order automatically declined: GCash receipt was not uploaded within the required time"
    ),
    DeclineCategory.OTHER: "Other reason",
}

# Categories under which the concessionaire may flag items/variations as unavailable.
UNAVAILABILITY_CATEGORIES = {
    DeclineCategory.ITEM_NOT_AVAILABLE,
    DeclineCategory.INSUFFICIENT_INGREDIENTS,
}


class PaymentRejectionReason(str, Enum):
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    WRONG_IMAGE = "wrong_image"
    UNCLEAR_RECEIPT = "unclear_receipt"
    MISMATCHED_NAME = "mismatched_name"
    OTHER = "other"


PAYMENT_REJECTION_MESSAGES = {
    PaymentRejectionReason.INSUFFICIENT_AMOUNT: "Insufficient payment amount",
    PaymentRejectionReason.WRONG_IMAGE: "Invalid or incorrect image uploaded",
    PaymentRejectionReason.UNCLEAR_RECEIPT: "Receipt image is unclear or unreadable",
    PaymentRejectionReason.MISMATCHED_NAME: "Account name does not match",
    PaymentRejectionReason.OTHER: "Other reason",
}


class ReopeningReason(str, Enum):
    MISSED_DEADLINE = "missed_deadline"
    TECHNICAL_ISSUE = "technical_issue"
    PAYMENT_DELAY = "payment_delay"
    FORGOT_UPLOAD = "forgot_upload"
    NETWORK_ISSUE = "network_issue"
    BUSY_SCHEDULE = "busy_schedule"
    EMERGENCY = "emergency"
    MISUNDERSTOOD_TIMER = "misunderstood_timer"
    OTHER = "other"


REOPENING_MESSAGES = {
    ReopeningReason.MISSED_DEADLINE: "I missed the deadline for uploading the receipt",
    ReopeningReason.TECHNICAL_ISSUE: "I experienced technical issues with the app",
    ReopeningReason.PAYMENT_DELAY: "My payment was delayed",
    ReopeningReason.FORGOT_UPLOAD: "I forgot to upload the receipt",
    ReopeningReason.NETWORK_ISSUE: "I had network connectivity problems",
    ReopeningReason.BUSY_SCHEDULE: "I was busy and couldn't upload in time",
    ReopeningReason.EMERGENCY: "I had an emergency situation",
    ReopeningReason.MISUNDERSTOOD_TIMER: "I misunderstood the timer requirement",
    ReopeningReason.OTHER: "Other reason",
}


class ReopeningDeclineReason(str, Enum):
    TOO_MANY_REQUESTS = "too_many_requests"
    ORDER_TOO_OLD = "order_too_old"
    POLICY_VIOLATION = "policy_violation"
    INSUFFICIENT_REASON = "insufficient_reason"
    REPEATED_OFFENSE = "repeated_offense"
    INVENTORY_UNAVAILABLE = "inventory_unavailable"
    OTHER = "other"


REOPENING_DECLINE_MESSAGES = {
    ReopeningDeclineReason.TOO_MANY_REQUESTS: (
        "You have exceeded the maximum number of reopening requests"
    ),
    ReopeningDeclineReason.ORDER_TOO_OLD: "This order is too old to be reopened",
    ReopeningDeclineReason.POLICY_VIOLATION: "Reopening request violates our policy",
    ReopeningDeclineReason.INSUFFICIENT_REASON: "The reason provided is not sufficient",
    ReopeningDeclineReason.REPEATED_OFFENSE: "This is a repeated offense",
    ReopeningDeclineReason.INVENTORY_UNAVAILABLE: "Items are no longer available",
    ReopeningDeclineReason.OTHER: "Other reason",
}

DEFAULT_REOPENING_REJECTION_MESSAGE = "Your reopening request has been declined"


def compose_reason_message(canned: str, free_text: str | None, *, is_other: bool) -> str:
    """
    Build the stored message for an enumerated reason.

    "other" uses the free text alone; any other reason uses its canned message,
    followed by the free text as additional details when given.
    """
    details = (free_text or "").strip()
    if is_other and details:
        return details
    if details:
        return f"{canned}. Additional details: {details}"
    return canned


@dataclass(frozen=True)
class OrderPolicy:
    """Limits consumed by the order and reopening services."""

    max_reopening_requests: int = 3
    max_reopening_window_hours: int = 24
    reopen_auto_declined_only: bool = True
    default_receipt_timer: timedelta = timedelta(minutes=15)
    max_receipt_timer: timedelta = timedelta(minutes=30)

    @property
    def reopening_window(self) -> timedelta:
        return timedelta(hours=self.max_reopening_window_hours)

    @classmethod
    def from_config(cls, config: AppConfig) -> OrderPolicy:
        return cls(
            max_reopening_requests=config.max_reopening_requests,
            max_reopening_window_hours=config.max_reopening_window_hours,
            reopen_auto_declined_only=config.get_bool("reopen_auto_declined_only", True),
            default_receipt_timer=timedelta(minutes=config.default_receipt_timer_minutes),
            max_receipt_timer=timedelta(minutes=config.max_receipt_timer_minutes),
        )


_active_policy = OrderPolicy()


def install_policy(policy: OrderPolicy) -> None:
    global _active_policy
    _active_policy = policy


def get_policy() -> OrderPolicy:
    return _active_policy
