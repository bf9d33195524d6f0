"""
Notification dispatch for order events.

The order services call the active ``NotificationDispatcher`` only after their
transaction has committed, passing an ``OrderNotice`` snapshot rather than a
live ORM object. A failing notification is logged and never undoes the order
change that triggered it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from canteen_shared.constants import OrderStatus
from canteen_shared.datetime_utils import humanize_duration
from canteen_shared.db import get_session
from canteen_shared.models import Notification, Order

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    OrderStatus.ACCEPTED: "Your order has been accepted!",
    OrderStatus.DECLINED: "Your order has been declined.",
    OrderStatus.READY_FOR_PICKUP: "Your order is ready for pickup!",
    OrderStatus.COMPLETED: "Your order has been completed.",
}


@dataclass(frozen=True)
class OrderNotice:
    """Plain snapshot of the order fields notifications need."""

    order_id: int
    customer_id: int
    concessionaire_id: int
    concession_name: str
    customer_name: str
    status: OrderStatus
    item_count: int
    total_price: Decimal
    updated_total_price: Decimal | None = None
    price_change_reason: str | None = None
    decline_reason: str | None = None
    receipt_timer: timedelta | None = None
    payment_rejection_reason: str | None = None

    @classmethod
    def from_order(cls, order: Order) -> OrderNotice:
        concession = order.concession
        customer = order.customer
        return cls(
            order_id=order.id,
            customer_id=order.customer_id,
            concessionaire_id=concession.concessionaire_id,
            concession_name=concession.concession_name,
            customer_name=customer.full_name if customer is not None else "Customer",
            status=order.status,
            item_count=sum(detail.quantity for detail in order.details),
            total_price=order.total_price,
            updated_total_price=order.updated_total_price,
            price_change_reason=order.price_change_reason,
            decline_reason=order.decline_reason,
            receipt_timer=order.receipt_timer,
            payment_rejection_reason=order.payment_rejection_reason,
        )


class NotificationDispatcher(ABC):
    """
    Builds the user-facing messages for order events and hands each one to
    ``deliver``. Subclasses decide where messages go.
    """

    @abstractmethod
    def deliver(self, user_id: int, notification_type: str, message: str, order_id: int) -> None:
        """Send one message to a user."""

    def notify_new_order(self, notice: OrderNotice) -> None:
        plural = "s" if notice.item_count > 1 else ""
        message = (
            f"New order from {notice.customer_name}! Order #{notice.order_id} "
            f"({notice.item_count} item{plural})"
        )
        self.deliver(notice.concessionaire_id, "New Order", message, notice.order_id)

    def notify_order_cancelled_for_concessionaire(self, notice: OrderNotice) -> None:
        message = f"Order #{notice.order_id} was cancelled by {notice.customer_name}"
        self.deliver(notice.concessionaire_id, "Order Cancelled", message, notice.order_id)

    def notify_order_status_change(
        self, notice: OrderNotice, old_status: OrderStatus, new_status: OrderStatus
    ) -> None:
        label = STATUS_MESSAGES.get(new_status, f"Order status updated to {new_status.value}")
        message = f"{notice.concession_name}: {label} (Order #{notice.order_id})"

        if new_status == OrderStatus.DECLINED and notice.decline_reason:
            message += f"\nReason: {notice.decline_reason}"

        if (
            notice.updated_total_price is not None
            and notice.updated_total_price != notice.total_price
        ):
            message += (
                f"\nTotal updated from ₱{notice.total_price:.2f} "
                f"to ₱{notice.updated_total_price:.2f}."
            )
            if notice.price_change_reason:
                message += f"\nReason for change: {notice.price_change_reason}"

        self.deliver(notice.customer_id, "Order Update", message, notice.order_id)

    def notify_payment_required(self, notice: OrderNotice) -> None:
        time_text = humanize_duration(notice.receipt_timer or timedelta(minutes=15))
        message = (
            f"{notice.concession_name}: Your order #{notice.order_id} was accepted! "
            f"Please pay via GCash and upload your receipt within {time_text}."
        )
        self.deliver(notice.customer_id, "Payment Reminder", message, notice.order_id)

    def notify_receipt_uploaded(self, notice: OrderNotice) -> None:
        message = (
            f"GCash receipt uploaded for order #{notice.order_id} by {notice.customer_name}. "
            "Please review and confirm."
        )
        self.deliver(notice.concessionaire_id, "Receipt Uploaded", message, notice.order_id)

    def notify_receipt_rejected(self, notice: OrderNotice) -> None:
        message = (
            f"{notice.concession_name}: Your GCash receipt for order #{notice.order_id} "
            f"was rejected.\nReason: {notice.payment_rejection_reason}\n"
            "Please upload a correct receipt to proceed with your order."
        )
        self.deliver(notice.customer_id, "Payment Rejected", message, notice.order_id)

    def notify_auto_decline(self, notice: OrderNotice) -> None:
        customer_message = (
            f"{notice.concession_name}: Your order #{notice.order_id} was automatically "
            "declined because the GCash receipt was not uploaded within the required time."
        )
        self.deliver(notice.customer_id, "Order Auto-Declined", customer_message, notice.order_id)
        concessionaire_message = (
            f"Order #{notice.order_id} was automatically declined due to customer not "
            "uploading GCash receipt within the required time."
        )
        self.deliver(
            notice.concessionaire_id, "Order Auto-Declined", concessionaire_message, notice.order_id
        )

    def notify_reopening_request(self, notice: OrderNotice) -> None:
        message = (
            f"{notice.customer_name} requested to reopen order #{notice.order_id} "
            f"at {notice.concession_name}. Please review the request."
        )
        self.deliver(notice.concessionaire_id, "Reopening Request", message, notice.order_id)

    def notify_reopening_approved(self, notice: OrderNotice) -> None:
        time_text = humanize_duration(notice.receipt_timer or timedelta(minutes=15))
        message = (
            f"{notice.concession_name}: Your request to reopen order #{notice.order_id} "
            f"was approved! Please upload your GCash receipt within {time_text}."
        )
        self.deliver(notice.customer_id, "Reopening Approved", message, notice.order_id)

    def notify_reopening_rejected(self, notice: OrderNotice, response_message: str) -> None:
        message = (
            f"{notice.concession_name}: Your request to reopen order #{notice.order_id} "
            f"was declined.\nReason: {response_message}"
        )
        self.deliver(notice.customer_id, "Reopening Declined", message, notice.order_id)


class DatabaseNotificationDispatcher(NotificationDispatcher):
    """Stores each notification as a row users poll from their inbox."""

    def deliver(self, user_id: int, notification_type: str, message: str, order_id: int) -> None:
        with get_session() as session:
            session.add(
                Notification(
                    user_id=user_id,
                    notification_type=notification_type,
                    message=message,
                    order_id=order_id,
                )
            )
        logger.info(
            "Notification stored",
            extra={"user_id": user_id, "notification_type": notification_type, "order_id": order_id},
        )


_notifier: NotificationDispatcher = DatabaseNotificationDispatcher()


def set_notifier(notifier: NotificationDispatcher) -> None:
    global _notifier
    _notifier = notifier


def get_notifier() -> NotificationDispatcher:
    return _notifier


def dispatch(send: Callable[[NotificationDispatcher], None], order_id: int | None = None) -> None:
    """Run one notification call; failures are logged and swallowed."""
    try:
        send(_notifier)
    except Exception as exc:
        logger.error(
            "Notification dispatch failed: %s",
            exc,
            extra={"order_id": order_id},
            exc_info=True,
        )
