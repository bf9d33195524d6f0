"""
Order lifecycle operations.

Every mutation runs in one ``get_session()`` transaction: the order is re-read
with ``SELECT ... FOR UPDATE``, the state machine computes the transition, and
the repository writes it with a compare-and-set on the source status.
Notifications are collected while the transaction is open and dispatched only
after it commits.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from canteen_shared.constants import (
    MAX_PAGE_SIZE,
    RECEIPT_UPLOAD_STATUSES,
    SEGMENT_STATUSES,
    OrderEvent,
    OrderSegment,
    OrderStatus,
    PaymentMethod,
)
from canteen_shared.datetime_utils import utcnow
from canteen_shared.db import get_session
from canteen_shared.errors import (
    ConflictError,
    ExpiredError,
    ValidationError,
)
from canteen_shared.logging_config import get_logger, order_logger
from canteen_shared.models import Order
from canteen_shared.policy import (
    PAYMENT_REJECTION_MESSAGES,
    PaymentRejectionReason,
    compose_reason_message,
)
from canteen_shared.repositories import OrderRepository
from canteen_shared.serializers import paginated_response, serialize_order
from canteen_shared.services import pricing, receipt_timer
from canteen_shared.services.access import (
    Actor,
    ensure_acting_for,
    ensure_can_view,
    ensure_concessionaire,
    ensure_customer,
    scope_of,
)
from canteen_shared.services.availability_service import AvailabilityLedger
from canteen_shared.services.decline_reasons import DeclineReason
from canteen_shared.services.notifications_service import (
    NotificationDispatcher,
    OrderNotice,
    dispatch,
)
from canteen_shared.services.order_state_machine import (
    TransitionContext,
    TransitionResult,
    order_state_machine,
)

logger = get_logger(__name__)

Notice = Callable[[NotificationDispatcher], None]


def dispatch_notices(notices: list[Notice], order_id: int | None = None) -> None:
    for send in notices:
        dispatch(send, order_id)


def transition_in_session(
    repo: OrderRepository,
    order: Order,
    event: OrderEvent,
    actor: Actor | None,
    now: datetime,
    payload: dict[str, Any] | None = None,
) -> tuple[Order, TransitionResult]:
    """
    Run one state machine event against an order already loaded for update.

    Availability side effects and the status write share the caller's
    transaction; a lost compare-and-set rolls both back.
    """
    context = TransitionContext(
        order=order,
        event=event,
        actor_scope=scope_of(actor),
        now=now,
        actor_id=actor.user_id if actor else None,
        payload=payload or {},
    )
    result = order_state_machine.apply_transition(context)
    log = order_logger(__name__, order.id)
    if result.noop:
        log.info("Order already %s; nothing to do", result.target.value)
        return order, result

    AvailabilityLedger(repo).apply(result.availability_changes, now)
    fields = dict(result.fields)
    fields["updated_at"] = now
    order = repo.update_order_status(order.id, result.source, result.target, fields)
    log.info(
        "Order transitioned %s -> %s",
        result.source.value,
        result.target.value,
        extra={"event": event.value, "actor_scope": context.actor_scope.value},
    )
    return order, result


def _status_change_notice(order: Order, result: TransitionResult) -> Notice:
    notice = OrderNotice.from_order(order)
    return lambda notifier: notifier.notify_order_status_change(
        notice, result.source, result.target
    )


def _auto_decline_notice(order: Order) -> Notice:
    notice = OrderNotice.from_order(order)
    return lambda notifier: notifier.notify_auto_decline(notice)


def expire_if_due(
    repo: OrderRepository, order: Order, now: datetime, notices: list[Notice]
) -> tuple[Order, bool]:
    """
    Lazy receipt-timer sweep for one order.

    Returns the (possibly reloaded) order and whether this call declined it.
    """
    if not receipt_timer.should_auto_decline(order, now):
        return order, False
    try:
        order, _ = transition_in_session(repo, order, OrderEvent.EXPIRE, None, now)
    except ConflictError:
        # Another request moved the order first; report what is stored now.
        repo.session.expire_all()
        return repo.get_order(order.id), False
    order_logger(__name__, order.id).info("Order auto-declined: receipt deadline passed")
    notices.append(_auto_decline_notice(order))
    return order, True


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_order(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id)
        ensure_can_view(order, actor)
        order, _ = expire_if_due(repo, order, now, notices)
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def _segment_statuses(segment: str | None):
    if not segment:
        return None
    try:
        return SEGMENT_STATUSES[OrderSegment(segment)]
    except ValueError as exc:
        raise ValidationError(f"Unknown segment '{segment}'. Use 'active' or 'history'") from exc


def _page_bounds(page: int, limit: int) -> tuple[int, int]:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return page, limit


def _list_orders(
    *,
    customer_id: int | None,
    concessionaire_id: int | None,
    segment: str | None,
    page: int,
    limit: int,
    now: datetime,
) -> dict:
    statuses = _segment_statuses(segment)
    page, limit = _page_bounds(page, limit)
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        for overdue in repo.list_receipt_pending_orders(
            customer_id=customer_id, concessionaire_id=concessionaire_id
        ):
            expire_if_due(repo, overdue, now, notices)
        orders, total = repo.list_orders(
            customer_id=customer_id,
            concessionaire_id=concessionaire_id,
            statuses=statuses,
            page=page,
            limit=limit,
        )
        payload = paginated_response([serialize_order(o) for o in orders], total, page, limit)
    dispatch_notices(notices)
    return payload


def list_customer_orders(
    customer_id: int,
    actor: Actor | None = None,
    segment: str | None = None,
    page: int = 1,
    limit: int = 20,
    now: datetime | None = None,
) -> dict:
    ensure_acting_for(actor, customer_id)
    return _list_orders(
        customer_id=customer_id,
        concessionaire_id=None,
        segment=segment,
        page=page,
        limit=limit,
        now=now or utcnow(),
    )


def list_concessionaire_orders(
    concessionaire_id: int,
    actor: Actor | None = None,
    segment: str | None = None,
    page: int = 1,
    limit: int = 20,
    now: datetime | None = None,
) -> dict:
    ensure_acting_for(actor, concessionaire_id)
    return _list_orders(
        customer_id=None,
        concessionaire_id=concessionaire_id,
        segment=segment,
        page=page,
        limit=limit,
        now=now or utcnow(),
    )


def get_receipt_timer(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id)
        ensure_can_view(order, actor)
        order, auto_declined = expire_if_due(repo, order, now, notices)
        reading = receipt_timer.remaining(order, now).to_dict()
        reading.update(
            {
                "order_id": order.id,
                "status": order.status.value,
                "auto_declined": auto_declined,
                "has_gcash_screenshot": order.gcash_screenshot is not None,
            }
        )
    dispatch_notices(notices, order_id)
    return reading


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def accept_order(
    order_id: int,
    actor: Actor | None = None,
    updated_total_price=None,
    price_change_reason: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_concessionaire(order, actor)
        order, result = transition_in_session(
            repo,
            order,
            OrderEvent.ACCEPT,
            actor,
            now,
            {
                "updated_total_price": updated_total_price,
                "price_change_reason": price_change_reason,
            },
        )
        notices.append(_status_change_notice(order, result))
        if receipt_timer.is_gcash(order):
            notice = OrderNotice.from_order(order)
            notices.append(lambda notifier: notifier.notify_payment_required(notice))
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def decline_order(
    order_id: int,
    actor: Actor | None = None,
    reason: str | None = None,
    free_text: str | None = None,
    unavailable_item_ids: list[int] | None = None,
    unavailable_variation_ids: list[int] | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Decline a pending order.

    Reasons citing unavailability may name menu items and variations; those are
    marked unavailable in the same transaction and listed in the stored reason.
    """
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_concessionaire(order, actor)
        if order_state_machine.is_idempotent_noop(order, OrderEvent.DECLINE):
            return serialize_order(order)

        decline_reason = DeclineReason.parse(reason, free_text)
        items, variations = AvailabilityLedger(repo).resolve_affected(
            order.concession_id, unavailable_item_ids or [], unavailable_variation_ids or []
        )
        decline_reason = decline_reason.with_affected(items, variations)
        order, result = transition_in_session(
            repo, order, OrderEvent.DECLINE, actor, now, {"decline_reason": decline_reason}
        )
        notices.append(_status_change_notice(order, result))
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def decline_unpaid_order(
    order_id: int,
    actor: Actor | None = None,
    free_text: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Decline an accepted GCash order whose payment never arrived."""
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_concessionaire(order, actor)
        payload = {}
        if free_text and free_text.strip():
            payload["decline_reason"] = DeclineReason.parse("payment_not_received", free_text)
        order, result = transition_in_session(
            repo, order, OrderEvent.DECLINE_UNPAID, actor, now, payload
        )
        if not result.noop:
            notices.append(_status_change_notice(order, result))
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def cancel_order(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_customer(order, actor)
        order, result = transition_in_session(repo, order, OrderEvent.CANCEL, actor, now)
        if not result.noop:
            notice = OrderNotice.from_order(order)
            notices.append(
                lambda notifier: notifier.notify_order_cancelled_for_concessionaire(notice)
            )
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def _simple_concessionaire_transition(
    order_id: int, event: OrderEvent, actor: Actor | None, now: datetime | None
) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_concessionaire(order, actor)
        order, result = transition_in_session(repo, order, event, actor, now)
        notices.append(_status_change_notice(order, result))
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def mark_ready(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    return _simple_concessionaire_transition(order_id, OrderEvent.MARK_READY, actor, now)


def complete_order(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    return _simple_concessionaire_transition(order_id, OrderEvent.COMPLETE, actor, now)


def update_order_status(
    order_id: int,
    status: str,
    actor: Actor | None = None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict:
    """Route a requested target status to the matching transition."""
    payload = payload or {}
    try:
        target = OrderStatus.normalize(status)
    except ValueError as exc:
        raise ValidationError(f"Unknown order status '{status}'") from exc

    if target == OrderStatus.ACCEPTED:
        return accept_order(
            order_id,
            actor,
            updated_total_price=payload.get("updated_total_price"),
            price_change_reason=payload.get("price_change_reason"),
            now=now,
        )
    if target == OrderStatus.DECLINED:
        return decline_order(
            order_id,
            actor,
            reason=payload.get("decline_reason"),
            free_text=payload.get("decline_reason_text"),
            unavailable_item_ids=payload.get("unavailable_item_ids"),
            unavailable_variation_ids=payload.get("unavailable_variation_ids"),
            now=now,
        )
    if target == OrderStatus.READY_FOR_PICKUP:
        return mark_ready(order_id, actor, now)
    if target == OrderStatus.COMPLETED:
        return complete_order(order_id, actor, now)
    if target == OrderStatus.CANCELLED:
        return cancel_order(order_id, actor, now)
    raise ValidationError(f"Orders cannot be moved to '{target.value}' directly")


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


def change_payment_method(
    order_id: int, payment_method: str, actor: Actor | None = None, now: datetime | None = None
) -> dict:
    now = now or utcnow()
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_customer(order, actor)
        if order.status != OrderStatus.PENDING:
            raise ValidationError("Payment method can only be changed while the order is pending")
        try:
            method = PaymentMethod.normalize(payment_method)
        except ValueError as exc:
            raise ValidationError(f"Unknown payment method '{payment_method}'") from exc
        if not order.concession.accepts_payment_method(method):
            raise ValidationError(f"This concession does not accept {method.value} payments")

        order = repo.update_order_status(
            order.id,
            OrderStatus.PENDING,
            OrderStatus.PENDING,
            {"payment_method": method.value, "updated_at": now},
        )
        order_logger(__name__, order.id).info("Payment method changed to %s", method.value)
        return serialize_order(order)


def upload_receipt(
    order_id: int, image: bytes, actor: Actor | None = None, now: datetime | None = None
) -> dict:
    """
    Attach the customer's GCash screenshot.

    Raises:
        ExpiredError: the receipt deadline has passed; callers should run
            ``check_expired`` afterwards
    """
    now = now or utcnow()
    if not image:
        raise ValidationError("A receipt image is required")
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_customer(order, actor)
        if not receipt_timer.is_gcash(order):
            raise ValidationError("Receipts are only needed for GCash orders")
        if order.status not in RECEIPT_UPLOAD_STATUSES:
            raise ConflictError(
                f"Receipts cannot be uploaded for an order that is '{order.status.value}'"
            )
        if receipt_timer.is_expired(order, now):
            order_logger(__name__, order.id).warning("Receipt upload after deadline rejected")
            raise ExpiredError("The payment deadline for this order has passed")

        order = repo.update_order_status(
            order.id,
            order.status,
            order.status,
            {
                "gcash_screenshot": image,
                "gcash_screenshot_uploaded_at": now,
                "payment_rejection_reason": None,
                "updated_at": now,
            },
        )
        order_logger(__name__, order.id).info("GCash receipt uploaded")
        notice = OrderNotice.from_order(order)
        notices.append(lambda notifier: notifier.notify_receipt_uploaded(notice))
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def reject_receipt(
    order_id: int,
    reason: str,
    free_text: str | None = None,
    actor: Actor | None = None,
    now: datetime | None = None,
) -> dict:
    """Discard an illegitimate screenshot and restart the receipt timer."""
    now = now or utcnow()
    try:
        reason_type = PaymentRejectionReason(reason)
    except ValueError as exc:
        raise ValidationError(f"Unknown rejection reason '{reason}'") from exc
    if reason_type == PaymentRejectionReason.OTHER and not (free_text or "").strip():
        raise ValidationError("Please describe why the receipt was rejected")
    message = compose_reason_message(
        PAYMENT_REJECTION_MESSAGES[reason_type],
        free_text,
        is_other=reason_type == PaymentRejectionReason.OTHER,
    )

    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_concessionaire(order, actor)
        if order.status != OrderStatus.ACCEPTED:
            raise ConflictError("Receipts can only be rejected while the order is accepted")
        if order.gcash_screenshot is None:
            raise ConflictError("There is no receipt to reject")

        timer = receipt_timer.timer_for(order)
        order = repo.update_order_status(
            order.id,
            OrderStatus.ACCEPTED,
            OrderStatus.ACCEPTED,
            {
                "gcash_screenshot": None,
                "gcash_screenshot_uploaded_at": None,
                "payment_rejection_reason": message,
                "accepted_at": now,
                "receipt_timer": timer,
                "payment_receipt_expires_at": now + timer,
                "updated_at": now,
            },
        )
        order_logger(__name__, order.id).info("GCash receipt rejected: %s", reason_type.value)
        notice = OrderNotice.from_order(order)
        notices.append(lambda notifier: notifier.notify_receipt_rejected(notice))
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


# ---------------------------------------------------------------------------
# Expiry sweeps
# ---------------------------------------------------------------------------


def check_expired(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_can_view(order, actor)
        order, auto_declined = expire_if_due(repo, order, now, notices)
        data = {"auto_declined": auto_declined, "order": serialize_order(order)}
    dispatch_notices(notices, order_id)
    return data


def decline_expired_orders(
    concessionaire_id: int | None = None, now: datetime | None = None
) -> dict:
    """Bulk sweep a client or cron job may poll."""
    now = now or utcnow()
    notices: list[Notice] = []
    declined: list[int] = []
    with get_session() as session:
        repo = OrderRepository(session)
        for order in repo.list_receipt_pending_orders(concessionaire_id=concessionaire_id):
            order, auto_declined = expire_if_due(repo, order, now, notices)
            if auto_declined:
                declined.append(order.id)
    dispatch_notices(notices)
    if declined:
        logger.info("Auto-declined %s overdue orders", len(declined))
    return {"declined_order_ids": declined, "count": len(declined)}


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


def recalculate_in_session(repo: OrderRepository, order: Order, now: datetime) -> Order:
    """Refresh every line total and the order total from the stored snapshots."""
    for detail in order.details:
        detail.total_price = pricing.quantize_money(pricing.detail_total(detail))
    total = pricing.quantize_money(pricing.order_total(order.details))
    return repo.update_order_fields(order, {"total_price": total, "updated_at": now})


def recalculate_total(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_can_view(order, actor)
        order = recalculate_in_session(repo, order, now)
        return serialize_order(order)
