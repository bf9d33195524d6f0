"""
Reopening workflow.

A customer whose GCash order was declined for a missing receipt can ask the
concessionaire to reopen it. Requests go ``pending -> approved | rejected``;
approval moves the order back to ``accepted`` with a fresh receipt deadline.
Limits come from the active ``OrderPolicy``.
"""

from __future__ import annotations

from datetime import datetime

from canteen_shared.constants import OrderEvent, OrderStatus, ReopeningStatus
from canteen_shared.datetime_utils import utcnow
from canteen_shared.db import get_session
from canteen_shared.errors import ConflictError, PolicyError, ValidationError
from canteen_shared.logging_config import get_logger, order_logger
from canteen_shared.models import Order
from canteen_shared.policy import (
    DEFAULT_REOPENING_REJECTION_MESSAGE,
    REOPENING_DECLINE_MESSAGES,
    REOPENING_MESSAGES,
    DeclineCategory,
    OrderPolicy,
    ReopeningDeclineReason,
    ReopeningReason,
    compose_reason_message,
    get_policy,
)
from canteen_shared.repositories import OrderRepository
from canteen_shared.serializers import serialize_order, serialize_reopening_request
from canteen_shared.services.access import (
    Actor,
    ensure_acting_for,
    ensure_can_view,
    ensure_concessionaire,
    ensure_customer,
)
from canteen_shared.services.notifications_service import OrderNotice
from canteen_shared.services.order_service import (
    Notice,
    dispatch_notices,
    transition_in_session,
)

logger = get_logger(__name__)


def was_auto_declined(order: Order) -> bool:
    data = order.decline_reason_data or {}
    if data.get("category") == DeclineCategory.RECEIPT_TIMEOUT.value:
        return True
    # Rows declined before the structured reason existed only carry the text.
    return "automatically declined" in (order.decline_reason or "").lower()


def _eligibility(
    repo: OrderRepository, order: Order, now: datetime, policy: OrderPolicy
) -> dict:
    has_pending = repo.has_pending_reopening_request(order.id)
    remaining_requests = max(policy.max_reopening_requests - order.reopening_count, 0)
    declined_at = order.declined_at or order.updated_at
    hours_remaining = None
    if order.status == OrderStatus.DECLINED and declined_at is not None:
        left = (declined_at + policy.reopening_window - now).total_seconds() / 3600
        hours_remaining = round(max(left, 0.0), 2)

    reason = None
    if order.status != OrderStatus.DECLINED:
        reason = "Only declined orders can be reopened"
    elif policy.reopen_auto_declined_only and not was_auto_declined(order):
        reason = "Only orders declined for a missing GCash receipt can be reopened"
    elif has_pending:
        reason = "A reopening request is already pending"
    elif order.reopening_count >= policy.max_reopening_requests:
        reason = (
            f"Maximum number of reopening requests ({policy.max_reopening_requests}) reached"
        )
    elif declined_at is None or now - declined_at > policy.reopening_window:
        reason = (
            "Reopening window has expired "
            f"(must be within {policy.max_reopening_window_hours} hours)"
        )

    return {
        "can_reopen": reason is None,
        "reason": reason,
        "remaining_requests": remaining_requests,
        "hours_remaining": hours_remaining,
        "has_pending_request": has_pending,
    }


def check_eligibility(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id)
        ensure_can_view(order, actor)
        return _eligibility(repo, order, now, get_policy())


def request_reopen(
    order_id: int,
    reason: str,
    message: str | None = None,
    actor: Actor | None = None,
    now: datetime | None = None,
) -> dict:
    """
    File a reopening request for a declined order.

    Raises:
        ValidationError: unknown reason, or "other" without a description
        PolicyError: the order is not eligible (see ``check_eligibility``)
    """
    now = now or utcnow()
    try:
        reason_type = ReopeningReason(reason)
    except ValueError as exc:
        raise ValidationError(f"Unknown reopening reason '{reason}'") from exc
    is_other = reason_type == ReopeningReason.OTHER
    if is_other and not (message or "").strip():
        raise ValidationError("Please explain why the order should be reopened")
    request_message = compose_reason_message(
        REOPENING_MESSAGES[reason_type], message, is_other=is_other
    )

    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_customer(order, actor)

        eligibility = _eligibility(repo, order, now, get_policy())
        if not eligibility["can_reopen"]:
            order_logger(__name__, order.id).warning(
                "Reopening request refused: %s", eligibility["reason"]
            )
            raise PolicyError(eligibility["reason"])

        request = repo.insert_reopening_request(
            order_id=order.id,
            customer_id=order.customer_id,
            concessionaire_id=order.concession.concessionaire_id,
            request_type=reason_type.value,
            request_message=request_message,
            status=ReopeningStatus.PENDING.value,
            requested_at=now,
            created_at=now,
            updated_at=now,
        )
        order = repo.update_order_fields(
            order,
            {
                "reopening_count": order.reopening_count + 1,
                "reopening_requested": True,
                "updated_at": now,
            },
        )
        order_logger(__name__, order.id).info(
            "Reopening request %s filed", request.id, extra={"request_type": reason_type.value}
        )
        notice = OrderNotice.from_order(order)
        notices.append(lambda notifier: notifier.notify_reopening_request(notice))
        data = serialize_reopening_request(request)
    dispatch_notices(notices, order_id)
    return data


def _pending_request(repo: OrderRepository, request_id: int, actor: Actor | None):
    request = repo.get_reopening_request(request_id, for_update=True)
    order = repo.get_order(request.order_id, for_update=True)
    ensure_concessionaire(order, actor)
    if request.status != ReopeningStatus.PENDING.value:
        raise ConflictError(f"This reopening request was already {request.status}")
    if order.status != OrderStatus.DECLINED:
        raise ConflictError("Order is no longer in declined status")
    return request, order


def approve_request(
    request_id: int, actor: Actor | None = None, now: datetime | None = None
) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        request, order = _pending_request(repo, request_id, actor)
        order, _ = transition_in_session(repo, order, OrderEvent.REOPEN, actor, now)
        request = repo.update_reopening_request(
            request,
            {
                "status": ReopeningStatus.APPROVED.value,
                "responded_at": now,
                "updated_at": now,
            },
        )
        notice = OrderNotice.from_order(order)
        notices.append(lambda notifier: notifier.notify_reopening_approved(notice))
        data = {
            "request": serialize_reopening_request(request),
            "order": serialize_order(order),
        }
    dispatch_notices(notices, data["order"]["id"])
    return data


def reject_request(
    request_id: int,
    response_type: str | None = None,
    message: str | None = None,
    actor: Actor | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    message = (message or "").strip() or None
    if response_type:
        try:
            decline_type = ReopeningDeclineReason(response_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown response type '{response_type}'") from exc
        is_other = decline_type == ReopeningDeclineReason.OTHER
        if is_other and not message:
            raise ValidationError("Please explain why the request is declined")
        response_message = compose_reason_message(
            REOPENING_DECLINE_MESSAGES[decline_type], message, is_other=is_other
        )
    else:
        response_message = message or DEFAULT_REOPENING_REJECTION_MESSAGE

    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        request, order = _pending_request(repo, request_id, actor)
        request = repo.update_reopening_request(
            request,
            {
                "status": ReopeningStatus.REJECTED.value,
                "response_type": response_type or None,
                "response_message": response_message,
                "responded_at": now,
                "updated_at": now,
            },
        )
        order = repo.update_order_fields(order, {"reopening_requested": False, "updated_at": now})
        order_logger(__name__, order.id).info("Reopening request %s rejected", request.id)
        notice = OrderNotice.from_order(order)
        notices.append(
            lambda notifier: notifier.notify_reopening_rejected(notice, response_message)
        )
        data = serialize_reopening_request(request)
    dispatch_notices(notices, data["order_id"])
    return data


def respond(
    request_id: int,
    action: str,
    response_type: str | None = None,
    message: str | None = None,
    actor: Actor | None = None,
    now: datetime | None = None,
) -> dict:
    if action == "approve":
        return approve_request(request_id, actor, now)
    if action == "reject":
        return reject_request(request_id, response_type, message, actor, now)
    raise ValidationError("Action must be 'approve' or 'reject'")


def get_reopening_status(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    """Latest request for an order, plus whether another one could be filed."""
    now = now or utcnow()
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id)
        ensure_can_view(order, actor)
        latest = repo.latest_reopening_request(order.id)
        return {
            "order_id": order.id,
            "reopening_count": order.reopening_count,
            "latest_request": serialize_reopening_request(latest) if latest else None,
            "eligibility": _eligibility(repo, order, now, get_policy()),
        }


def list_concessionaire_requests(
    concessionaire_id: int, status: str | None = None, actor: Actor | None = None
) -> list[dict]:
    ensure_acting_for(actor, concessionaire_id)
    if status == "all":
        status = None
    if status is not None:
        try:
            status = ReopeningStatus(status).value
        except ValueError as exc:
            raise ValidationError(f"Unknown request status '{status}'") from exc
    with get_session() as session:
        repo = OrderRepository(session)
        requests = repo.list_reopening_requests(concessionaire_id, status)
        return [serialize_reopening_request(request) for request in requests]


def get_request(request_id: int, actor: Actor | None = None) -> dict:
    with get_session() as session:
        repo = OrderRepository(session)
        request = repo.get_reopening_request(request_id)
        ensure_can_view(request.order, actor)
        return serialize_reopening_request(request)
