"""
Order State Machine - keeps transition rules out of the Order model and the
HTTP handlers.

The machine validates an event against ``ORDER_TRANSITIONS`` and produces a
``TransitionResult``: the target status, the field writes and the availability
side effects. It never reads or writes storage; ``order_service`` applies the
result through the repository with a compare-and-set on the source status.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from canteen_shared.constants import (
    EVENT_TARGETS,
    IDEMPOTENT_TARGETS,
    ORDER_TRANSITIONS,
    ActorScope,
    OrderEvent,
    OrderStatus,
)
from canteen_shared.errors import ConflictError, ForbiddenError, OrderStateError, ValidationError
from canteen_shared.models import Order
from canteen_shared.policy import DeclineCategory
from canteen_shared.services import pricing, receipt_timer
from canteen_shared.services.decline_reasons import (
    RECEIPT_TIMEOUT_REASON,
    AvailabilityChange,
    DeclineReason,
)


@dataclass
class TransitionContext:
    """Everything a handler needs to compute a transition."""

    order: Order
    event: OrderEvent
    actor_scope: ActorScope
    now: datetime
    actor_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransitionResult:
    source: OrderStatus
    target: OrderStatus
    fields: dict[str, Any] = field(default_factory=dict)
    availability_changes: list[AvailabilityChange] = field(default_factory=list)
    noop: bool = False


class OrderStateMachine:
    """
    State machine for canteen orders.

    Responsibilities:
    - Reject events that are not legal from the current status
    - Check the actor scope allowed for each transition
    - Compute the field writes and side effects of a transition
    """

    def __init__(self) -> None:
        self._transition_handlers: dict[
            tuple[OrderStatus, OrderEvent], Callable[[TransitionContext], TransitionResult]
        ] = {
            (OrderStatus.CART, OrderEvent.CHECKOUT): self._handle_checkout,
            (OrderStatus.PENDING, OrderEvent.ACCEPT): self._handle_accept,
            (OrderStatus.PENDING, OrderEvent.DECLINE): self._handle_decline,
            (OrderStatus.PENDING, OrderEvent.CANCEL): self._handle_plain,
            (OrderStatus.ACCEPTED, OrderEvent.MARK_READY): self._handle_plain,
            (OrderStatus.ACCEPTED, OrderEvent.EXPIRE): self._handle_expire,
            (OrderStatus.ACCEPTED, OrderEvent.DECLINE_UNPAID): self._handle_decline_unpaid,
            (OrderStatus.READY_FOR_PICKUP, OrderEvent.COMPLETE): self._handle_plain,
            (OrderStatus.DECLINED, OrderEvent.REOPEN): self._handle_reopen,
        }

    def can_transition(
        self, current_status: OrderStatus, event: OrderEvent, actor_scope: ActorScope
    ) -> bool:
        policy = ORDER_TRANSITIONS.get((current_status, event))
        return bool(policy) and actor_scope in policy["allowed_scopes"]

    def is_idempotent_noop(self, order: Order, event: OrderEvent) -> bool:
        """Declining a declined order or cancelling a cancelled one changes nothing."""
        target = EVENT_TARGETS[event]
        return target in IDEMPOTENT_TARGETS and order.status == target

    def validate_transition(self, context: TransitionContext) -> dict[str, Any]:
        current_status = context.order.status
        target_status = EVENT_TARGETS[context.event]

        policy = ORDER_TRANSITIONS.get((current_status, context.event))
        if not policy:
            raise OrderStateError(
                f"Cannot {context.event.value.replace('_', ' ')} an order that is "
                f"'{current_status.value}'",
                current_status,
                target_status,
            )

        if context.actor_scope not in policy["allowed_scopes"]:
            raise ForbiddenError(
                f"A {context.actor_scope.value} cannot {context.event.value.replace('_', ' ')} "
                "this order"
            )
        return policy

    def apply_transition(self, context: TransitionContext) -> TransitionResult:
        """Validate and compute a transition. Does not persist anything."""
        if self.is_idempotent_noop(context.order, context.event):
            return TransitionResult(
                source=context.order.status, target=context.order.status, noop=True
            )

        self.validate_transition(context)
        handler = self._transition_handlers[(context.order.status, context.event)]
        return handler(context)

    # ------------------------------------------------------------- handlers

    def _result(self, context: TransitionContext, **kwargs) -> TransitionResult:
        return TransitionResult(
            source=context.order.status, target=EVENT_TARGETS[context.event], **kwargs
        )

    def _handle_plain(self, context: TransitionContext) -> TransitionResult:
        return self._result(context)

    def _handle_checkout(self, context: TransitionContext) -> TransitionResult:
        total = context.payload.get("total_price")
        if total is None:
            raise ValidationError("Order total must be recalculated before checkout")
        return self._result(
            context,
            fields={"in_cart": False, "total_price": pricing.quantize_money(total)},
        )

    def _handle_accept(self, context: TransitionContext) -> TransitionResult:
        order = context.order
        updated_total, reason = pricing.resolve_price_override(
            order.total_price,
            context.payload.get("updated_total_price"),
            context.payload.get("price_change_reason"),
        )
        timer = receipt_timer.live_timer_for(order)
        fields: dict[str, Any] = {
            "accepted_at": context.now,
            "receipt_timer": timer,
            "updated_total_price": updated_total,
            "price_change_reason": reason,
        }
        if receipt_timer.is_gcash(order):
            fields["payment_receipt_expires_at"] = context.now + timer
        return self._result(context, fields=fields)

    def _decline_fields(self, reason: DeclineReason, now: datetime) -> dict[str, Any]:
        return {
            "decline_reason": reason.render(),
            "decline_reason_data": reason.to_dict(),
            "declined_at": now,
        }

    def _handle_decline(self, context: TransitionContext) -> TransitionResult:
        reason = context.payload.get("decline_reason")
        if not isinstance(reason, DeclineReason):
            raise ValidationError("A decline reason is required")
        return self._result(
            context,
            fields=self._decline_fields(reason, context.now),
            availability_changes=reason.availability_changes(),
        )

    def _handle_expire(self, context: TransitionContext) -> TransitionResult:
        if not receipt_timer.should_auto_decline(context.order, context.now):
            raise ConflictError("The receipt deadline for this order has not passed")
        return self._result(
            context, fields=self._decline_fields(RECEIPT_TIMEOUT_REASON, context.now)
        )

    def _handle_decline_unpaid(self, context: TransitionContext) -> TransitionResult:
        order = context.order
        if not receipt_timer.is_gcash(order):
            raise ValidationError("Only GCash orders can be declined for missing payment")
        if order.gcash_screenshot is not None:
            raise ConflictError("Reject the uploaded receipt before declining the order")
        reason = context.payload.get("decline_reason") or DeclineReason(
            category=DeclineCategory.PAYMENT_NOT_RECEIVED
        )
        return self._result(context, fields=self._decline_fields(reason, context.now))

    def _handle_reopen(self, context: TransitionContext) -> TransitionResult:
        order = context.order
        timer = receipt_timer.live_timer_for(order)
        fields: dict[str, Any] = {
            "accepted_at": context.now,
            "receipt_timer": timer,
            "payment_receipt_expires_at": None,
            "gcash_screenshot": None,
            "gcash_screenshot_uploaded_at": None,
            "payment_rejection_reason": None,
            "original_decline_reason": order.decline_reason,
            "decline_reason": None,
            "decline_reason_data": None,
            "declined_at": None,
            "reopened_at": context.now,
            "reopening_requested": False,
        }
        if receipt_timer.is_gcash(order):
            fields["payment_receipt_expires_at"] = context.now + timer
        return self._result(context, fields=fields)


order_state_machine = OrderStateMachine()
