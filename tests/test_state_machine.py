"""Tests for the order state machine (no database)."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from canteen_shared.constants import ORDER_TRANSITIONS, ActorScope, OrderEvent, OrderStatus
from canteen_shared.errors import ConflictError, ForbiddenError, OrderStateError, ValidationError
from canteen_shared.models import Concession, Order
from canteen_shared.policy import DeclineCategory
from canteen_shared.services.decline_reasons import AffectedEntry, DeclineReason
from canteen_shared.services.order_state_machine import TransitionContext, order_state_machine

NOW = datetime(2026, 3, 2, 9, 0, 0)


def make_order(status=OrderStatus.PENDING, payment_method="gcash", **overrides):
    values = {
        "id": 1,
        "status": status,
        "payment_method": payment_method,
        "total_price": Decimal("80.00"),
        "concession": Concession(receipt_timer=timedelta(minutes=20)),
    }
    values.update(overrides)
    return Order(**values)


def apply(order, event, scope=ActorScope.CONCESSIONAIRE, now=NOW, **payload):
    return order_state_machine.apply_transition(
        TransitionContext(order=order, event=event, actor_scope=scope, now=now, payload=payload)
    )


class TestTransitionRules:
    def test_table_entries_name_target_and_scopes(self):
        for policy in ORDER_TRANSITIONS.values():
            assert set(policy) == {"target", "allowed_scopes"}

    def test_can_transition_checks_scope(self):
        assert order_state_machine.can_transition(
            OrderStatus.PENDING, OrderEvent.ACCEPT, ActorScope.CONCESSIONAIRE
        )
        assert not order_state_machine.can_transition(
            OrderStatus.PENDING, OrderEvent.ACCEPT, ActorScope.CUSTOMER
        )

    def test_illegal_source_status(self):
        with pytest.raises(OrderStateError) as exc_info:
            apply(make_order(OrderStatus.ACCEPTED), OrderEvent.DECLINE,
                  decline_reason=DeclineReason(DeclineCategory.OTHER, "x"))
        assert exc_info.value.current == OrderStatus.ACCEPTED
        assert exc_info.value.target == OrderStatus.DECLINED
        assert isinstance(exc_info.value, ConflictError)

    def test_wrong_scope(self):
        with pytest.raises(ForbiddenError):
            apply(make_order(), OrderEvent.ACCEPT, scope=ActorScope.CUSTOMER)

    def test_customer_cannot_mark_ready(self):
        with pytest.raises(ForbiddenError):
            apply(make_order(OrderStatus.ACCEPTED), OrderEvent.MARK_READY, scope=ActorScope.CUSTOMER)

    @pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_terminal_orders_do_not_move(self, status):
        with pytest.raises(OrderStateError):
            apply(make_order(status), OrderEvent.ACCEPT)

    def test_decline_of_declined_order_is_noop(self):
        result = apply(make_order(OrderStatus.DECLINED), OrderEvent.DECLINE)
        assert result.noop
        assert result.target == OrderStatus.DECLINED

    def test_cancel_of_cancelled_order_is_noop(self):
        result = apply(make_order(OrderStatus.CANCELLED), OrderEvent.CANCEL, scope=ActorScope.CUSTOMER)
        assert result.noop


class TestHandlers:
    def test_checkout_requires_total(self):
        with pytest.raises(ValidationError):
            apply(make_order(OrderStatus.CART), OrderEvent.CHECKOUT, scope=ActorScope.CUSTOMER)

    def test_checkout_leaves_cart(self):
        result = apply(
            make_order(OrderStatus.CART), OrderEvent.CHECKOUT,
            scope=ActorScope.CUSTOMER, total_price=Decimal("80"),
        )
        assert result.target == OrderStatus.PENDING
        assert result.fields["in_cart"] is False

    def test_accept_gcash_starts_timer_from_concession(self):
        result = apply(make_order(), OrderEvent.ACCEPT)
        assert result.target == OrderStatus.ACCEPTED
        assert result.fields["accepted_at"] == NOW
        assert result.fields["receipt_timer"] == timedelta(minutes=20)
        assert result.fields["payment_receipt_expires_at"] == NOW + timedelta(minutes=20)
        assert result.fields["updated_total_price"] is None

    def test_accept_on_counter_has_no_deadline(self):
        result = apply(make_order(payment_method="on-counter"), OrderEvent.ACCEPT)
        assert "payment_receipt_expires_at" not in result.fields

    def test_accept_with_override(self):
        result = apply(
            make_order(), OrderEvent.ACCEPT,
            updated_total_price="70", price_change_reason="discount",
        )
        assert result.fields["updated_total_price"] == Decimal("70.00")
        assert result.fields["price_change_reason"] == "discount"

    def test_decline_requires_reason(self):
        with pytest.raises(ValidationError):
            apply(make_order(), OrderEvent.DECLINE)

    def test_decline_lists_availability_changes(self):
        reason = DeclineReason(DeclineCategory.ITEM_NOT_AVAILABLE).with_affected(
            [AffectedEntry(5, "Chicken Adobo")], [AffectedEntry(9, "Fried Egg (Chicken Adobo)")]
        )
        result = apply(make_order(), OrderEvent.DECLINE, decline_reason=reason)
        assert [(c.kind, c.id, c.available) for c in result.availability_changes] == [
            ("item", 5, False),
            ("variation", 9, False),
        ]
        assert result.fields["decline_reason_data"]["category"] == "item_not_available"
        assert result.fields["declined_at"] == NOW

    def test_expire_before_deadline(self):
        order = make_order(
            OrderStatus.ACCEPTED, accepted_at=NOW,
            payment_receipt_expires_at=NOW + timedelta(minutes=15),
        )
        with pytest.raises(ConflictError):
            apply(order, OrderEvent.EXPIRE, scope=ActorScope.SYSTEM, now=NOW + timedelta(minutes=5))

    def test_expire_after_deadline(self):
        order = make_order(
            OrderStatus.ACCEPTED, accepted_at=NOW,
            payment_receipt_expires_at=NOW + timedelta(minutes=15),
        )
        later = NOW + timedelta(minutes=16)
        result = apply(order, OrderEvent.EXPIRE, scope=ActorScope.SYSTEM, now=later)
        assert result.target == OrderStatus.DECLINED
        assert result.fields["decline_reason_data"]["category"] == "receipt_timeout"
        assert "automatically declined" in result.fields["decline_reason"]

    def test_only_system_expires(self):
        order = make_order(OrderStatus.ACCEPTED, payment_receipt_expires_at=NOW)
        with pytest.raises(ForbiddenError):
            apply(order, OrderEvent.EXPIRE, now=NOW + timedelta(minutes=1))

    def test_decline_unpaid_requires_gcash(self):
        with pytest.raises(ValidationError):
            apply(make_order(OrderStatus.ACCEPTED, payment_method="on-counter"), OrderEvent.DECLINE_UNPAID)

    def test_decline_unpaid_with_screenshot(self):
        with pytest.raises(ConflictError):
            apply(make_order(OrderStatus.ACCEPTED, gcash_screenshot=b"png"), OrderEvent.DECLINE_UNPAID)

    def test_decline_unpaid_default_reason(self):
        result = apply(make_order(OrderStatus.ACCEPTED), OrderEvent.DECLINE_UNPAID)
        assert result.fields["decline_reason"] == "Valid GCash payment was not received"

    def test_reopen_resets_payment_and_keeps_old_reason(self):
        order = make_order(
            OrderStatus.DECLINED,
            decline_reason="Order automatically declined",
            declined_at=NOW - timedelta(hours=1),
            gcash_screenshot=b"old",
            payment_rejection_reason="Receipt image is unclear or unreadable",
        )
        result = apply(order, OrderEvent.REOPEN)
        assert result.target == OrderStatus.ACCEPTED
        assert result.fields["payment_receipt_expires_at"] == NOW + timedelta(minutes=20)
        assert result.fields["original_decline_reason"] == "Order automatically declined"
        assert result.fields["decline_reason"] is None
        assert result.fields["gcash_screenshot"] is None
        assert result.fields["payment_rejection_reason"] is None
        assert result.fields["reopened_at"] == NOW

    def test_reopen_on_counter_has_no_deadline(self):
        order = make_order(
            OrderStatus.DECLINED, payment_method="on-counter", decline_reason="Order too large"
        )
        result = apply(order, OrderEvent.REOPEN)
        assert result.target == OrderStatus.ACCEPTED
        assert result.fields["payment_receipt_expires_at"] is None
        assert result.fields["accepted_at"] == NOW

    def test_machine_does_not_mutate_order(self):
        order = make_order()
        apply(order, OrderEvent.ACCEPT)
        assert order.status == OrderStatus.PENDING
        assert order.accepted_at is None
