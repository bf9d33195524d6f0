"""
Order creation and cart management.

Orders start either in the cart or directly as pending. Line items and their
variations are written in the same transaction as the order, and every change
to them is followed by a total recalculation so the stored total always matches
the rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from canteen_shared.constants import (
    ConcessionStatus,
    DiningOption,
    OrderEvent,
    OrderStatus,
    PaymentMethod,
)
from canteen_shared.datetime_utils import utcnow
from canteen_shared.db import get_session
from canteen_shared.errors import ConflictError, ValidationError
from canteen_shared.logging_config import get_logger, order_logger
from canteen_shared.models import Concession, Order, OrderDetail
from canteen_shared.repositories import OrderRepository
from canteen_shared.serializers import serialize_order
from canteen_shared.services import pricing
from canteen_shared.services.access import Actor, ensure_acting_for, ensure_customer
from canteen_shared.services.notifications_service import OrderNotice
from canteen_shared.services.order_service import (
    Notice,
    dispatch_notices,
    recalculate_in_session,
    transition_in_session,
)

logger = get_logger(__name__)


def _dining_option(value: str | None) -> str:
    if not value:
        return DiningOption.DINE_IN.value
    try:
        return DiningOption(value).value
    except ValueError as exc:
        raise ValidationError(f"Unknown dining option '{value}'") from exc


def _payment_method(concession: Concession, value: str | None) -> PaymentMethod:
    if not value:
        raise ValidationError("A payment method is required")
    try:
        method = PaymentMethod.normalize(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown payment method '{value}'") from exc
    if not concession.accepts_payment_method(method):
        raise ValidationError(f"This concession does not accept {method.value} payments")
    return method


def _ensure_open(concession: Concession) -> None:
    if concession.status != ConcessionStatus.OPEN.value:
        raise ValidationError(f"{concession.concession_name} is currently closed")


def _write_variations(
    repo: OrderRepository, detail: OrderDetail, variations: list[dict[str, Any]]
) -> None:
    item = repo.get_menu_item(detail.item_id)
    seen: set[int] = set()
    for entry in variations:
        variation_id = entry.get("variation_id")
        quantity = entry.get("quantity", 1)
        if variation_id in seen:
            raise ValidationError(f"Variation {variation_id} was selected more than once")
        seen.add(variation_id)
        variation = repo.get_variation(variation_id)
        pricing.validate_variation_for_item(item, variation, quantity)
        repo.insert_order_item_variation(detail, variation, quantity)


def _add_line(repo: OrderRepository, order: Order, line: dict[str, Any]) -> OrderDetail:
    item = repo.get_menu_item(line.get("menu_item_id"))
    if item.concession_id != order.concession_id:
        raise ValidationError(f"'{item.item_name}' is not sold by this concession")
    quantity = line.get("quantity", 1)
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    detail = repo.insert_order_detail(
        order,
        item=item,
        quantity=quantity,
        total_price=pricing.quantize_money(item.price * quantity),
        note=line.get("note"),
        dining_option=_dining_option(line.get("dining_option")),
    )
    _write_variations(repo, detail, line.get("variations") or [])
    return detail


def _finalize(order: Order) -> None:
    """Checks run whenever an order leaves the cart or is placed directly."""
    if not order.details:
        raise ValidationError("Cannot place an order without items")
    _ensure_open(order.concession)
    _payment_method(order.concession, order.payment_method)
    for detail in order.details:
        pricing.validate_detail(detail)


def _new_order_notice(order: Order) -> Notice:
    notice = OrderNotice.from_order(order)
    return lambda notifier: notifier.notify_new_order(notice)


def create_order(
    customer_id: int,
    concession_id: int,
    payment_method: str,
    items: list[dict[str, Any]],
    in_cart: bool = False,
    actor: Actor | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Create an order with its line items in one transaction.

    ``in_cart=True`` keeps the order in the customer's cart; otherwise it is
    placed immediately as pending and the concessionaire is notified.
    """
    ensure_acting_for(actor, customer_id)
    if not items:
        raise ValidationError("An order needs at least one item")
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        concession = repo.get_concession(concession_id)
        method = _payment_method(concession, payment_method)
        if not in_cart:
            _ensure_open(concession)

        order = repo.add_order(
            Order(
                customer_id=customer_id,
                concession_id=concession.id,
                status=OrderStatus.CART if in_cart else OrderStatus.PENDING,
                payment_method=method.value,
                in_cart=in_cart,
                total_price=pricing.quantize_money(0),
                created_at=now,
                updated_at=now,
            )
        )
        for line in items:
            _add_line(repo, order, line)
        order = recalculate_in_session(repo, order, now)
        if not in_cart:
            _finalize(order)
            notices.append(_new_order_notice(order))

        order_logger(__name__, order.id).info(
            "Order created",
            extra={"status": order.status.value, "customer_id": customer_id},
        )
        data = serialize_order(order)
    dispatch_notices(notices, data["id"])
    return data


def _cart_order(repo: OrderRepository, order_id: int, actor: Actor | None) -> Order:
    order = repo.get_order(order_id, for_update=True)
    ensure_customer(order, actor)
    if order.status != OrderStatus.CART:
        raise ConflictError("Only orders in the cart can be edited")
    return order


def add_detail(
    order_id: int, line: dict[str, Any], actor: Actor | None = None, now: datetime | None = None
) -> dict:
    now = now or utcnow()
    with get_session() as session:
        repo = OrderRepository(session)
        order = _cart_order(repo, order_id, actor)
        _add_line(repo, order, line)
        order = recalculate_in_session(repo, order, now)
        return serialize_order(order)


def update_detail(
    detail_id: int,
    changes: dict[str, Any],
    actor: Actor | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Change a cart line's quantity, note, dining option or variations.

    Variations, when given, replace the current selection: the old rows are
    deleted and the new ones inserted inside the same transaction.
    """
    now = now or utcnow()
    with get_session() as session:
        repo = OrderRepository(session)
        detail = repo.get_order_detail(detail_id)
        order = _cart_order(repo, detail.order_id, actor)
        detail = next(d for d in order.details if d.id == detail_id)

        if changes.get("quantity") is not None:
            if changes["quantity"] < 1:
                raise ValidationError("Quantity must be at least 1")
            detail.quantity = changes["quantity"]
        if "note" in changes:
            detail.note = changes["note"]
        if changes.get("dining_option") is not None:
            detail.dining_option = _dining_option(changes["dining_option"])
        if changes.get("variations") is not None:
            repo.delete_order_item_variations_for_detail(detail)
            _write_variations(repo, detail, changes["variations"])

        order = recalculate_in_session(repo, order, now)
        return serialize_order(order)


def remove_detail(detail_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    with get_session() as session:
        repo = OrderRepository(session)
        detail = repo.get_order_detail(detail_id)
        order = _cart_order(repo, detail.order_id, actor)
        repo.delete_order_detail(next(d for d in order.details if d.id == detail_id))
        order = recalculate_in_session(repo, order, now)
        return serialize_order(order)


def get_cart(customer_id: int, actor: Actor | None = None) -> list[dict]:
    ensure_acting_for(actor, customer_id)
    with get_session() as session:
        repo = OrderRepository(session)
        return [serialize_order(order) for order in repo.list_cart_orders(customer_id)]


def _checkout_in_session(
    repo: OrderRepository, order: Order, actor: Actor | None, now: datetime
) -> Order:
    if order.status != OrderStatus.CART:
        raise ConflictError(f"Order {order.id} is not in the cart")
    order = recalculate_in_session(repo, order, now)
    _finalize(order)
    order, _ = transition_in_session(
        repo, order, OrderEvent.CHECKOUT, actor, now, {"total_price": order.total_price}
    )
    return order


def checkout_order(order_id: int, actor: Actor | None = None, now: datetime | None = None) -> dict:
    now = now or utcnow()
    notices: list[Notice] = []
    with get_session() as session:
        repo = OrderRepository(session)
        order = repo.get_order(order_id, for_update=True)
        ensure_customer(order, actor)
        order = _checkout_in_session(repo, order, actor, now)
        notices.append(_new_order_notice(order))
        data = serialize_order(order)
    dispatch_notices(notices, order_id)
    return data


def checkout_cart(customer_id: int, actor: Actor | None = None, now: datetime | None = None) -> list[dict]:
    """Check out every cart order of a customer; all of them or none."""
    ensure_acting_for(actor, customer_id)
    now = now or utcnow()
    notices: list[Notice] = []
    placed: list[dict] = []
    with get_session() as session:
        repo = OrderRepository(session)
        cart = repo.list_cart_orders(customer_id)
        if not cart:
            raise ValidationError("The cart is empty")
        for cart_order in cart:
            order = repo.get_order(cart_order.id, for_update=True)
            order = _checkout_in_session(repo, order, actor, now)
            notices.append(_new_order_notice(order))
            placed.append(serialize_order(order))
    dispatch_notices(notices)
    logger.info("Cart checked out", extra={"customer_id": customer_id, "orders": len(placed)})
    return placed
