"""
Pricing resolver for canteen orders.

Totals are computed from the price snapshots stored on the order rows so that a
menu price change never rewrites an existing order. Every value is a ``Decimal``;
rounding to cents happens only when a value is written to the database.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from canteen_shared.errors import UnavailableOptionsError, ValidationError
from canteen_shared.models import ItemVariation, MenuItem, OrderDetail

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce a numeric value to Decimal without going through float rounding."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def quantize_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, ROUND_HALF_UP)


@dataclass(frozen=True)
class VariationLine:
    additional_price: Decimal
    quantity: int


def line_total(item_price: Decimal, quantity: int, variations: Iterable[VariationLine]) -> Decimal:
    """(item_price + sum(additional_price * variation_quantity)) * quantity"""
    unit = to_decimal(item_price)
    for line in variations:
        unit += to_decimal(line.additional_price) * line.quantity
    return unit * quantity


def detail_total(detail: OrderDetail) -> Decimal:
    return line_total(
        detail.item_price,
        detail.quantity,
        (VariationLine(v.additional_price, v.quantity) for v in detail.variations),
    )


def order_total(details: Iterable[OrderDetail]) -> Decimal:
    total = Decimal("0")
    for detail in details:
        total += detail_total(detail)
    return total


# ---------------------------------------------------------------------------
# Selection validation
# ---------------------------------------------------------------------------


def validate_variation_for_item(item: MenuItem, variation: ItemVariation, quantity: int) -> None:
    """A variation must belong to one of the item's groups and respect max_amount."""
    group_ids = {group.id for group in item.variation_groups}
    if variation.item_variation_group_id not in group_ids:
        raise ValidationError(
            f"Variation {variation.id} does not belong to menu item {item.id}"
        )
    if quantity < 1 or quantity > variation.max_amount:
        raise ValidationError(
            f"Quantity for '{variation.variation_name}' must be between 1 and "
            f"{variation.max_amount}"
        )


def validate_selections(item: MenuItem, selected: Iterable[ItemVariation]) -> None:
    """
    Finalize-time check of an ordered item's variation choices.

    Raises:
        UnavailableOptionsError: a required group has no available variation left,
            or a chosen variation has since been marked unavailable
        ValidationError: a group's selection count is outside [min, max]
    """
    selected = list(selected)
    if not item.available:
        raise UnavailableOptionsError(f"'{item.item_name}' is no longer available")

    for variation in selected:
        if not variation.available:
            raise UnavailableOptionsError(
                f"'{variation.variation_name}' for '{item.item_name}' is no longer available"
            )

    for group in item.variation_groups:
        chosen = {v.id for v in selected if v.item_variation_group_id == group.id}
        if group.required_selection and not any(v.available for v in group.variations):
            raise UnavailableOptionsError(
                f"'{group.variation_group_name}' for '{item.item_name}' has no available options"
            )
        if group.required_selection and not chosen:
            raise ValidationError(
                f"'{group.variation_group_name}' for '{item.item_name}' requires a selection"
            )
        if chosen and not (group.min_selection <= len(chosen) <= group.max_selection):
            raise ValidationError(
                f"'{group.variation_group_name}' for '{item.item_name}' requires between "
                f"{group.min_selection} and {group.max_selection} selections"
            )


def validate_detail(detail: OrderDetail) -> None:
    validate_selections(detail.menu_item, (row.variation for row in detail.variations))


# ---------------------------------------------------------------------------
# Price override
# ---------------------------------------------------------------------------


def resolve_price_override(
    current_total: Decimal, updated_total_price, reason: str | None
) -> tuple[Decimal | None, str | None]:
    """
    Decide the override recorded when an order is accepted.

    Returns ``(updated_total_price, price_change_reason)``; both are None when
    no override applies.
    """
    if updated_total_price is None or updated_total_price == "":
        return None, None

    amount = to_decimal(updated_total_price)
    if not amount.is_finite():
        raise ValidationError("Updated total price must be a number")
    if amount < 0:
        raise ValidationError("Updated total price cannot be negative")

    amount = quantize_money(amount)
    if amount == quantize_money(current_total):
        return None, None

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required when changing the order total")
    return amount, reason
