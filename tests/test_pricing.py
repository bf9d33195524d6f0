"""Tests for line totals, selection rules and price overrides."""

from decimal import Decimal

import pytest

from canteen_shared.errors import UnavailableOptionsError, ValidationError
from canteen_shared.models import ItemVariation, ItemVariationGroup, MenuItem
from canteen_shared.services import pricing
from canteen_shared.services.pricing import VariationLine


def make_item(min_selection=1, max_selection=1, available=True, options_available=(True, True)):
    item = MenuItem(id=1, item_name="Pork Sisig", price=Decimal("65.00"), available=available)
    group = ItemVariationGroup(
        id=10, variation_group_name="Rice", min_selection=min_selection, max_selection=max_selection
    )
    plain = ItemVariation(
        id=100, item_variation_group_id=10, variation_name="Plain Rice",
        additional_price=Decimal("0"), max_amount=1, available=options_available[0],
    )
    garlic = ItemVariation(
        id=101, item_variation_group_id=10, variation_name="Garlic Rice",
        additional_price=Decimal("5"), max_amount=2, available=options_available[1],
    )
    group.variations = [plain, garlic]
    item.variation_groups = [group]
    return item, plain, garlic


class TestLineTotals:
    def test_variation_quantity_multiplies_additional_price(self):
        total = pricing.line_total(Decimal("50"), 1, [VariationLine(Decimal("15"), 2)])
        assert total == Decimal("80")

    def test_item_quantity_multiplies_whole_unit(self):
        total = pricing.line_total(
            Decimal("50"), 3, [VariationLine(Decimal("15"), 1), VariationLine(Decimal("10"), 1)]
        )
        assert total == Decimal("225")

    def test_no_variations(self):
        assert pricing.line_total(Decimal("25.50"), 2, []) == Decimal("51.00")

    def test_quantize_rounds_half_up(self):
        assert pricing.quantize_money(Decimal("1.005")) == Decimal("1.01")
        assert pricing.quantize_money(Decimal("1.004")) == Decimal("1.00")

    def test_to_decimal_avoids_float_noise(self):
        assert pricing.to_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", [True, "abc", None])
    def test_to_decimal_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            pricing.to_decimal(value)


class TestPriceOverride:
    def test_no_override(self):
        assert pricing.resolve_price_override(Decimal("80"), None, None) == (None, None)

    def test_same_amount_is_not_an_override(self):
        assert pricing.resolve_price_override(Decimal("80"), "80.00", None) == (None, None)

    def test_override_with_reason(self):
        amount, reason = pricing.resolve_price_override(Decimal("80"), 70, "  discount ")
        assert amount == Decimal("70.00")
        assert reason == "discount"

    def test_override_requires_reason(self):
        with pytest.raises(ValidationError, match="reason is required"):
            pricing.resolve_price_override(Decimal("80"), 70, "  ")

    def test_negative_override_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            pricing.resolve_price_override(Decimal("80"), -1, "refund")

    def test_zero_override_allowed(self):
        amount, _ = pricing.resolve_price_override(Decimal("80"), 0, "free meal")
        assert amount == Decimal("0.00")


class TestSelections:
    def test_valid_single_selection(self):
        item, plain, _ = make_item()
        pricing.validate_selections(item, [plain])

    def test_required_group_without_selection(self):
        item, _, _ = make_item()
        with pytest.raises(ValidationError, match="requires a selection"):
            pricing.validate_selections(item, [])

    def test_too_many_distinct_selections(self):
        item, plain, garlic = make_item()
        with pytest.raises(ValidationError, match="between 1 and 1"):
            pricing.validate_selections(item, [plain, garlic])

    def test_required_group_with_nothing_available(self):
        item, _, _ = make_item(options_available=(False, False))
        with pytest.raises(UnavailableOptionsError, match="no available options"):
            pricing.validate_selections(item, [])

    def test_selected_variation_unavailable(self):
        item, plain, _ = make_item(options_available=(False, True))
        with pytest.raises(UnavailableOptionsError, match="Plain Rice"):
            pricing.validate_selections(item, [plain])

    def test_item_unavailable(self):
        item, plain, _ = make_item(available=False)
        with pytest.raises(UnavailableOptionsError, match="no longer available"):
            pricing.validate_selections(item, [plain])

    def test_optional_group_may_be_empty(self):
        item, _, _ = make_item(min_selection=0, max_selection=2)
        pricing.validate_selections(item, [])

    def test_variation_quantity_capped_by_max_amount(self):
        item, _, garlic = make_item()
        pricing.validate_variation_for_item(item, garlic, 2)
        with pytest.raises(ValidationError, match="between 1 and 2"):
            pricing.validate_variation_for_item(item, garlic, 3)

    def test_variation_from_another_item(self):
        item, _, _ = make_item()
        stranger = ItemVariation(
            id=999, item_variation_group_id=77, variation_name="Cheese",
            additional_price=Decimal("10"), max_amount=1, available=True,
        )
        with pytest.raises(ValidationError, match="does not belong"):
            pricing.validate_variation_for_item(item, stranger, 1)
