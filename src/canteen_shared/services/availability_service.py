"""
Availability ledger for menu items and item variations.

Flipping availability never touches existing order rows; historical orders keep
their price snapshots and selections.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from canteen_shared.datetime_utils import utcnow
from canteen_shared.errors import ValidationError
from canteen_shared.logging_config import get_logger
from canteen_shared.models import ItemVariation, MenuItem
from canteen_shared.repositories import OrderRepository
from canteen_shared.services.decline_reasons import AffectedEntry, AvailabilityChange

logger = get_logger(__name__)


class AvailabilityLedger:
    def __init__(self, repo: OrderRepository) -> None:
        self.repo = repo

    def set_item_available(
        self, item_id: int, available: bool, now: datetime | None = None
    ) -> MenuItem:
        item = self.repo.set_item_availability(item_id, available, now or utcnow())
        logger.info("Menu item %s availability set to %s", item_id, available)
        return item

    def set_variation_available(
        self, variation_id: int, available: bool, now: datetime | None = None
    ) -> ItemVariation:
        variation = self.repo.set_variation_availability(variation_id, available, now or utcnow())
        logger.info("Variation %s availability set to %s", variation_id, available)
        return variation

    def apply(self, changes: Iterable[AvailabilityChange], now: datetime | None = None) -> None:
        """Apply a decline's side-effect list inside the caller's transaction."""
        now = now or utcnow()
        for change in changes:
            if change.kind == "item":
                self.set_item_available(change.id, change.available, now)
            elif change.kind == "variation":
                self.set_variation_available(change.id, change.available, now)
            else:
                raise ValidationError(f"Unknown availability target: {change.kind}")

    def resolve_affected(
        self,
        concession_id: int,
        item_ids: Iterable[int],
        variation_ids: Iterable[int],
    ) -> tuple[list[AffectedEntry], list[AffectedEntry]]:
        """
        Look up the named items and variations, checking they belong to the
        concession. Duplicates are dropped, order is kept.
        """
        items: list[AffectedEntry] = []
        for item_id in dict.fromkeys(item_ids):
            item = self.repo.get_menu_item(item_id)
            if item.concession_id != concession_id:
                raise ValidationError(
                    f"Menu item {item_id} does not belong to this concession"
                )
            items.append(AffectedEntry(item.id, item.item_name))

        variations: list[AffectedEntry] = []
        for variation_id in dict.fromkeys(variation_ids):
            variation = self.repo.get_variation(variation_id)
            owner = variation.group.menu_item
            if owner.concession_id != concession_id:
                raise ValidationError(
                    f"Variation {variation_id} does not belong to this concession"
                )
            variations.append(
                AffectedEntry(variation.id, f"{variation.variation_name} ({owner.item_name})")
            )
        return items, variations
