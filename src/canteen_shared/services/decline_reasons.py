"""
Structured decline reasons.

A decline reason is kept as ``{category, free_text, affected_items,
affected_variations}`` and only flattened to a display string when it is
stored on the order. The structured form is persisted alongside the text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from canteen_shared.errors import ValidationError
from canteen_shared.policy import (
    DECLINE_MESSAGES,
    UNAVAILABILITY_CATEGORIES,
    DeclineCategory,
    compose_reason_message,
)


@dataclass(frozen=True)
class AffectedEntry:
    id: int
    name: str


@dataclass(frozen=True)
class AvailabilityChange:
    """One entry of the side-effect list a decline hands to the availability ledger."""

    kind: str  # "item" | "variation"
    id: int
    available: bool


@dataclass(frozen=True)
class DeclineReason:
    category: DeclineCategory
    free_text: str | None = None
    affected_items: tuple[AffectedEntry, ...] = field(default_factory=tuple)
    affected_variations: tuple[AffectedEntry, ...] = field(default_factory=tuple)

    @classmethod
    def parse(
        cls,
        category: str | DeclineCategory | None,
        free_text: str | None = None,
    ) -> DeclineReason:
        """Validate the category/free text pair sent by a client."""
        if not category:
            if free_text and free_text.strip():
                category = DeclineCategory.OTHER
            else:
                raise ValidationError("A decline reason is required")
        try:
            category = DeclineCategory(category)
        except ValueError as exc:
            raise ValidationError(f"Unknown decline reason: {category}") from exc

        text = (free_text or "").strip() or None
        if category == DeclineCategory.OTHER and not text:
            raise ValidationError("Please describe the reason for declining")
        return cls(category=category, free_text=text)

    @property
    def implies_unavailability(self) -> bool:
        return self.category in UNAVAILABILITY_CATEGORIES

    def with_affected(
        self,
        items: list[AffectedEntry],
        variations: list[AffectedEntry],
    ) -> DeclineReason:
        if (items or variations) and not self.implies_unavailability:
            raise ValidationError(
                "Items can only be marked unavailable when declining for unavailability"
            )
        return DeclineReason(
            category=self.category,
            free_text=self.free_text,
            affected_items=tuple(items),
            affected_variations=tuple(variations),
        )

    def availability_changes(self) -> list[AvailabilityChange]:
        changes = [AvailabilityChange("item", entry.id, False) for entry in self.affected_items]
        changes.extend(
            AvailabilityChange("variation", entry.id, False) for entry in self.affected_variations
        )
        return changes

    def render(self) -> str:
        text = compose_reason_message(
            DECLINE_MESSAGES[self.category],
            self.free_text,
            is_other=self.category == DeclineCategory.OTHER,
        )
        lines = [text]
        if self.affected_items:
            lines.append(
                "Unavailable items: " + ", ".join(entry.name for entry in self.affected_items)
            )
        if self.affected_variations:
            lines.append(
                "Unavailable variations: "
                + ", ".join(entry.name for entry in self.affected_variations)
            )
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "free_text": self.free_text,
            "affected_items": [{"id": e.id, "name": e.name} for e in self.affected_items],
            "affected_variations": [
                {"id": e.id, "name": e.name} for e in self.affected_variations
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeclineReason:
        return cls(
            category=DeclineCategory(data["category"]),
            free_text=data.get("free_text"),
            affected_items=tuple(
                AffectedEntry(e["id"], e["name"]) for e in data.get("affected_items", [])
            ),
            affected_variations=tuple(
                AffectedEntry(e["id"], e["name"]) for e in data.get("affected_variations", [])
            ),
        )


RECEIPT_TIMEOUT_REASON = DeclineReason(category=DeclineCategory.RECEIPT_TIMEOUT)
