"""
Natural-language keyed line-item modifications.

Upstream callers have no stable item ids, only phrases like "the delivery
fee", so updates and removals carry a match keyword rather than an id.
Numeric fields are kept as received; the reconciler decides how to treat
missing or non-numeric values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ItemUpdate:
    """Overwrite fields of every item whose description matches `match`."""

    match: str
    new_rate: Any = None
    new_quantity: Any = None
    new_description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemUpdate:
        """Create from an upstream payload (camelCase or snake_case keys)."""
        return cls(
            match=data.get("match") or "",
            new_rate=data.get("new_rate", data.get("newRate")),
            new_quantity=data.get("new_quantity", data.get("newQuantity")),
            new_description=data.get("new_description", data.get("newDescription")),
        )


@dataclass
class NewItem:
    """An item to append."""

    description: str
    quantity: Any = None
    unit: Optional[str] = None
    rate: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NewItem:
        """Create from an upstream payload."""
        return cls(
            description=data.get("description") or "",
            quantity=data.get("quantity"),
            unit=data.get("unit"),
            rate=data.get("rate"),
        )


@dataclass
class ItemModifications:
    """Add/update/remove instructions for a derived document."""

    update_items: list[ItemUpdate] = field(default_factory=list)
    add_items: list[NewItem] = field(default_factory=list)
    remove_items: list[str] = field(default_factory=list)
    new_total: Any = None
    # Legacy single-amount form: applies to the first item when no updates are given
    new_amount: Any = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> ItemModifications:
        """Create from an upstream payload, ignoring malformed entries."""
        if not data:
            return cls()

        updates = data.get("update_items", data.get("updateItems")) or []
        adds = data.get("add_items", data.get("addItems")) or []
        removes = data.get("remove_items", data.get("removeItems")) or []

        return cls(
            update_items=[ItemUpdate.from_dict(u) for u in updates if isinstance(u, dict)],
            add_items=[NewItem.from_dict(a) for a in adds if isinstance(a, dict)],
            remove_items=[r for r in removes if isinstance(r, str) and r.strip()],
            new_total=data.get("new_total", data.get("newTotal")),
            new_amount=data.get("new_amount", data.get("newAmount")),
        )
