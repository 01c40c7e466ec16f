"""Line-item reconciliation for derived documents.

Applies keyword-addressed modifications (update, remove, add) to a copy of
a source document's line items. Keywords come from speech ("the delivery
fee", "labor"), so matching is fuzzy rather than exact.

Order of passes:
1. Updates (or the legacy single new_amount when there are no updates)
2. Removals
3. Additions
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from voicebill.schemas.documents import ZERO, LineItem, to_decimal
from voicebill.schemas.modifications import ItemModifications

logger = logging.getLogger(__name__)

# Words that make two descriptions "the same kind of line" for matching
CATEGORY_WORDS = frozenset(
    {"service", "labor", "material", "fee", "cost", "charge", "work", "install", "delivery"}
)

_TOKEN_SPLIT = re.compile(r"\s+")


def _tokens(text: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT.split(text.lower().strip()) if t]


def matches_keyword(description: str, keyword: str) -> bool:
    """
    Decide whether a spoken keyword refers to an item description.

    True when any of these hold (case-insensitive):
    - the description contains the keyword verbatim
    - a keyword word longer than 2 characters and a description word are
      prefixes of one another ("instal" / "installation")
    - both mention the same category word (e.g. "fee")
    """
    desc = description.lower()
    key = keyword.lower().strip()
    if not key:
        return False
    if key in desc:
        return True

    desc_words = _tokens(desc)
    for kw in _tokens(key):
        if len(kw) <= 2:
            continue
        for word in desc_words:
            if word.startswith(kw) or kw.startswith(word):
                return True

    return any(word in desc and word in key for word in CATEGORY_WORDS)


def _synthetic_id() -> str:
    return f"item-{uuid.uuid4().hex[:12]}"


def normalize_items(items: Iterable[Any]) -> list[LineItem]:
    """Copy source items with defaults filled in and fresh ids.

    Missing quantity becomes 1, missing total 0, missing rate total/quantity
    and missing unit "unit". Accepts LineItem objects or raw dicts.
    """
    normalized = []
    for index, item in enumerate(items):
        data = item.to_dict() if isinstance(item, LineItem) else dict(item)
        line = LineItem.from_dict(data, index)
        line.id = _synthetic_id()
        normalized.append(line)
    return normalized


@dataclass
class ReconciledItems:
    """Items after modification plus the resulting amounts."""

    items: list[LineItem]
    subtotal: Decimal
    total: Decimal
    updated: int = 0
    removed: int = 0
    added: int = 0


class ItemReconciler:
    """Applies ItemModifications to a list of line items.

    Stateless; one instance can be shared.
    """

    def apply_modifications(
        self, source_items: Iterable[Any], modifications: ItemModifications | None = None
    ) -> ReconciledItems:
        """
        Produce the derived document's items.

        Args:
            source_items: LineItems or item dicts from the source document
            modifications: Keyword-addressed changes; None means plain copy

        Returns:
            ReconciledItems with subtotal = sum of item totals and total =
            the explicit new_total override if given, else subtotal
        """
        items = normalize_items(source_items)
        mods = modifications or ItemModifications()
        updated = removed = added = 0

        for update in mods.update_items:
            if not update.match:
                continue
            for item in items:
                if not matches_keyword(item.description, update.match):
                    continue
                rate = to_decimal(update.new_rate)
                quantity = to_decimal(update.new_quantity)
                item.rate = rate if rate is not None else item.rate
                item.quantity = quantity if quantity is not None else item.quantity
                if update.new_description:
                    item.description = update.new_description
                item.total = item.computed_total
                updated += 1

        if not mods.update_items and items:
            new_amount = to_decimal(mods.new_amount)
            if new_amount is not None:
                first = items[0]
                first.rate = new_amount
                first.total = first.computed_total
                updated += 1

        if mods.remove_items:
            kept = [
                item
                for item in items
                if not any(matches_keyword(item.description, kw) for kw in mods.remove_items)
            ]
            removed = len(items) - len(kept)
            items = kept

        for new in mods.add_items:
            quantity = to_decimal(new.quantity) or Decimal("1")
            rate = to_decimal(new.rate) or ZERO
            items.append(
                LineItem(
                    id=_synthetic_id(),
                    description=new.description,
                    quantity=quantity,
                    unit=new.unit or "unit",
                    rate=rate,
                    total=quantity * rate,
                )
            )
            added += 1

        subtotal = sum((item.total for item in items), ZERO)
        override = to_decimal(mods.new_total)
        total = override if override is not None else subtotal

        if updated or removed or added:
            logger.debug(
                "Reconciled items: %d updated, %d removed, %d added", updated, removed, added
            )
        return ReconciledItems(
            items=items,
            subtotal=subtotal,
            total=total,
            updated=updated,
            removed=removed,
            added=added,
        )
