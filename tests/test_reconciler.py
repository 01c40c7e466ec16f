"""Tests for line-item reconciliation."""

from decimal import Decimal

import pytest

from voicebill.schemas.documents import LineItem
from voicebill.schemas.modifications import ItemModifications, ItemUpdate, NewItem
from voicebill.services.reconciler import ItemReconciler, matches_keyword, normalize_items


@pytest.fixture
def items():
    return [
        LineItem(description="Kitchen installation labor", quantity=Decimal("10"),
                 rate=Decimal("100"), total=Decimal("1000")),
        LineItem(description="Delivery fee", quantity=Decimal("1"), rate=Decimal("100"),
                 total=Decimal("100")),
        LineItem(description="Oak cabinets", quantity=Decimal("4"), rate=Decimal("250"),
                 total=Decimal("1000")),
    ]


class TestMatchesKeyword:
    """Tests for fuzzy keyword matching."""

    def test_substring(self):
        """Verbatim containment, any case."""
        assert matches_keyword("Delivery fee", "DELIVERY")

    def test_word_prefix(self):
        """A truncated word still matches."""
        assert matches_keyword("Kitchen installation labor", "install")
        assert matches_keyword("Cabinet", "cabinets")

    def test_short_tokens_ignored(self):
        """Keyword words of two letters or fewer never match on prefix."""
        assert not matches_keyword("Oak cabinets", "ok")

    def test_shared_category_word(self):
        """Two descriptions of the same kind match."""
        assert matches_keyword("Delivery fee", "the service fee")

    def test_unrelated(self):
        """Nothing in common, no match."""
        assert not matches_keyword("Oak cabinets", "paint")

    def test_empty_keyword(self):
        """An empty keyword matches nothing."""
        assert not matches_keyword("Anything", "  ")


class TestNormalizeItems:
    """Tests for source item normalization."""

    def test_defaults_from_dicts(self):
        """Missing quantity, rate, total and unit get defaults."""
        (item,) = normalize_items([{"description": "Fee", "total": "80"}])

        assert item.quantity == Decimal("1")
        assert item.rate == Decimal("80")
        assert item.unit == "unit"

    def test_rate_derived_from_total(self):
        """A missing rate is total divided by quantity."""
        (item,) = normalize_items([{"description": "Hours", "quantity": 4, "total": 200}])
        assert item.rate == Decimal("50")

    def test_fresh_ids(self, items):
        """Copies never reuse source ids."""
        copies = normalize_items(items)
        assert {c.id for c in copies}.isdisjoint({i.id for i in items})


class TestApplyModifications:
    """Tests for the update/remove/add passes."""

    @pytest.fixture
    def reconciler(self):
        return ItemReconciler()

    def test_plain_copy(self, reconciler, items):
        """No modifications copies the items and sums them."""
        result = reconciler.apply_modifications(items)

        assert [i.description for i in result.items] == [i.description for i in items]
        assert result.subtotal == Decimal("2100")
        assert result.total == Decimal("2100")

    def test_source_items_untouched(self, reconciler, items):
        """The source list is never modified."""
        mods = ItemModifications(update_items=[ItemUpdate(match="labor", new_rate="120")])
        reconciler.apply_modifications(items, mods)
        assert items[0].rate == Decimal("100")

    def test_update_recomputes_total(self, reconciler, items):
        """Updated rate and quantity produce a new total."""
        mods = ItemModifications(
            update_items=[ItemUpdate(match="labor", new_rate="120", new_quantity=8)]
        )
        result = reconciler.apply_modifications(items, mods)

        labor = result.items[0]
        assert labor.rate == Decimal("120")
        assert labor.quantity == Decimal("8")
        assert labor.total == Decimal("960")
        assert result.updated == 1

    def test_update_with_non_numeric_value_keeps_existing(self, reconciler, items):
        """A bad number falls back to the item's current value."""
        mods = ItemModifications(
            update_items=[ItemUpdate(match="cabinets", new_rate="lots", new_quantity=None)]
        )
        result = reconciler.apply_modifications(items, mods)

        cabinets = result.items[2]
        assert cabinets.rate == Decimal("250")
        assert cabinets.quantity == Decimal("4")
        assert cabinets.total == Decimal("1000")

    def test_update_description(self, reconciler, items):
        """The description can be replaced."""
        mods = ItemModifications(
            update_items=[ItemUpdate(match="oak", new_description="Maple cabinets")]
        )
        result = reconciler.apply_modifications(items, mods)
        assert result.items[2].description == "Maple cabinets"

    def test_update_every_matching_item(self, reconciler):
        """All items matching a keyword are updated."""
        source = [
            LineItem(description="Labor day 1", rate=Decimal("100"), total=Decimal("100")),
            LineItem(description="Labor day 2", rate=Decimal("100"), total=Decimal("100")),
        ]
        mods = ItemModifications(update_items=[ItemUpdate(match="labor", new_rate=90)])
        result = reconciler.apply_modifications(source, mods)
        assert [i.total for i in result.items] == [Decimal("90"), Decimal("90")]

    def test_remove(self, reconciler, items):
        """Matching items are dropped."""
        mods = ItemModifications(remove_items=["delivery"])
        result = reconciler.apply_modifications(items, mods)

        assert [i.description for i in result.items] == [
            "Kitchen installation labor",
            "Oak cabinets",
        ]
        assert result.subtotal == Decimal("2000")
        assert result.removed == 1

    def test_remove_everything_gives_zero(self, reconciler, items):
        """Removing all items leaves a zero subtotal."""
        mods = ItemModifications(remove_items=["labor", "delivery", "cabinets"])
        result = reconciler.apply_modifications(items, mods)

        assert result.items == []
        assert result.subtotal == Decimal("0")
        assert result.total == Decimal("0")

    def test_add_defaults(self, reconciler):
        """Added items default to quantity 1 and unit 'unit'; total = rate."""
        mods = ItemModifications(add_items=[NewItem(description="Cleanup", rate="75")])
        result = reconciler.apply_modifications([], mods)

        (item,) = result.items
        assert item.quantity == Decimal("1")
        assert item.unit == "unit"
        assert item.total == Decimal("75")
        assert item.id.startswith("item-")

    def test_add_after_remove(self, reconciler, items):
        """A new item is not removed by the same request's removals."""
        mods = ItemModifications(
            remove_items=["fee"],
            add_items=[NewItem(description="Delivery fee (discounted)", quantity=1, rate=50)],
        )
        result = reconciler.apply_modifications(items, mods)
        assert result.items[-1].description == "Delivery fee (discounted)"
        assert result.subtotal == Decimal("2050")

    def test_new_total_overrides(self, reconciler, items):
        """An explicit total wins over the item sum."""
        result = reconciler.apply_modifications(items, ItemModifications(new_total="1999.99"))

        assert result.subtotal == Decimal("2100")
        assert result.total == Decimal("1999.99")

    def test_legacy_new_amount_rewrites_first_item(self, reconciler, items):
        """A bare amount with no updates sets the first item's rate."""
        result = reconciler.apply_modifications(items, ItemModifications(new_amount=90))

        assert result.items[0].rate == Decimal("90")
        assert result.items[0].total == Decimal("900")

    def test_legacy_new_amount_ignored_with_updates(self, reconciler, items):
        """Explicit updates take precedence over the legacy amount."""
        mods = ItemModifications(
            update_items=[ItemUpdate(match="oak", new_rate=200)], new_amount=1
        )
        result = reconciler.apply_modifications(items, mods)
        assert result.items[0].rate == Decimal("100")
