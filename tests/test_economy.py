"""Tests for the stock ledger and the town economy component."""

import pytest

from py_townsim.core.economy import TownEconomyComponent
from py_townsim.core.storage import StockLedger


class TestStockLedger:
    """Test clamped add/remove semantics."""

    def test_add_and_get(self):
        """Test adding items accumulates counts."""
        ledger = StockLedger()
        assert ledger.add("wood", 5)
        assert ledger.add("wood", 3)
        assert ledger.get("wood") == 8
        assert ledger.get("stone") == 0

    def test_over_removal_fails_without_mutation(self):
        """Test removing more than held leaves the ledger untouched."""
        ledger = StockLedger({"wood": 3})
        result = ledger.adjust("wood", -5)

        assert not result.success
        assert result.error.requested == 5
        assert result.error.available == 3
        assert ledger.get("wood") == 3

    def test_zero_entries_dropped(self):
        """Test entries reaching zero are removed entirely."""
        ledger = StockLedger({"wood": 3})
        assert ledger.remove("wood", 3)
        assert "wood" not in ledger
        assert ledger.items() == {}

    def test_remove_non_positive_is_noop(self):
        """Test removing zero succeeds without changes."""
        ledger = StockLedger({"wood": 3})
        assert ledger.remove("wood", 0)
        assert ledger.get("wood") == 3

    def test_items_returns_copy(self):
        """Test callers cannot mutate the ledger through items()."""
        ledger = StockLedger({"wood": 3})
        items = ledger.items()
        items["wood"] = 100
        assert ledger.get("wood") == 3

    def test_from_dict_skips_bad_entries(self):
        """Test unparseable ids and counts are skipped on load."""
        ledger = StockLedger.from_dict(
            {"minecraft:bread": 4, "Not An Id!": 2, "stone": "many", "wood": 0}
        )
        assert ledger.items() == {"minecraft:bread": 4}


class TestTownEconomyComponent:
    """Test the per-town resource ledger and population."""

    def setup_method(self):
        """Set up test fixtures."""
        self.economy = TownEconomyComponent(population=5)

    def test_add_resource(self):
        """Test positive deltas add stock."""
        assert self.economy.add_resource("food", 10)
        assert self.economy.get_resource_count("food") == 10

    def test_negative_beyond_stock_fails(self):
        """Test removal beyond available stock fails without mutation."""
        self.economy.add_resource("food", 3)
        assert not self.economy.add_resource("food", -5)
        assert self.economy.get_resource_count("food") == 3

    def test_get_all_resources_is_copy(self):
        """Test get_all_resources returns an independent map."""
        self.economy.add_resource("food", 3)
        resources = self.economy.get_all_resources()
        resources["food"] = 0
        assert self.economy.get_resource_count("food") == 3

    def test_set_population(self):
        """Test population can be set and negatives are rejected."""
        assert self.economy.set_population(12)
        assert self.economy.get_population() == 12
        assert not self.economy.set_population(-1)
        assert self.economy.get_population() == 12

    def test_save_load(self):
        """Test economy state survives save/load."""
        self.economy.add_resource("food", 7)
        data = self.economy.save()

        restored = TownEconomyComponent()
        restored.load(data)
        assert restored.get_population() == 5
        assert restored.get_all_resources() == {"food": 7}

    @pytest.mark.parametrize("delta", [1, 10, 1000])
    def test_add_then_remove_restores(self, delta):
        """Test adding then removing the same amount leaves no entry."""
        assert self.economy.add_resource("iron", delta)
        assert self.economy.add_resource("iron", -delta)
        assert self.economy.get_all_resources() == {}
