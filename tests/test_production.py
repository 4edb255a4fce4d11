"""Tests for the per-town production component."""

import pytest

from py_townsim.config import Settings
from py_townsim.core.town import Town
from py_townsim.registry import ContentRegistry


class TestProduction:
    """Test recipe activation, ticking and rates."""

    def setup_method(self):
        """Set up test fixtures."""
        self.settings = Settings(daily_tick_interval=10, default_starting_population=5)
        self.town = Town((0, 64, 0), "Farm", settings=self.settings, content=ContentRegistry.default())
        self.production = self.town.production

    def run_ticks(self, count):
        completed = []
        for _ in range(count):
            completed.extend(self.production.tick())
        return completed

    def test_no_recipes_before_unlock(self):
        """Test recipes stay inactive until an upgrade targets them."""
        assert self.production.get_active_recipes() == []
        assert self.run_ticks(20) == []

    def test_population_consumption(self):
        """Test per-population inputs scale with the town's population."""
        self.town.upgrades.unlock_node("basic_settlement")
        self.town.add_resource("food", 20)

        completed = self.run_ticks(10)
        assert completed == ["population_maintenance"]
        assert self.town.get_resource_count("food") == 15
        assert self.production.get_consumption_rate("food") == pytest.approx(5.0)

    def test_waits_for_inputs(self):
        """Test a recipe holds at its interval until inputs arrive."""
        self.town.upgrades.unlock_node("basic_settlement")
        assert self.run_ticks(15) == []
        assert self.production.progress["population_maintenance"] == 10

        self.town.add_resource("food", 5)
        assert self.run_ticks(1) == ["population_maintenance"]
        assert self.town.get_resource_count("food") == 0

    def test_speed_bonus(self):
        """Test percentage effects shorten cycles and raise rates."""
        self.town.upgrades.unlock_node("basic_settlement")
        self.town.upgrades.unlock_node("farming_basic")
        recipe = self.town.content.productions.get("basic_farming")

        assert self.production.cycle_ticks(recipe) == 10
        assert self.town.get_production_rate("food") == pytest.approx(4.0)

        self.town.upgrades.unlock_node("farming_improved")
        assert self.production.get_speed(recipe) == pytest.approx(1.2)
        assert self.production.cycle_ticks(recipe) == 8
        assert self.town.get_production_rate("food") == pytest.approx(4.8)

    def test_output_clamped_to_cap(self):
        """Test outputs never push stock above the storage cap."""
        self.town.upgrades.unlock_node("basic_settlement")
        self.town.upgrades.unlock_node("quarry")
        self.town.add_resource("stone", 1198)

        self.run_ticks(10)
        assert self.town.get_resource_count("stone") == 1200

    def test_save_load(self):
        """Test progress counters survive save/load."""
        self.town.upgrades.unlock_node("basic_settlement")
        self.town.add_resource("food", 100)
        self.run_ticks(4)

        other = Town((0, 64, 0), "Copy", settings=self.settings, content=self.town.content)
        other.production.load(self.production.save())
        assert other.production.progress == {"population_maintenance": 4}
