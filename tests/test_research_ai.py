"""
Tests for research scoring and selection.

Tests cover:
- Exact scores for storage-cap and production effects
- Score determinism and live/snapshot agreement
- Candidate filtering
- Biased selection under ties
"""

import numpy as np
import pytest

from py_townsim.config import Settings
from py_townsim.core.research_ai import (
    calculate_priorities,
    calculate_score,
    find_candidates,
    select_next_research,
    select_with_bias,
)
from py_townsim.core.town import Town
from py_townsim.core.town_state import TownStateSnapshot
from py_townsim.registry import (
    ContentRegistry,
    Effect,
    ProductionRecipe,
    ProductionRegistry,
    ResourceAmount,
    ResourceRegistry,
    ResourceType,
    UpgradeNode,
    UpgradeRegistry,
)


def wheat_content():
    """Catalog with one resource, one recipe and the two scenario nodes."""
    return ContentRegistry(
        resources=ResourceRegistry(
            [
                ResourceType(id="wheat", canonical_item_id="minecraft:wheat"),
                ResourceType(id="stone", canonical_item_id="minecraft:cobblestone"),
            ]
        ),
        productions=ProductionRegistry(
            [
                ProductionRecipe(
                    id="bread_recipe",
                    outputs=[ResourceAmount(resource_id="wheat", amount=5)],
                )
            ]
        ),
        upgrades=UpgradeRegistry(
            [
                UpgradeNode(id="N1", effects=[Effect(target="bread_recipe", value=1.0)]),
                UpgradeNode(id="N2", effects=[Effect(target="storage_cap_wheat", value=50)]),
                UpgradeNode(id="N3", effects=[Effect(target="storage_cap_all", value=100)]),
                UpgradeNode(id="N4", effects=[Effect(target="mystery", value=3)]),
            ]
        ),
    )


def wheat_state(stock=90, cap=100, production=5.0, consumption=8.0, stone=0, stone_cap=0):
    return TownStateSnapshot(
        stock={"wheat": stock, "stone": stone},
        caps={"wheat": cap, "stone": stone_cap},
        production={"wheat": production},
        consumption={"wheat": consumption},
    )


class TestScoring:
    """Test the un-biased scoring formulas."""

    def setup_method(self):
        """Set up test fixtures."""
        self.content = wheat_content()
        self.n1 = self.content.upgrades.get("N1")
        self.n2 = self.content.upgrades.get("N2")

    def test_scenario_at_90_percent(self):
        """Test deficit-driven N1 outranks N2 at 90% fullness."""
        state = wheat_state(stock=90)
        assert calculate_score(state, self.n1, self.content) == pytest.approx(21.0)
        assert calculate_score(state, self.n2, self.content) == pytest.approx(14.5)

    def test_scenario_at_95_percent(self):
        """Test N2 overtakes via the critical-fullness bonus above 90%."""
        state = wheat_state(stock=95)
        assert calculate_score(state, self.n1, self.content) == pytest.approx(21.0)
        assert calculate_score(state, self.n2, self.content) == pytest.approx(24.75)

    def test_resource_cap_below_thresholds(self):
        """Test only the proportional term applies at low fullness."""
        state = wheat_state(stock=50)
        assert calculate_score(state, self.n2, self.content) == pytest.approx(2.5)

    def test_surplus_with_low_stock(self):
        """Test surplus production scores 1 plus the low-stock bonus."""
        state = wheat_state(stock=10, production=8.0, consumption=5.0)
        assert calculate_score(state, self.n1, self.content) == pytest.approx(6.0)

    def test_low_stock_needs_positive_cap(self):
        """Test the low-stock bonus is skipped when there is no cap."""
        state = wheat_state(stock=0, cap=0, production=8.0, consumption=5.0)
        assert calculate_score(state, self.n1, self.content) == pytest.approx(1.0)

    def test_global_cap_average(self):
        """Test the global cap scores the average over capped resources."""
        node = self.content.upgrades.get("N3")

        only_wheat = wheat_state(stock=90)
        assert calculate_score(only_wheat, node, self.content) == pytest.approx(14.5)

        both = wheat_state(stock=90, stone=50, stone_cap=100)
        assert calculate_score(both, node, self.content) == pytest.approx(3.5)

    def test_unknown_target_scores_zero(self):
        """Test effects on unknown targets contribute nothing."""
        node = self.content.upgrades.get("N4")
        assert calculate_score(wheat_state(), node, self.content) == 0.0

    def test_deterministic(self):
        """Test repeated scoring returns identical values."""
        state = wheat_state(stock=87)
        first = calculate_score(state, self.n1, self.content)
        second = calculate_score(state, self.n1, self.content)
        assert first == second

    def test_priorities_unbiased(self):
        """Test priorities report the raw scores of prerequisite-ready nodes."""
        scores = calculate_priorities(wheat_state(stock=90), set(), self.content)
        assert scores["N1"] == pytest.approx(21.0)
        assert scores["N2"] == pytest.approx(14.5)

        scores = calculate_priorities(wheat_state(stock=90), {"N1"}, self.content)
        assert "N1" not in scores


class TestSelection:
    """Test biased selection."""

    def test_empty(self):
        """Test no candidates selects nothing."""
        assert select_with_bias({}, np.random.default_rng(0)) is None

    def test_clear_winner(self):
        """Test a lead larger than the bias range always wins."""
        rng = np.random.default_rng(1)
        for _ in range(200):
            assert select_with_bias({"a": 10.0, "b": 7.9}, rng) == "a"

    def test_ties_split_evenly(self):
        """Test tied candidates are each chosen about half the time."""
        rng = np.random.default_rng(42)
        picks = [select_with_bias({"a": 5.0, "b": 5.0}, rng) for _ in range(10000)]
        share = picks.count("a") / len(picks)
        assert 0.45 < share < 0.55


class TestTownIntegration:
    """Test candidates and selection against a live town."""

    def setup_method(self):
        """Set up test fixtures."""
        self.content = ContentRegistry.default()
        self.town = Town((0, 64, 0), "Research", settings=Settings(), content=self.content)

    def test_initial_candidates(self):
        """Test only prerequisite-free, affordable nodes are candidates."""
        ids = [node.id for node in find_candidates(self.town, self.content)]
        assert ids == ["basic_settlement"]

    def test_candidates_require_affordability(self):
        """Test unlocked prerequisites alone do not make a node a candidate."""
        self.town.upgrades.unlock_node("basic_settlement")
        assert find_candidates(self.town, self.content) == []

        self.town.add_resource("money", 15)
        ids = {node.id for node in find_candidates(self.town, self.content)}
        assert ids == {"farming_basic", "quarry"}

    def test_select_next_research(self):
        """Test selection returns the only candidate."""
        rng = np.random.default_rng(3)
        assert select_next_research(self.town, self.content, rng) == "basic_settlement"

    def test_snapshot_matches_live(self):
        """Test the read-only mirror scores identically to the live town."""
        self.town.upgrades.unlock_node("basic_settlement")
        self.town.add_resource("food", 900)
        snapshot = self.town.snapshot()

        for node in self.content.upgrades:
            assert calculate_score(snapshot, node, self.content) == pytest.approx(
                calculate_score(self.town, node, self.content)
            )
