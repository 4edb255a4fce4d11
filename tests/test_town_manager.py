"""
Tests for the per-world town manager.

Tests cover:
- Registration through the boundary check
- Name and spatial lookups
- Tourist arrivals and payment rewards
- Cleanup, ticking and statistics
- Persistence through the in-memory and JSON stores
"""

import json

import numpy as np
import pytest

from py_townsim.config import Settings
from py_townsim.core.payment_board import RewardSource
from py_townsim.core.results import PlacementErrorCode
from py_townsim.core.town_manager import TownManager
from py_townsim.db import InMemoryTownPersistence, JsonFileTownPersistence
from py_townsim.registry import ContentRegistry


@pytest.fixture(scope="module")
def content():
    return ContentRegistry.default()


def make_manager(content, persistence=None, **overrides):
    settings = Settings(default_starting_population=5, **overrides)
    return TownManager(
        settings=settings,
        content=content,
        persistence=persistence or InMemoryTownPersistence(),
        rng=np.random.default_rng(7),
    )


class TestRegistration:
    """Test creating and removing towns."""

    def test_register_and_get(self, content):
        """Test a legal placement creates a retrievable town."""
        manager = make_manager(content)
        result = manager.register_town((0, 64, 0), "Alpha")

        assert result.success
        town = manager.get_town(result.value)
        assert town.name == "Alpha"
        assert town.get_population() == 5
        assert manager.persistence.is_dirty()

    def test_collision_creates_nothing(self, content):
        """Test a rejected placement leaves the registry unchanged."""
        manager = make_manager(content)
        manager.register_town((0, 64, 0), "Alpha")
        result = manager.register_town((9, 64, 0), "Beta")

        assert result.error.code == PlacementErrorCode.BOUNDARY_CONFLICT
        assert len(manager.get_all_towns()) == 1

    def test_growth_blocks_later_placement(self, content):
        """Test radii follow current population for later placements."""
        manager = make_manager(content)
        alpha = manager.get_town(manager.register_town((0, 64, 0), "Alpha").value)
        assert manager.register_town((12, 64, 0), "Beta").success

        alpha.set_population(20)
        assert not manager.register_town((0, 64, 24), "Gamma").success

    def test_remove_town(self, content):
        """Test removal by id."""
        manager = make_manager(content)
        town_id = manager.register_town((0, 64, 0), "Alpha").value

        assert manager.remove_town(town_id)
        assert manager.get_town(town_id) is None
        assert not manager.remove_town(town_id)

    def test_rename(self, content):
        """Test renaming through the manager validates the name."""
        manager = make_manager(content)
        town_id = manager.register_town((0, 64, 0), "Alpha").value

        assert manager.rename_town(town_id, "Omega").success
        assert manager.get_town(town_id).name == "Omega"
        assert not manager.rename_town("missing", "Omega").success


class TestLookup:
    """Test name and spatial queries."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = make_manager(ContentRegistry.default())
        self.ids = {}
        for name, pos in [("Northwood", (0, 64, -100)), ("Southwood", (0, 64, 100)),
                          ("Eastport", (100, 64, 0))]:
            self.ids[name] = self.manager.register_town(pos, name).value

    def test_by_name(self):
        """Test case-insensitive substring search."""
        names = sorted(t.name for t in self.manager.get_towns_by_name("WOOD"))
        assert names == ["Northwood", "Southwood"]

    def test_town_at(self):
        """Test exact position lookup."""
        assert self.manager.get_town_at((100, 64, 0)).name == "Eastport"
        assert self.manager.get_town_at((1, 64, 0)) is None

    def test_closest(self):
        """Test nearest town lookup."""
        assert self.manager.get_closest_town((90, 64, 10)).name == "Eastport"
        assert self.manager.get_closest_town((0, 64, -70)).name == "Northwood"

    def test_within_radius(self):
        """Test radius queries return towns nearest first."""
        towns = self.manager.get_towns_within_radius((0, 64, 20), 150)
        assert [t.name for t in towns] == ["Southwood", "Eastport", "Northwood"]
        assert self.manager.get_towns_within_radius((0, 64, 20), 10) == []

    def test_empty_world(self):
        """Test spatial queries on an empty world."""
        manager = make_manager(ContentRegistry.default())
        assert manager.get_closest_town((0, 0, 0)) is None
        assert manager.get_towns_within_radius((0, 0, 0), 100) == []


class TestTourism:
    """Test tourist arrivals."""

    def test_arrival_grows_population_and_posts_payment(self, content):
        """Test arrivals record visits, grow population and post rewards."""
        manager = make_manager(content, tourists_per_population_increase=10)
        origin = manager.register_town((0, 64, 0), "Origin").value
        dest = manager.register_town((50, 64, 0), "Dest").value

        assert manager.process_tourist_arrival(dest, 12, origin_town_id=origin)

        town = manager.get_town(dest)
        assert town.get_population() == 6
        assert town.tourists_received_counter == 2
        assert town.get_visit_history()[0].origin_pos == (0, 64, 0)

        rewards = town.payment_board.get_rewards_by_source(RewardSource.TOURIST_ARRIVAL)
        assert len(rewards) == 1
        assert rewards[0].rewards[0].item_id == "minecraft:emerald"
        assert rewards[0].rewards[0].count == 24
        assert rewards[0].metadata["originTownId"] == origin

    def test_milestone_bundled_with_fare(self, content):
        """Test milestone items ride in the same reward as the fare."""
        manager = make_manager(
            content,
            milestone_rewards={10: ["minecraft:bread:1"], 40: ["minecraft:cake", "minecraft:apple:2"]},
        )
        origin = manager.register_town((0, 64, 0), "Origin").value
        dest = manager.register_town((50, 64, 0), "Dest").value

        manager.process_tourist_arrival(dest, 3, origin_town_id=origin)

        board = manager.get_town(dest).payment_board
        entry = board.get_rewards_by_source(RewardSource.TOURIST_ARRIVAL)[0]
        assert [(r.item_id, r.count) for r in entry.rewards] == [
            ("minecraft:emerald", 6),
            ("minecraft:cake", 3),
            ("minecraft:apple", 6),
        ]
        assert entry.metadata["originTown"] == "Origin"
        assert entry.metadata["fareAmount"] == "6"
        assert entry.metadata["milestoneDistance"] == "50"
        assert entry.metadata["milestoneItems"] == "2"

    def test_unknown_origin_pays_nothing(self, content):
        """Test arrivals without a known origin grow the town but post no reward."""
        manager = make_manager(content)
        dest = manager.register_town((0, 64, 0), "Dest").value

        assert manager.process_tourist_arrival(dest, 4, origin_town_id="vanished")
        town = manager.get_town(dest)
        assert town.get_total_visitors() == 4
        assert town.payment_board.get_all_rewards() == []

    def test_unknown_destination(self, content):
        """Test arrivals at unknown towns are ignored."""
        manager = make_manager(content)
        assert not manager.process_tourist_arrival("missing", 3)


class TestMaintenance:
    """Test cleanup, ticking and statistics."""

    def test_cleanup_empty_towns(self, content):
        """Test zero-population towns are swept."""
        manager = make_manager(content)
        keep = manager.register_town((0, 64, 0), "Keep").value
        drop = manager.register_town((100, 64, 0), "Drop").value
        manager.get_town(drop).set_population(0)

        assert manager.cleanup_empty_towns() == [drop]
        assert [t.id for t in manager.get_all_towns()] == [keep]

    def test_tick_starts_research(self, content):
        """Test ticking lets idle towns pick research."""
        manager = make_manager(content)
        town_id = manager.register_town((0, 64, 0), "Alpha").value
        manager.tick()

        assert manager.get_town(town_id).upgrades.current_research == "basic_settlement"
        assert manager.get_statistics().towns_researching == 1

    def test_statistics(self, content):
        """Test aggregate statistics."""
        manager = make_manager(content)
        manager.register_town((0, 64, 0), "A")
        b = manager.register_town((100, 64, 0), "B").value
        manager.get_town(b).set_population(15)

        stats = manager.get_statistics()
        assert stats.total_towns == 2
        assert stats.total_population == 20
        assert stats.average_population == pytest.approx(10.0)


class TestPersistence:
    """Test saving and loading the whole world."""

    def test_in_memory_round_trip(self, content):
        """Test towns survive a save/load cycle through the in-memory store."""
        store = InMemoryTownPersistence()
        manager = make_manager(content, persistence=store)
        town_id = manager.register_town((0, 64, 0), "Alpha").value
        manager.get_town(town_id).add_resource("food", 30)
        manager.save_towns()
        assert not store.is_dirty()

        restored = make_manager(content, persistence=store)
        assert restored.load_towns() == 1
        assert restored.get_town(town_id).get_resource_count("food") == 30

        restored.get_town(town_id).add_resource("food", 1)
        assert store.is_dirty()

    def test_json_file_round_trip(self, content, tmp_path):
        """Test the JSON store writes the towns tree to disk."""
        path = tmp_path / "towns.json"
        manager = make_manager(content, persistence=JsonFileTownPersistence(path))
        town_id = manager.register_town((5, 70, 5), "Alpha").value
        manager.save_towns()

        with open(path, encoding="utf-8") as f:
            saved = json.load(f)
        assert town_id in saved["towns"]
        assert saved["towns"][town_id]["posY"] == 70

        restored = make_manager(content, persistence=JsonFileTownPersistence(path))
        assert restored.load_towns() == 1
        assert restored.get_town(town_id).position == (5, 70, 5)

    def test_bad_town_skipped(self, content):
        """Test a malformed town entry does not block the others."""
        store = InMemoryTownPersistence()
        store.save(
            {
                "towns": {
                    "bad": {"id": "bad", "name": "No Position"},
                    "good": {"id": "good", "name": "Fine", "posX": 0, "posY": 64, "posZ": 0},
                }
            }
        )
        manager = make_manager(content, persistence=store)
        assert manager.load_towns() == 1
        assert manager.get_town("good").name == "Fine"

    def test_missing_file(self, content, tmp_path):
        """Test loading with no save file yields an empty world."""
        manager = make_manager(content, persistence=JsonFileTownPersistence(tmp_path / "none.json"))
        assert manager.load_towns() == 0

    @pytest.mark.parametrize("bad_fields", [
        {"paymentBoard": {"rewards": ["garbage"]}},
        {"paymentBoard": {"rewards": [{"id": "r", "timestamp": 1, "expirationTime": 2,
                                       "rewards": [{"item": 5, "count": 1}]}]}},
        {"personalStorage": {"p": [1, 2]}},
        {"visitors": ["not", "a", "map"]},
    ])
    def test_malformed_fields_do_not_abort_load(self, content, bad_fields):
        """Test wrong-typed persisted fields never stop the other towns loading."""
        store = InMemoryTownPersistence()
        bad = {"id": "bad", "name": "Broken", "posX": 100, "posY": 64, "posZ": 0}
        bad.update(bad_fields)
        store.save(
            {
                "towns": {
                    "good": {"id": "good", "name": "Fine", "posX": 0, "posY": 64, "posZ": 0},
                    "bad": bad,
                }
            }
        )
        manager = make_manager(content, persistence=store)
        manager.load_towns()

        assert manager.get_town("good").name == "Fine"
