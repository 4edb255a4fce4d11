"""Tests for town boundary validation."""

import math

import pytest

from py_townsim.config import Settings
from py_townsim.core.boundary import TownBoundaryService, boundary_radius, distance_between
from py_townsim.core.results import PlacementErrorCode
from py_townsim.core.town import Town
from py_townsim.registry import ContentRegistry


@pytest.fixture(scope="module")
def content():
    return ContentRegistry.default()


def make_town(position, population, content, name="Town"):
    town = Town(position, name, settings=Settings(), content=content)
    town.set_population(population)
    return town


class TestHelpers:
    """Test the shared distance and radius helpers."""

    def test_distance_is_3d(self):
        """Test vertical separation counts toward distance."""
        assert distance_between((0, 0, 0), (0, 3, 4)) == pytest.approx(5.0)
        assert distance_between((1, 2, 3), (4, 6, 3)) == pytest.approx(5.0)

    def test_radius_floors_at_zero(self):
        """Test negative populations never produce a negative radius."""
        assert boundary_radius(12) == 12
        assert boundary_radius(0) == 0
        assert boundary_radius(-4) == 0


class TestPlacement:
    """Test placement checks against existing towns."""

    def setup_method(self):
        """Set up test fixtures."""
        self.settings = Settings(default_starting_population=5)
        self.service = TownBoundaryService(self.settings)

    def test_empty_world_accepts(self, content):
        """Test any position is legal with no towns."""
        assert self.service.check_placement((0, 64, 0), []).success

    def test_collision_rejected(self, content):
        """Test placement inside the combined radii fails with a reason."""
        existing = make_town((0, 64, 0), 10, content, name="Alpha")
        result = self.service.check_placement((14, 64, 0), [existing])

        assert not result.success
        assert result.error.code == PlacementErrorCode.BOUNDARY_CONFLICT
        assert result.error.conflicting_town_id == existing.id
        assert "Alpha" in result.error.message
        assert "distance: 14.0" in result.error.message
        assert "required: 15.0" in result.error.message

    def test_exact_sum_accepted(self, content):
        """Test distance equal to the combined radii is legal."""
        existing = make_town((0, 64, 0), 10, content)
        assert self.service.check_placement((15, 64, 0), [existing]).success

    def test_vertical_distance_counts(self, content):
        """Test towns stacked vertically are separated by their y distance."""
        existing = make_town((0, 0, 0), 10, content)
        assert not self.service.check_placement((0, 10, 0), [existing]).success
        assert self.service.check_placement((0, 20, 0), [existing]).success

    def test_empty_town_does_not_block(self, content):
        """Test a zero-population town only needs the new town's radius."""
        existing = make_town((0, 64, 0), 0, content)
        assert self.service.check_placement((5, 64, 0), [existing]).success
        assert not self.service.check_placement((4, 64, 0), [existing]).success

    def test_invalid_position(self):
        """Test malformed positions are rejected."""
        result = self.service.check_placement(None, [])
        assert result.error.code == PlacementErrorCode.INVALID_POSITION

    @pytest.mark.parametrize("pa,pb", [(3, 4), (10, 2), (7, 7)])
    def test_symmetric_invariant(self, content, pa, pb):
        """Test registration order does not matter for overlapping towns."""
        settings_a = Settings(default_starting_population=pa)
        settings_b = Settings(default_starting_population=pb)
        pos_a, pos_b = (0, 0, 0), (pa + pb - 1, 0, 0)

        town_a = make_town(pos_a, pa, content)
        town_b = make_town(pos_b, pb, content)

        assert not TownBoundaryService(settings_b).check_placement(pos_b, [town_a]).success
        assert not TownBoundaryService(settings_a).check_placement(pos_a, [town_b]).success


class TestExpansion:
    """Test growth checks for existing towns."""

    def test_expansion_conflict(self, content):
        """Test growing into a neighbour's boundary is reported."""
        service = TownBoundaryService(Settings())
        town = make_town((0, 0, 0), 5, content)
        neighbour = make_town((20, 0, 0), 10, content)

        assert service.check_boundary_expansion(town, 9, [town, neighbour]).success
        result = service.check_boundary_expansion(town, 11, [town, neighbour])
        assert result.error.code == PlacementErrorCode.EXPANSION_CONFLICT
        assert result.error.conflicting_town_id == neighbour.id

    def test_minimum_distance(self, content):
        """Test minimum distance is the sum of both radii."""
        a = make_town((0, 0, 0), 6, content)
        b = make_town((100, 0, 0), 9, content)
        assert TownBoundaryService.minimum_distance_required(a, b) == 15
        assert math.isclose(distance_between(a.position, b.position), 100.0)
