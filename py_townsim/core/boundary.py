"""
Town boundary validation.

A town's boundary radius equals its current population (floored at zero).
Two towns collide when the 3D Euclidean distance between their positions is
less than the sum of their radii. ``distance_between`` and
``boundary_radius`` are the only distance/radius helpers; placement checks,
expansion checks and manager overlap queries all go through them.
"""

from typing import TYPE_CHECKING, Iterable, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..config import Settings, get_settings
from .results import PlacementError, PlacementErrorCode, Result

if TYPE_CHECKING:
    from .town import Town

logger = structlog.get_logger()

Position = Tuple[int, int, int]


def distance_between(a: Sequence[float], b: Sequence[float]) -> float:
    """3D Euclidean distance between two positions."""
    return float(np.linalg.norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float)))


def boundary_radius(population: int) -> int:
    """Exclusion radius for a population; never negative."""
    return max(0, int(population))


def _conflict_message(name: str, distance: float, required: float) -> str:
    return (
        f"Town too close to existing town '{name}' - "
        f"distance: {distance:.1f}, required: {required:.1f}"
    )


class TownBoundaryService:
    """Stateless placement validator."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def new_town_radius(self) -> int:
        return boundary_radius(self.settings.default_starting_population)

    def check_placement(
        self, position: Optional[Position], existing_towns: Iterable["Town"]
    ) -> Result[None, PlacementError]:
        """
        Check whether a new town may be founded at ``position``.

        Args:
            position: Candidate (x, y, z)
            existing_towns: Towns already registered in the world

        Returns:
            Result.ok() or a PlacementError naming the first conflicting town
        """
        if position is None or len(position) != 3:
            return Result.fail(
                PlacementError(
                    code=PlacementErrorCode.INVALID_POSITION,
                    message="Invalid position for town placement",
                )
            )

        new_radius = self.new_town_radius()
        for town in existing_towns:
            distance = distance_between(position, town.position)
            required = new_radius + boundary_radius(town.get_population())
            if distance < required:
                logger.debug(
                    "Placement rejected",
                    position=position,
                    town_id=town.id,
                    distance=distance,
                    required=required,
                )
                return Result.fail(
                    PlacementError(
                        code=PlacementErrorCode.BOUNDARY_CONFLICT,
                        message=_conflict_message(town.name, distance, required),
                        conflicting_town_id=town.id,
                    )
                )
        return Result.ok()

    @staticmethod
    def minimum_distance_required(a: "Town", b: "Town") -> int:
        """Smallest legal distance between two existing towns."""
        return boundary_radius(a.get_population()) + boundary_radius(b.get_population())

    def check_boundary_expansion(
        self, town: "Town", new_population: int, existing_towns: Iterable["Town"]
    ) -> Result[None, PlacementError]:
        """
        Check whether ``town`` may grow to ``new_population`` without its
        boundary overlapping any other town.
        """
        new_radius = boundary_radius(new_population)
        for other in existing_towns:
            if other.id == town.id:
                continue
            distance = distance_between(town.position, other.position)
            required = new_radius + boundary_radius(other.get_population())
            if distance < required:
                return Result.fail(
                    PlacementError(
                        code=PlacementErrorCode.EXPANSION_CONFLICT,
                        message=_conflict_message(other.name, distance, required),
                        conflicting_town_id=other.id,
                    )
                )
        return Result.ok()
