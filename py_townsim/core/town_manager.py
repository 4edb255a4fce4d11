"""
Per-world town registry.

The tick driver owns one ``TownManager`` per world and passes it explicitly;
there is no global lookup. Towns are only constructed after the boundary
check accepts their position.
"""

from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import structlog
from pydantic import BaseModel, Field
from sklearn.neighbors import KDTree

from ..config import Settings, get_settings
from ..db import InMemoryTownPersistence, JsonFileTownPersistence, TownPersistence
from ..registry import ContentRegistry
from ..utils.clock import Clock, now_millis
from ..utils.random import get_rng
from .boundary import TownBoundaryService, distance_between
from .payment_board import RewardItem, RewardSource
from .results import PlacementError, Result, ValidationError
from .tourism import calculate_fare, check_milestones
from .town import Town

logger = structlog.get_logger()

Position = Tuple[int, int, int]


class TownStatistics(BaseModel):
    total_towns: int = Field(default=0, description="Registered towns")
    total_population: int = Field(default=0, description="Summed population")
    average_population: float = Field(default=0.0, description="Mean population")
    total_tourists: int = Field(default=0, description="Summed active tourists")
    towns_researching: int = Field(default=0, description="Towns with research in progress")


class TownManager:
    """Registers, looks up, ticks and persists the towns of one world."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        content: Optional[ContentRegistry] = None,
        persistence: Optional[TownPersistence] = None,
        clock: Optional[Clock] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.settings = settings or get_settings()
        self.content = content or ContentRegistry.load(self.settings.content_dir)
        if persistence is None:
            persistence = (
                JsonFileTownPersistence(self.settings.data_file)
                if self.settings.data_file
                else InMemoryTownPersistence()
            )
        self.persistence = persistence
        self.clock = clock or now_millis
        self.rng = rng or get_rng()
        self.boundary = TownBoundaryService(self.settings)
        self.towns: Dict[str, Town] = {}

    def _on_town_dirty(self, town: Town) -> None:
        self.persistence.mark_dirty()

    def mark_dirty(self) -> None:
        self.persistence.mark_dirty()

    # Registration

    def register_town(self, position: Position, name: str) -> Result[str, PlacementError]:
        """
        Found a town at ``position``.

        Returns:
            Result with the new town id, or the PlacementError from the boundary check
        """
        placement = self.boundary.check_placement(position, self.towns.values())
        if not placement.success:
            logger.info(
                "Town placement rejected",
                name=name,
                position=position,
                reason=placement.error.message,
            )
            return Result.fail(placement.error)

        town = Town(
            position,
            name,
            settings=self.settings,
            content=self.content,
            clock=self.clock,
            on_dirty=self._on_town_dirty,
        )
        self.towns[town.id] = town
        self.mark_dirty()
        logger.info("Town registered", town_id=town.id, name=name, position=town.position)
        return Result.ok(town.id)

    def get_town(self, town_id: str) -> Optional[Town]:
        return self.towns.get(town_id)

    def remove_town(self, town_id: str) -> bool:
        removed = self.towns.pop(town_id, None)
        if removed is None:
            return False
        self.mark_dirty()
        logger.info("Town removed", town_id=town_id, name=removed.name)
        return True

    def clear_all_towns(self) -> int:
        count = len(self.towns)
        self.towns.clear()
        self.mark_dirty()
        return count

    def get_all_towns(self) -> List[Town]:
        return list(self.towns.values())

    def rename_town(self, town_id: str, name: str) -> Result[None, ValidationError]:
        town = self.get_town(town_id)
        if town is None:
            return Result.fail(ValidationError(field="town_id", message="Town not found"))
        return town.set_name(name)

    # Lookup

    def get_towns_by_name(self, name: str) -> List[Town]:
        """Case-insensitive substring match."""
        needle = name.lower()
        return [town for town in self.towns.values() if needle in town.name.lower()]

    def get_town_at(self, position: Position) -> Optional[Town]:
        target = tuple(int(c) for c in position)
        for town in self.towns.values():
            if town.position == target:
                return town
        return None

    def _spatial_index(self) -> Tuple[List[Town], Optional[KDTree]]:
        towns = list(self.towns.values())
        if not towns:
            return towns, None
        points = np.array([town.position for town in towns], dtype=float)
        return towns, KDTree(points)

    def get_closest_town(self, position: Position) -> Optional[Town]:
        towns, tree = self._spatial_index()
        if tree is None:
            return None
        _, indices = tree.query(np.array([position], dtype=float), k=1)
        return towns[int(indices[0][0])]

    def get_towns_within_radius(self, position: Position, radius: float) -> List[Town]:
        """Towns whose position lies within ``radius`` (3D), nearest first."""
        towns, tree = self._spatial_index()
        if tree is None or radius < 0:
            return []
        indices, _ = tree.query_radius(
            np.array([position], dtype=float), r=radius, return_distance=True, sort_results=True
        )
        return [towns[int(i)] for i in indices[0]]

    # Visitors

    def process_tourist_arrival(
        self,
        destination_town_id: str,
        tourist_count: int,
        origin_town_id: Optional[str] = None,
        origin_pos: Optional[Position] = None,
    ) -> bool:
        """
        Record tourists arriving at a town and post their fare and milestone reward.

        Returns:
            False if the destination town does not exist
        """
        town = self.get_town(destination_town_id)
        if town is None:
            logger.warning("Tourist arrival for unknown town", town_id=destination_town_id)
            return False
        if tourist_count <= 0:
            return True

        if origin_pos is None and origin_town_id is not None:
            origin = self.get_town(origin_town_id)
            if origin is not None:
                origin_pos = origin.position

        town.add_visitor(origin_town_id, tourist_count, origin_pos)

        distance = distance_between(origin_pos, town.position) if origin_pos is not None else 0.0
        fare = calculate_fare(distance, tourist_count, self.settings)
        milestone = check_milestones(distance, tourist_count, self.settings)

        items: List[RewardItem] = []
        if fare > 0:
            resource_id = self.settings.tourist_payment_resource
            item_id = self.content.resources.canonical_item(resource_id) or resource_id
            items.append(RewardItem(item_id=item_id, count=fare))
        items.extend(milestone.rewards)

        if items:
            metadata = {"touristCount": str(tourist_count)}
            if origin_town_id is not None:
                metadata["originTownId"] = origin_town_id
                origin = self.get_town(origin_town_id)
                metadata["originTown"] = origin.name if origin is not None else origin_town_id
            if fare > 0:
                metadata["fareAmount"] = str(fare)
            if milestone.has_rewards():
                metadata["milestoneDistance"] = str(int(round(distance)))
                metadata["milestoneItems"] = str(len(milestone.rewards))
            town.payment_board.add_reward(RewardSource.TOURIST_ARRIVAL, items, metadata=metadata)

        self.mark_dirty()
        logger.debug(
            "Processed tourist arrival",
            town_id=destination_town_id,
            count=tourist_count,
            origin_town_id=origin_town_id,
            fare=fare,
            milestone=milestone.milestone,
        )
        return True

    def add_resource_to_town(self, town_id: str, resource_id: str, count: int) -> bool:
        town = self.get_town(town_id)
        return town is not None and town.add_resource(resource_id, count)

    def remove_resource_from_town(self, town_id: str, resource_id: str, count: int) -> bool:
        town = self.get_town(town_id)
        return town is not None and town.add_resource(resource_id, -count)

    def cleanup_empty_towns(self) -> List[str]:
        """Remove towns whose population has dropped to zero."""
        empty = [town_id for town_id, town in self.towns.items() if town.get_population() <= 0]
        for town_id in empty:
            self.remove_town(town_id)
        if empty:
            logger.info("Removed empty towns", count=len(empty))
        return empty

    # Simulation

    def tick(self) -> None:
        for town in list(self.towns.values()):
            town.tick(self.rng)

    # Persistence

    def save_towns(self) -> None:
        data = {"towns": {town_id: town.save() for town_id, town in self.towns.items()}}
        self.persistence.save(data)
        logger.debug("Saved towns", count=len(self.towns))

    def load_towns(self) -> int:
        """
        Replace the registry with the persisted towns.

        Towns that fail to load are logged and skipped.

        Returns:
            Number of towns loaded
        """
        data: Optional[Dict[str, Any]] = self.persistence.load()
        self.towns = {}
        if not data or not isinstance(data, dict):
            return 0

        towns = data.get("towns") or {}
        if not isinstance(towns, dict):
            logger.error("Ignoring invalid towns table", data_type=type(towns).__name__)
            return 0

        for town_id, town_data in towns.items():
            try:
                town = Town.load(
                    town_data,
                    settings=self.settings,
                    content=self.content,
                    clock=self.clock,
                    on_dirty=self._on_town_dirty,
                )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.error("Failed to load town", town_id=town_id, error=str(e))
                continue
            self.towns[town.id] = town

        logger.info("Loaded towns", count=len(self.towns))
        return len(self.towns)

    def get_statistics(self) -> TownStatistics:
        populations = [town.get_population() for town in self.towns.values()]
        return TownStatistics(
            total_towns=len(self.towns),
            total_population=int(sum(populations)),
            average_population=float(np.mean(populations)) if populations else 0.0,
            total_tourists=sum(town.tourist_count for town in self.towns.values()),
            towns_researching=sum(
                1 for town in self.towns.values() if town.upgrades.current_research is not None
            ),
        )

    def __repr__(self) -> str:
        return f"TownManager(towns={len(self.towns)})"
