"""
Town aggregate root.

A town owns its economy, payment board, upgrade and production components,
visit history, tourist counters and per-actor personal storage. Population
grows from visitor traffic: every ``tourists_per_population_increase``
visitors add one population, and any excess carries over to the next step.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config import Settings, get_settings
from ..registry import ContentRegistry
from ..utils.clock import Clock, now_millis
from .boundary import boundary_radius, distance_between
from .economy import TownEconomyComponent
from .payment_board import TownPaymentBoard
from .platforms import PlatformList
from .production import TownProductionComponent
from .results import Result, ValidationError
from .storage import StockLedger
from .town_state import TownState, TownStateSnapshot
from .upgrades import TownUpgradeComponent

logger = structlog.get_logger()

Position = Tuple[int, int, int]


def position_to_dict(pos: Position) -> Dict[str, int]:
    return {"x": pos[0], "y": pos[1], "z": pos[2]}


def position_from_dict(data: Optional[Dict[str, Any]]) -> Optional[Position]:
    if not data:
        return None
    return (int(data["x"]), int(data["y"]), int(data["z"]))


class VisitHistoryRecord(BaseModel):
    """One batch of visitors received from another town."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(description="Arrival time (ms)")
    origin_town_id: Optional[str] = Field(default=None, description="Sending town")
    count: int = Field(default=1, description="Visitors in the batch")
    origin_pos: Optional[Position] = Field(default=None, description="Sending town position")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "townId": self.origin_town_id,
            "count": self.count,
        }
        if self.origin_pos is not None:
            data["pos"] = position_to_dict(self.origin_pos)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VisitHistoryRecord":
        return cls(
            timestamp=int(data["timestamp"]),
            origin_town_id=data.get("townId"),
            count=int(data.get("count", 1)),
            origin_pos=position_from_dict(data.get("pos")),
        )


class Town(TownState):
    """A settlement and everything it owns."""

    def __init__(
        self,
        position: Position,
        name: str,
        town_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        content: Optional[ContentRegistry] = None,
        clock: Optional[Clock] = None,
        on_dirty: Optional[Callable[["Town"], None]] = None,
    ):
        self.settings = settings or get_settings()
        self.content = content or ContentRegistry.default()
        self.clock = clock or now_millis
        self.on_dirty = on_dirty

        self.id = town_id or str(uuid.uuid4())
        self.position: Position = tuple(int(c) for c in position)
        self.name = name

        self.economy = TownEconomyComponent(self.settings.default_starting_population)
        self.payment_board = TownPaymentBoard(self.settings, self.clock)
        self.upgrades = TownUpgradeComponent(self)
        self.production = TownProductionComponent(self)
        self.platforms = PlatformList()

        self.tourist_count = 0
        self.tourist_spawning_enabled = True
        self.tourists_received_counter = 0
        self.visitors: Dict[str, int] = {}
        self.visit_history: List[VisitHistoryRecord] = []

        self.path_start: Optional[Position] = None
        self.path_end: Optional[Position] = None
        self.search_radius = max(1, self.settings.default_search_radius)

        self.personal_storage: Dict[str, StockLedger] = {}

    def mark_dirty(self) -> None:
        if self.on_dirty is not None:
            self.on_dirty(self)

    # Identity

    def set_name(self, name: str) -> Result[None, ValidationError]:
        """Rename the town; the name must be non-blank and within the length limit."""
        cleaned = (name or "").strip()
        if not cleaned:
            return Result.fail(ValidationError(field="name", message="Town name cannot be empty"))
        if len(cleaned) > self.settings.max_town_name_length:
            return Result.fail(
                ValidationError(
                    field="name",
                    message=f"Town name cannot exceed {self.settings.max_town_name_length} characters",
                )
            )
        self.name = cleaned
        self.mark_dirty()
        return Result.ok()

    # Economy

    def get_population(self) -> int:
        return self.economy.get_population()

    def set_population(self, amount: int) -> bool:
        if not self.economy.set_population(amount):
            return False
        self.mark_dirty()
        return True

    def add_resource(self, resource_id: str, delta: int) -> bool:
        if not self.economy.add_resource(resource_id, delta):
            return False
        self.mark_dirty()
        return True

    def get_resource_count(self, resource_id: str) -> int:
        return self.economy.get_resource_count(resource_id)

    def get_all_resources(self) -> Dict[str, int]:
        return self.economy.get_all_resources()

    # TownState

    def get_stock(self, resource_id: str) -> float:
        return self.economy.get_resource_count(resource_id)

    def get_storage_cap(self, resource_id: str) -> float:
        return self.upgrades.storage_cap(resource_id)

    def get_production_rate(self, resource_id: str) -> float:
        return self.production.get_production_rate(resource_id)

    def get_consumption_rate(self, resource_id: str) -> float:
        return self.production.get_consumption_rate(resource_id)

    def snapshot(self) -> TownStateSnapshot:
        """Read-only copy of the state the research AI reads."""
        resource_ids = set(self.content.resources.ids()) | set(self.get_all_resources())
        return TownStateSnapshot(
            stock={rid: self.get_stock(rid) for rid in resource_ids},
            caps={rid: self.get_storage_cap(rid) for rid in resource_ids},
            production={rid: self.get_production_rate(rid) for rid in resource_ids},
            consumption={rid: self.get_consumption_rate(rid) for rid in resource_ids},
            unlocked_nodes=frozenset(self.upgrades.get_unlocked_nodes()),
            default_cap=self.settings.default_storage_cap,
        )

    # Visitors and tourists

    def add_visitor(
        self, origin_town_id: Optional[str], count: int = 1, origin_pos: Optional[Position] = None
    ) -> int:
        """
        Record ``count`` visitors arriving from ``origin_town_id``.

        Returns:
            Population gained from this arrival
        """
        if count <= 0:
            return 0

        if origin_town_id is not None:
            self.visitors[origin_town_id] = self.visitors.get(origin_town_id, 0) + count
        self.tourists_received_counter += count

        gained = 0
        threshold = self.settings.tourists_per_population_increase
        while threshold > 0 and self.tourists_received_counter >= threshold:
            self.tourists_received_counter -= threshold
            self.economy.set_population(self.economy.get_population() + 1)
            gained += 1

        if gained:
            logger.debug(
                "Population increased from visitors",
                town_id=self.id,
                gained=gained,
                population=self.get_population(),
            )

        self.record_visit(origin_town_id, count, origin_pos)
        return gained

    def record_visit(
        self, origin_town_id: Optional[str], count: int, origin_pos: Optional[Position] = None
    ) -> None:
        record = VisitHistoryRecord(
            timestamp=self.clock(),
            origin_town_id=origin_town_id,
            count=count,
            origin_pos=origin_pos,
        )
        self.visit_history.insert(0, record)
        del self.visit_history[self.settings.max_visit_history:]
        self.mark_dirty()

    def get_visit_history(self) -> List[VisitHistoryRecord]:
        """Visit records, newest first."""
        return list(self.visit_history)

    def get_total_visitors(self) -> int:
        return sum(self.visitors.values())

    def clear_visit_history(self) -> None:
        self.visit_history.clear()
        self.mark_dirty()

    def population_based_tourist_limit(self) -> int:
        per_tourist = self.settings.population_per_tourist
        if per_tourist <= 0:
            return self.settings.max_pop_based_tourists
        return min(self.get_population() // per_tourist, self.settings.max_pop_based_tourists)

    def get_max_tourists(self) -> int:
        return min(self.settings.max_tourists_per_town, self.population_based_tourist_limit())

    def can_add_more_tourists(self) -> bool:
        return (
            self.tourist_spawning_enabled
            and self.tourist_count < self.settings.max_tourists_per_town
            and self.tourist_count < self.population_based_tourist_limit()
        )

    def add_tourist(self) -> bool:
        if not self.can_add_more_tourists():
            return False
        self.tourist_count += 1
        self.mark_dirty()
        return True

    def remove_tourist(self) -> bool:
        if self.tourist_count <= 0:
            return False
        self.tourist_count -= 1
        self.mark_dirty()
        return True

    def tourist_count_ceiling(self) -> int:
        """Largest tourist count a town may hold at its current population."""
        return max(self.settings.max_tourists_per_town, self.population_based_tourist_limit())

    def clamp_tourist_count(self, count: int) -> int:
        return min(max(0, count), self.tourist_count_ceiling())

    def set_tourist_count(self, count: int) -> None:
        self.tourist_count = self.clamp_tourist_count(count)
        self.mark_dirty()

    def set_tourist_spawning_enabled(self, enabled: bool) -> None:
        self.tourist_spawning_enabled = enabled
        self.mark_dirty()

    # Paths and boundary

    def set_path_start(self, pos: Optional[Position]) -> None:
        self.path_start = pos
        self.mark_dirty()

    def set_path_end(self, pos: Optional[Position]) -> None:
        self.path_end = pos
        self.mark_dirty()

    def set_search_radius(self, radius: int) -> None:
        self.search_radius = max(1, radius)
        self.mark_dirty()

    def get_boundary_radius(self) -> int:
        return boundary_radius(self.get_population())

    def is_within_boundary(self, position: Position) -> bool:
        return distance_between(position, self.position) <= self.get_boundary_radius()

    # Personal storage

    def add_to_personal_storage(self, actor_id: str, item_id: str, delta: int) -> bool:
        """
        Add to (or with a negative delta, remove from) an actor's storage.

        Returns:
            False without changing anything if the removal exceeds the holding
        """
        ledger = self.personal_storage.get(actor_id)
        if ledger is None:
            if delta < 0:
                return False
            ledger = self.personal_storage[actor_id] = StockLedger()

        if not ledger.add(item_id, delta):
            return False
        self.mark_dirty()
        return True

    def get_personal_storage_count(self, actor_id: str, item_id: str) -> int:
        ledger = self.personal_storage.get(actor_id)
        return ledger.get(item_id) if ledger else 0

    def get_personal_storage_items(self, actor_id: str) -> Dict[str, int]:
        ledger = self.personal_storage.get(actor_id)
        return ledger.items() if ledger else {}

    # Simulation

    def tick(self, rng) -> None:
        if self.settings.production_enabled:
            self.production.tick()
        self.upgrades.tick(rng)

    # Persistence

    def save(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "posX": self.position[0],
            "posY": self.position[1],
            "posZ": self.position[2],
            "touristCount": self.tourist_count,
            "touristsReceivedCounter": self.tourists_received_counter,
            "touristSpawningEnabled": self.tourist_spawning_enabled,
            "visitors": dict(self.visitors),
            "economy": self.economy.save(),
            "searchRadius": self.search_radius,
            "visitHistory": [record.to_dict() for record in self.visit_history],
            "paymentBoard": self.payment_board.save(),
            "personalStorage": {
                actor_id: ledger.to_dict()
                for actor_id, ledger in self.personal_storage.items()
                if len(ledger)
            },
            "upgrades": self.upgrades.save(),
            "production": self.production.save(),
            "platforms": self.platforms.save(),
        }
        if self.path_start is not None:
            data["PathStart"] = position_to_dict(self.path_start)
        if self.path_end is not None:
            data["PathEnd"] = position_to_dict(self.path_end)
        return data

    @classmethod
    def load(
        cls,
        data: Dict[str, Any],
        settings: Optional[Settings] = None,
        content: Optional[ContentRegistry] = None,
        clock: Optional[Clock] = None,
        on_dirty: Optional[Callable[["Town"], None]] = None,
    ) -> "Town":
        """
        Rebuild a town from ``save()`` output.

        Raises:
            KeyError, TypeError, ValueError, AttributeError: if the id, the
                position or a required field has the wrong shape
        """
        town = cls(
            position=(int(data["posX"]), int(data["posY"]), int(data["posZ"])),
            name=str(data.get("name", "")),
            town_id=str(data["id"]),
            settings=settings,
            content=content,
            clock=clock,
        )

        town.tourists_received_counter = max(0, int(data.get("touristsReceivedCounter", 0)))
        town.tourist_spawning_enabled = bool(data.get("touristSpawningEnabled", True))
        town.visitors = {str(k): int(v) for k, v in data.get("visitors", {}).items()}
        town.search_radius = max(1, int(data.get("searchRadius", town.settings.default_search_radius)))
        town.path_start = position_from_dict(data.get("PathStart"))
        town.path_end = position_from_dict(data.get("PathEnd"))

        if "economy" in data:
            town.economy.load(data["economy"])
        town.tourist_count = town.clamp_tourist_count(int(data.get("touristCount", 0)))

        for raw in data.get("visitHistory", []):
            try:
                town.visit_history.append(VisitHistoryRecord.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping invalid visit record", town_id=town.id, error=str(e))
        town.visit_history.sort(key=lambda r: r.timestamp, reverse=True)
        del town.visit_history[town.settings.max_visit_history:]

        if "paymentBoard" in data:
            town.payment_board.load(data["paymentBoard"])
        elif "communalStorage" in data:
            migrated = StockLedger.from_dict(data["communalStorage"], context="communalStorage")
            for item_id, count in migrated.items().items():
                town.payment_board.add_to_buffer(item_id, count)
            logger.info("Migrated communal storage to buffer", town_id=town.id, items=len(migrated))

        personal = data.get("personalStorage") or {}
        if not isinstance(personal, dict):
            logger.warning("Ignoring invalid personal storage", town_id=town.id)
            personal = {}
        for actor_id, items in personal.items():
            ledger = StockLedger.from_dict(items, context="personalStorage")
            if len(ledger):
                town.personal_storage[str(actor_id)] = ledger

        town.upgrades.load(data.get("upgrades", {}))
        town.production.load(data.get("production", {}))
        town.platforms.load(data.get("platforms", []))

        town.on_dirty = on_dirty
        return town

    def __repr__(self) -> str:
        return f"Town(id={self.id!r}, name={self.name!r}, position={self.position})"
