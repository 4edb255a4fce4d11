"""
Read capability consumed by the research AI.

``Town`` is the authoritative implementation. ``TownStateSnapshot`` is a
read-only mirror that can be handed to a display layer so the same scoring
code runs without any path back to the live town.
"""

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional


class TownState(ABC):
    """Stock, capacity and rate lookups for one town."""

    @abstractmethod
    def get_stock(self, resource_id: str) -> float:
        ...

    @abstractmethod
    def get_storage_cap(self, resource_id: str) -> float:
        ...

    @abstractmethod
    def get_production_rate(self, resource_id: str) -> float:
        """Units produced per day."""

    @abstractmethod
    def get_consumption_rate(self, resource_id: str) -> float:
        """Units consumed per day."""


class TownStateSnapshot(TownState):
    """Immutable copy of a town's state; exposes no mutators."""

    def __init__(
        self,
        stock: Mapping[str, float],
        caps: Mapping[str, float],
        production: Optional[Mapping[str, float]] = None,
        consumption: Optional[Mapping[str, float]] = None,
        unlocked_nodes: FrozenSet[str] = frozenset(),
        default_cap: float = 0.0,
    ):
        self._stock = MappingProxyType(dict(stock))
        self._caps = MappingProxyType(dict(caps))
        self._production = MappingProxyType(dict(production or {}))
        self._consumption = MappingProxyType(dict(consumption or {}))
        self._unlocked = frozenset(unlocked_nodes)
        self._default_cap = default_cap

    def get_stock(self, resource_id: str) -> float:
        return self._stock.get(resource_id, 0)

    def get_storage_cap(self, resource_id: str) -> float:
        return self._caps.get(resource_id, self._default_cap)

    def get_production_rate(self, resource_id: str) -> float:
        return self._production.get(resource_id, 0.0)

    def get_consumption_rate(self, resource_id: str) -> float:
        return self._consumption.get(resource_id, 0.0)

    @property
    def unlocked_nodes(self) -> FrozenSet[str]:
        return self._unlocked

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            "stock": dict(self._stock),
            "caps": dict(self._caps),
            "production": dict(self._production),
            "consumption": dict(self._consumption),
        }
