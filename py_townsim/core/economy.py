"""
Per-town resource stock and population.
"""

from typing import Any, Dict

import structlog

from .storage import StockLedger

logger = structlog.get_logger()


class TownEconomyComponent:
    """Resource ledger and population owned by exactly one town."""

    def __init__(self, population: int = 0):
        self.resources = StockLedger()
        self.population = max(0, population)

    def add_resource(self, resource_id: str, delta: int) -> bool:
        """
        Add (or, with a negative delta, remove) a resource.

        Returns:
            False without changing anything if the removal exceeds the stock
        """
        result = self.resources.adjust(resource_id, delta)
        if not result.success:
            logger.debug(
                "Insufficient stock",
                resource_id=resource_id,
                requested=result.error.requested,
                available=result.error.available,
            )
        return result.success

    def get_resource_count(self, resource_id: str) -> int:
        return self.resources.get(resource_id)

    def get_all_resources(self) -> Dict[str, int]:
        return self.resources.items()

    def get_population(self) -> int:
        return self.population

    def set_population(self, amount: int) -> bool:
        if amount < 0:
            return False
        self.population = amount
        logger.debug("Population set", population=amount)
        return True

    def save(self) -> Dict[str, Any]:
        return {"population": self.population, "resources": self.resources.to_dict()}

    def load(self, data: Dict[str, Any]) -> None:
        self.population = max(0, int(data.get("population", 0)))
        self.resources = StockLedger.from_dict(data.get("resources", {}), context="economy")
