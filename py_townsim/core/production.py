"""
Per-town production: runs unlocked recipes on the simulation tick.

A recipe is active once any unlocked upgrade node has an effect targeting its
id. Percentage effects on the recipe id speed it up (``+20%`` -> 1.2x).
"""

import math
from typing import TYPE_CHECKING, Any, Dict, List

import structlog

from ..registry import ProductionRecipe

if TYPE_CHECKING:
    from .town import Town

logger = structlog.get_logger()


class TownProductionComponent:
    """Recipe progress counters and production/consumption rates."""

    def __init__(self, town: "Town"):
        self.town = town
        self.progress: Dict[str, int] = {}

    def is_active(self, recipe: ProductionRecipe) -> bool:
        return self.town.upgrades.targets_unlocked(recipe.id)

    def get_active_recipes(self) -> List[ProductionRecipe]:
        return [r for r in self.town.content.productions if self.is_active(r)]

    def get_speed(self, recipe: ProductionRecipe) -> float:
        return max(0.0, 1.0 + self.town.upgrades.get_percentage_bonus(recipe.id))

    def cycle_ticks(self, recipe: ProductionRecipe) -> int:
        """Ticks per cycle; at least one."""
        speed = self.get_speed(recipe)
        if speed <= 0:
            return 0
        ticks = recipe.base_cycle_time_days * self.town.settings.daily_tick_interval / speed
        return max(1, int(ticks))

    # Rates (per day)

    def get_production_rate(self, resource_id: str) -> float:
        population = self.town.get_population()
        rate = 0.0
        for recipe in self.get_active_recipes():
            cycles_per_day = self.get_speed(recipe) / recipe.base_cycle_time_days
            for output in recipe.outputs:
                if output.resource_id == resource_id:
                    rate += output.scaled(population) * cycles_per_day
        return rate

    def get_consumption_rate(self, resource_id: str) -> float:
        population = self.town.get_population()
        rate = 0.0
        for recipe in self.get_active_recipes():
            cycles_per_day = self.get_speed(recipe) / recipe.base_cycle_time_days
            for recipe_input in recipe.inputs:
                if recipe_input.resource_id == resource_id:
                    rate += recipe_input.scaled(population) * cycles_per_day
        return rate

    # Ticking

    def _scaled(self, amounts) -> Dict[str, int]:
        population = self.town.get_population()
        result: Dict[str, int] = {}
        for amount in amounts:
            value = int(math.ceil(amount.scaled(population)))
            if value > 0:
                result[amount.resource_id] = result.get(amount.resource_id, 0) + value
        return result

    def can_run(self, recipe: ProductionRecipe) -> bool:
        economy = self.town.economy
        return all(
            economy.get_resource_count(resource_id) >= amount
            for resource_id, amount in self._scaled(recipe.inputs).items()
        )

    def run(self, recipe: ProductionRecipe) -> None:
        """Consume inputs and add outputs clamped to the storage cap."""
        economy = self.town.economy
        for resource_id, amount in self._scaled(recipe.inputs).items():
            economy.add_resource(resource_id, -amount)

        for resource_id, amount in self._scaled(recipe.outputs).items():
            room = int(self.town.get_storage_cap(resource_id)) - economy.get_resource_count(resource_id)
            produced = min(amount, max(0, room))
            if produced > 0:
                economy.add_resource(resource_id, produced)

        logger.debug("Recipe ran", town_id=self.town.id, recipe_id=recipe.id)

    def tick(self) -> List[str]:
        """
        Advance every active recipe by one tick.

        Returns:
            Ids of the recipes that completed a cycle
        """
        completed = []
        for recipe in self.get_active_recipes():
            interval = self.cycle_ticks(recipe)
            if interval <= 0:
                continue

            current = self.progress.get(recipe.id, 0) + 1
            if current < interval:
                self.progress[recipe.id] = current
                continue

            if self.can_run(recipe):
                self.run(recipe)
                self.progress[recipe.id] = 0
                completed.append(recipe.id)
            else:
                # Hold at the interval until inputs are available
                self.progress[recipe.id] = interval

        if completed:
            self.town.mark_dirty()
        return completed

    def save(self) -> Dict[str, Any]:
        return {"productionProgress": dict(self.progress)}

    def load(self, data: Dict[str, Any]) -> None:
        self.progress = {}
        for recipe_id, value in data.get("productionProgress", {}).items():
            try:
                self.progress[recipe_id] = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid production progress", recipe_id=recipe_id, value=value)
