"""
Production recipe catalog.
"""

import csv
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .parsers import ResourceAmount, parse_resource_amounts

logger = structlog.get_logger()

CSV_FILE_NAME = "productions.csv"
CSV_HEADER = ["prod_id", "display_name", "base_cycle_time_days", "inputs", "outputs"]


class ProductionRecipe(BaseModel):
    """A production process turning inputs into outputs once per cycle."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Recipe identifier")
    display_name: str = Field(default="", description="Human-readable name")
    base_cycle_time_days: float = Field(
        default=1.0, gt=0, description="Days per production cycle"
    )
    inputs: List[ResourceAmount] = Field(default_factory=list, description="Consumed per cycle")
    outputs: List[ResourceAmount] = Field(default_factory=list, description="Produced per cycle")

    def output_ids(self) -> List[str]:
        return [output.resource_id for output in self.outputs]


class ProductionRegistry:
    """Static catalog of production recipes."""

    def __init__(self, recipes: Optional[List[ProductionRecipe]] = None):
        self._recipes: Dict[str, ProductionRecipe] = {}
        for recipe in recipes or []:
            self.register(recipe)

    def register(self, recipe: ProductionRecipe) -> None:
        self._recipes[recipe.id] = recipe

    def get(self, recipe_id: str) -> Optional[ProductionRecipe]:
        return self._recipes.get(recipe_id)

    def get_all(self) -> List[ProductionRecipe]:
        return list(self._recipes.values())

    def producing(self, resource_id: str) -> List[ProductionRecipe]:
        """Recipes with ``resource_id`` among their outputs."""
        return [r for r in self._recipes.values() if resource_id in r.output_ids()]

    def __contains__(self, recipe_id: object) -> bool:
        return recipe_id in self._recipes

    def __iter__(self) -> Iterator[ProductionRecipe]:
        return iter(self._recipes.values())

    def __len__(self) -> int:
        return len(self._recipes)

    @classmethod
    def from_csv(cls, path: Path) -> "ProductionRegistry":
        registry = cls()
        with open(path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                recipe_id = (row.get("prod_id") or "").strip()
                if not recipe_id:
                    continue

                cycle_time = 1.0
                try:
                    cycle_time = float(row.get("base_cycle_time_days") or 1.0)
                except ValueError:
                    logger.warning(
                        "Invalid cycle time",
                        recipe_id=recipe_id,
                        value=row.get("base_cycle_time_days"),
                    )
                if cycle_time <= 0:
                    logger.warning("Non-positive cycle time", recipe_id=recipe_id)
                    cycle_time = 1.0

                registry.register(
                    ProductionRecipe(
                        id=recipe_id,
                        display_name=(row.get("display_name") or "").strip(),
                        base_cycle_time_days=cycle_time,
                        inputs=parse_resource_amounts(row.get("inputs")),
                        outputs=parse_resource_amounts(row.get("outputs")),
                    )
                )

        logger.info("Loaded production recipes", count=len(registry), file=str(path))
        return registry
