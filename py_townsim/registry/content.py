"""
Content bundle: the three static catalogs a simulation runs against.

Content packs are CSV files in a single directory. Missing files are written
out from the built-in defaults so server operators have something to edit.
"""

import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import structlog

from . import production, resources, upgrades
from .parsers import Effect, ResourceAmount
from .production import ProductionRecipe, ProductionRegistry
from .resources import ResourceRegistry, ResourceType
from .upgrades import UpgradeNode, UpgradeRegistry

logger = structlog.get_logger()


@dataclass
class ContentRegistry:
    """Resources, production recipes and upgrade nodes loaded together."""

    resources: ResourceRegistry = field(default_factory=ResourceRegistry)
    productions: ProductionRegistry = field(default_factory=ProductionRegistry)
    upgrades: UpgradeRegistry = field(default_factory=UpgradeRegistry)

    def validate(self) -> None:
        self.upgrades.validate()

    @classmethod
    def default(cls) -> "ContentRegistry":
        content = cls(
            resources=ResourceRegistry(default_resources()),
            productions=ProductionRegistry(default_recipes()),
            upgrades=UpgradeRegistry(default_upgrades()),
        )
        content.validate()
        return content

    @classmethod
    def load(cls, content_dir: Optional[Path]) -> "ContentRegistry":
        """
        Load content from ``content_dir``, writing defaults for missing files.

        Args:
            content_dir: Directory with items.csv, productions.csv and upgrades.csv,
                or None to use the built-in catalog
        """
        if content_dir is None:
            return cls.default()

        content_dir = Path(content_dir)
        write_default_content(content_dir, overwrite=False)

        content = cls(
            resources=ResourceRegistry.from_csv(content_dir / resources.CSV_FILE_NAME),
            productions=ProductionRegistry.from_csv(content_dir / production.CSV_FILE_NAME),
            upgrades=UpgradeRegistry.from_csv(content_dir / upgrades.CSV_FILE_NAME),
        )
        logger.info("Content loaded", directory=str(content_dir))
        return content


def default_resources() -> List[ResourceType]:
    return [
        ResourceType(id="wood", canonical_item_id="minecraft:oak_log", display_name="Wood"),
        ResourceType(id="planks", canonical_item_id="minecraft:oak_planks", display_name="Planks"),
        ResourceType(id="stone", canonical_item_id="minecraft:cobblestone", display_name="Stone"),
        ResourceType(id="iron", canonical_item_id="minecraft:iron_ingot", display_name="Iron Ingot"),
        ResourceType(id="coal", canonical_item_id="minecraft:coal", display_name="Coal"),
        ResourceType(id="food", canonical_item_id="minecraft:bread", display_name="Food"),
        ResourceType(id="money", canonical_item_id="minecraft:emerald", display_name="Emeralds"),
    ]


def default_recipes() -> List[ProductionRecipe]:
    return [
        ProductionRecipe(
            id="population_maintenance",
            display_name="Food Consumption",
            base_cycle_time_days=1.0,
            inputs=[ResourceAmount(resource_id="food", amount=1, per_population=True)],
        ),
        ProductionRecipe(
            id="basic_farming",
            display_name="Basic Wheat Farming",
            base_cycle_time_days=1.0,
            outputs=[ResourceAmount(resource_id="food", amount=4)],
        ),
        ProductionRecipe(
            id="advanced_farming",
            display_name="Advanced Wheat Farming",
            base_cycle_time_days=1.0,
            outputs=[ResourceAmount(resource_id="food", amount=8)],
        ),
        ProductionRecipe(
            id="wood_to_planks",
            display_name="Wood to Planks",
            base_cycle_time_days=0.5,
            inputs=[ResourceAmount(resource_id="wood", amount=4)],
            outputs=[ResourceAmount(resource_id="planks", amount=16)],
        ),
        ProductionRecipe(
            id="passive_mining",
            display_name="Passive Stone Mining",
            base_cycle_time_days=1.0,
            outputs=[ResourceAmount(resource_id="stone", amount=5)],
        ),
    ]


def default_upgrades() -> List[UpgradeNode]:
    return [
        UpgradeNode(
            id="basic_settlement",
            category="housing",
            display_name="Basic Settlement",
            description="Starter housing logic",
            effects=[
                Effect(target="storage_cap_all", value=200),
                Effect(target="population_maintenance", value=1.0),
            ],
            research_days=0.5,
        ),
        UpgradeNode(
            id="farming_basic",
            category="farming",
            display_name="Basic Farming",
            description="Access to basic farming",
            prereq_nodes=["basic_settlement"],
            costs=[ResourceAmount(resource_id="money", amount=10)],
            effects=[Effect(target="basic_farming", value=1.0)],
            research_days=1.0,
        ),
        UpgradeNode(
            id="farming_improved",
            category="farming",
            display_name="Improved Irrigation",
            description="More food output",
            prereq_nodes=["farming_basic"],
            costs=[ResourceAmount(resource_id="money", amount=25)],
            effects=[Effect(target="basic_farming", value=20, is_percentage=True)],
            research_days=2.0,
        ),
        UpgradeNode(
            id="wood_processing",
            category="wood",
            display_name="Sawmill",
            description="Processing wood logs",
            prereq_nodes=["basic_settlement"],
            costs=[ResourceAmount(resource_id="wood", amount=20)],
            effects=[Effect(target="wood_to_planks", value=1.0)],
            research_days=1.0,
        ),
        UpgradeNode(
            id="quarry",
            category="mining",
            display_name="Quarry",
            description="Passive stone income",
            prereq_nodes=["basic_settlement"],
            costs=[ResourceAmount(resource_id="money", amount=15)],
            effects=[Effect(target="passive_mining", value=1.0)],
            research_days=1.5,
        ),
        UpgradeNode(
            id="granary",
            category="storage",
            display_name="Granary",
            description="More room for food",
            prereq_nodes=["farming_basic"],
            costs=[ResourceAmount(resource_id="wood", amount=30)],
            effects=[Effect(target="storage_cap_food", value=250)],
            research_days=1.0,
            repeatable=True,
            max_repeats=3,
        ),
    ]


def _format_amounts(amounts: List[ResourceAmount]) -> str:
    parts = []
    for amount in amounts:
        prefix = "pop*" if amount.per_population else ""
        parts.append(f"{prefix}{amount.resource_id}:{amount.amount:g}")
    return ";".join(parts)


def _format_effects(effects: List[Effect]) -> str:
    parts = []
    for effect in effects:
        suffix = "%" if effect.is_percentage else ""
        parts.append(f"{effect.target}:{effect.value:g}{suffix}")
    return ";".join(parts)


def write_default_content(content_dir: Path, overwrite: bool = False) -> None:
    """Write the built-in catalog as CSV files into ``content_dir``."""
    content_dir.mkdir(parents=True, exist_ok=True)

    items_path = content_dir / resources.CSV_FILE_NAME
    if overwrite or not items_path.exists():
        with open(items_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(resources.CSV_HEADER)
            for r in default_resources():
                writer.writerow([r.id, r.display_name, r.canonical_item_id])
        logger.info("Wrote default content", file=str(items_path))

    productions_path = content_dir / production.CSV_FILE_NAME
    if overwrite or not productions_path.exists():
        with open(productions_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(production.CSV_HEADER)
            for p in default_recipes():
                writer.writerow(
                    [
                        p.id,
                        p.display_name,
                        f"{p.base_cycle_time_days:g}",
                        _format_amounts(p.inputs),
                        _format_amounts(p.outputs),
                    ]
                )
        logger.info("Wrote default content", file=str(productions_path))

    upgrades_path = content_dir / upgrades.CSV_FILE_NAME
    if overwrite or not upgrades_path.exists():
        with open(upgrades_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(upgrades.CSV_HEADER)
            for u in default_upgrades():
                writer.writerow(
                    [
                        u.id,
                        u.category,
                        u.display_name,
                        ";".join(u.prereq_nodes),
                        u.description,
                        _format_effects(u.effects),
                        _format_amounts(u.costs),
                        f"{u.research_days:g}",
                        "true" if u.repeatable else "false",
                        u.max_repeats,
                    ]
                )
        logger.info("Wrote default content", file=str(upgrades_path))
