"""
Per-town upgrade state: unlocked nodes, levels and the research in progress.
"""

import math
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

import numpy as np
import structlog

from ..registry import STORAGE_CAP_ALL, STORAGE_CAP_PREFIX, UpgradeNode
from . import research_ai

if TYPE_CHECKING:
    from .town import Town

logger = structlog.get_logger()


class TownUpgradeComponent:
    """Research progress and active modifiers for one town."""

    def __init__(self, town: "Town"):
        self.town = town
        self.levels: Dict[str, int] = {}
        self.current_research: Optional[str] = None
        self.research_progress = 0.0
        self.ai_cooldown = 0
        self._modifiers: Dict[str, float] = {}

    @property
    def content(self):
        return self.town.content

    @property
    def settings(self):
        return self.town.settings

    # Unlock state

    def is_unlocked(self, node_id: str) -> bool:
        return self.levels.get(node_id, 0) > 0

    def get_level(self, node_id: str) -> int:
        return self.levels.get(node_id, 0)

    def get_unlocked_nodes(self) -> Set[str]:
        return {node_id for node_id, level in self.levels.items() if level > 0}

    def prerequisites_met(self, node: UpgradeNode) -> bool:
        return all(self.is_unlocked(prereq) for prereq in node.prereq_nodes)

    def _scaled_costs(self, node: UpgradeNode) -> Dict[str, int]:
        population = self.town.get_population()
        costs: Dict[str, int] = {}
        for cost in node.costs:
            amount = int(math.ceil(cost.scaled(population)))
            costs[cost.resource_id] = costs.get(cost.resource_id, 0) + amount
        return costs

    def can_afford(self, node: UpgradeNode) -> bool:
        economy = self.town.economy
        return all(
            economy.get_resource_count(resource_id) >= amount
            for resource_id, amount in self._scaled_costs(node).items()
        )

    def can_research(self, node: UpgradeNode) -> bool:
        """Prerequisites met, not maxed and affordable."""
        return (
            not node.is_maxed(self.get_level(node.id))
            and self.prerequisites_met(node)
            and self.can_afford(node)
        )

    # Research

    def start_research(self, node_id: str) -> bool:
        """
        Deduct the node's costs and begin researching it.

        Returns:
            False (nothing deducted) if research is already running, the node
            is unknown or maxed, a prerequisite is missing, or it is unaffordable
        """
        if self.current_research is not None:
            logger.debug("Research already in progress", node_id=self.current_research)
            return False

        node = self.content.upgrades.get(node_id)
        if node is None:
            logger.error("Cannot start unknown research node", node_id=node_id)
            return False
        if node.is_maxed(self.get_level(node_id)):
            logger.debug("Research node already maxed", node_id=node_id)
            return False
        if not self.prerequisites_met(node):
            logger.debug("Research prerequisites missing", node_id=node_id)
            return False
        if not self.can_afford(node):
            logger.debug("Cannot afford research", node_id=node_id)
            return False

        for resource_id, amount in self._scaled_costs(node).items():
            self.town.economy.add_resource(resource_id, -amount)

        self.current_research = node_id
        self.research_progress = 0.0
        logger.info("Research started", town_id=self.town.id, node_id=node_id)
        self.town.mark_dirty()
        return True

    def complete_research(self) -> Optional[str]:
        if self.current_research is None:
            return None

        node_id = self.current_research
        self.unlock_node(node_id)
        self.current_research = None
        self.research_progress = 0.0
        logger.info("Research completed", town_id=self.town.id, node_id=node_id)
        return node_id

    def unlock_node(self, node_id: str) -> None:
        """Unlock a node (or raise its level if repeatable)."""
        self.levels[node_id] = self.get_level(node_id) + 1
        self.recalculate_modifiers()
        self.town.mark_dirty()

    def tick(self, rng: np.random.Generator) -> Optional[str]:
        """
        Advance research by one tick.

        Returns:
            The node id completed on this tick, if any
        """
        if self.current_research is not None:
            node = self.content.upgrades.get(self.current_research)
            if node is None:
                logger.warning("Dropping unknown research node", node_id=self.current_research)
                self.current_research = None
                return None

            self.research_progress += 1.0 / self.settings.daily_tick_interval
            if self.research_progress >= node.research_days:
                return self.complete_research()
            return None

        self.ai_cooldown -= 1
        if self.ai_cooldown <= 0:
            self.ai_cooldown = self.settings.research_check_interval
            next_node = research_ai.select_next_research(
                self.town, self.content, rng, self.settings.research_bias_range
            )
            if next_node is not None:
                self.start_research(next_node)
        return None

    # Modifiers

    def recalculate_modifiers(self) -> None:
        modifiers: Dict[str, float] = {}
        for node_id, level in self.levels.items():
            node = self.content.upgrades.get(node_id)
            if node is None or level <= 0:
                continue
            for effect in node.effects:
                modifiers[effect.target] = modifiers.get(effect.target, 0.0) + effect.value * level
        self._modifiers = modifiers

    def get_modifier(self, target: str) -> float:
        return self._modifiers.get(target, 0.0)

    def get_active_modifiers(self) -> Dict[str, float]:
        return dict(self._modifiers)

    def targets_unlocked(self, target: str) -> bool:
        """Whether any unlocked node has an effect on ``target``."""
        for node_id in self.get_unlocked_nodes():
            node = self.content.upgrades.get(node_id)
            if node is not None and any(e.target == target for e in node.effects):
                return True
        return False

    def get_percentage_bonus(self, target: str) -> float:
        """Summed percentage effects on ``target`` as a fraction (20% -> 0.2)."""
        total = 0.0
        for node_id, level in self.levels.items():
            node = self.content.upgrades.get(node_id)
            if node is None:
                continue
            for effect in node.effects:
                if effect.target == target and effect.is_percentage:
                    total += effect.value * level
        return total / 100.0

    def storage_cap(self, resource_id: str) -> float:
        return (
            self.settings.default_storage_cap
            + self.get_modifier(STORAGE_CAP_ALL)
            + self.get_modifier(STORAGE_CAP_PREFIX + resource_id)
        )

    # Persistence

    def save(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "unlockedNodes": sorted(self.get_unlocked_nodes()),
            "levels": dict(self.levels),
        }
        if self.current_research is not None:
            data["currentResearch"] = self.current_research
            data["researchProgress"] = self.research_progress
        return data

    def load(self, data: Dict[str, Any]) -> None:
        self.levels = {}
        levels = data.get("levels", {})
        for node_id in data.get("unlockedNodes", []):
            try:
                self.levels[node_id] = max(1, int(levels.get(node_id, 1)))
            except (TypeError, ValueError):
                logger.warning("Invalid upgrade level", node_id=node_id)
                self.levels[node_id] = 1

        self.current_research = data.get("currentResearch")
        self.research_progress = float(data.get("researchProgress", 0.0))
        self.recalculate_modifiers()
