"""
Upgrade (research node) catalog.

Nodes form a prerequisite DAG. Unlock state lives in each town's upgrade
component, never on the node itself.
"""

import csv
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .parsers import (
    ContentError,
    Effect,
    ResourceAmount,
    parse_effects,
    parse_list,
    parse_resource_amounts,
)

logger = structlog.get_logger()

CSV_FILE_NAME = "upgrades.csv"
CSV_HEADER = [
    "node_id",
    "category",
    "display_name",
    "prereq_nodes",
    "description",
    "effects",
    "costs",
    "research_days",
    "repeatable",
    "max_repeats",
]

STORAGE_CAP_ALL = "storage_cap_all"
STORAGE_CAP_PREFIX = "storage_cap_"

UNLIMITED_REPEATS = -1


class UpgradeNode(BaseModel):
    """A research node: prerequisites, costs and effects."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Node identifier")
    category: str = Field(default="", description="Grouping used by displays")
    display_name: str = Field(default="", description="Human-readable name")
    description: str = Field(default="", description="Benefit description")
    prereq_nodes: List[str] = Field(
        default_factory=list, description="Node ids that must all be unlocked"
    )
    costs: List[ResourceAmount] = Field(
        default_factory=list, description="Resources deducted when research starts"
    )
    effects: List[Effect] = Field(default_factory=list, description="Modifiers applied on unlock")
    research_days: float = Field(default=1.0, ge=0, description="Research duration in days")
    repeatable: bool = Field(default=False, description="Node may be researched again")
    max_repeats: int = Field(
        default=UNLIMITED_REPEATS, description="Level cap for repeatable nodes (-1 = none)"
    )

    def is_maxed(self, level: int) -> bool:
        """Whether a town at ``level`` can no longer research this node."""
        if not self.repeatable:
            return level >= 1
        return self.max_repeats != UNLIMITED_REPEATS and level >= self.max_repeats


class UpgradeRegistry:
    """Static catalog of upgrade nodes."""

    def __init__(self, nodes: Optional[List[UpgradeNode]] = None):
        self._nodes: Dict[str, UpgradeNode] = {}
        for node in nodes or []:
            self.register(node)

    def register(self, node: UpgradeNode) -> None:
        self._nodes[node.id] = node

    def get(self, node_id: str) -> Optional[UpgradeNode]:
        return self._nodes.get(node_id)

    def get_all(self) -> List[UpgradeNode]:
        return list(self._nodes.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[UpgradeNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def validate(self) -> None:
        """
        Check that every prerequisite exists and the prerequisite graph is acyclic.

        Raises:
            ContentError: naming the unknown prerequisite or the cycle found
        """
        for node in self._nodes.values():
            for prereq in node.prereq_nodes:
                if prereq not in self._nodes:
                    raise ContentError(
                        f"Upgrade '{node.id}' requires unknown node '{prereq}'"
                    )

        # Iterative DFS with white/grey/black marking
        state: Dict[str, int] = {node_id: 0 for node_id in self._nodes}
        for root in self._nodes:
            if state[root]:
                continue
            path: List[str] = [root]
            stack = [(root, iter(self._nodes[root].prereq_nodes))]
            state[root] = 1
            while stack:
                node_id, children = stack[-1]
                child = next(children, None)
                if child is None:
                    state[node_id] = 2
                    stack.pop()
                    path.pop()
                    continue
                if state[child] == 1:
                    cycle = path[path.index(child):] + [child]
                    raise ContentError(
                        "Upgrade prerequisite cycle: " + " -> ".join(cycle)
                    )
                if state[child] == 0:
                    state[child] = 1
                    path.append(child)
                    stack.append((child, iter(self._nodes[child].prereq_nodes)))

    def dependents_of(self, node_id: str) -> Set[str]:
        """Node ids listing ``node_id`` as a direct prerequisite."""
        return {n.id for n in self._nodes.values() if node_id in n.prereq_nodes}

    @classmethod
    def from_csv(cls, path: Path) -> "UpgradeRegistry":
        registry = cls()
        with open(path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                node_id = (row.get("node_id") or "").strip()
                if not node_id or node_id.startswith("#"):
                    continue

                try:
                    research_days = float(row.get("research_days") or 1.0)
                    max_repeats = int(row.get("max_repeats") or UNLIMITED_REPEATS)
                except ValueError:
                    logger.warning("Invalid numeric field in upgrade row", node_id=node_id)
                    continue

                registry.register(
                    UpgradeNode(
                        id=node_id,
                        category=(row.get("category") or "").strip(),
                        display_name=(row.get("display_name") or "").strip(),
                        description=(row.get("description") or "").strip(),
                        prereq_nodes=parse_list(row.get("prereq_nodes")),
                        costs=parse_resource_amounts(row.get("costs")),
                        effects=parse_effects(row.get("effects")),
                        research_days=research_days,
                        repeatable=(row.get("repeatable") or "").strip().lower()
                        in ("true", "1", "yes"),
                        max_repeats=max_repeats,
                    )
                )

        registry.validate()
        logger.info("Loaded upgrades", count=len(registry), file=str(path))
        return registry
