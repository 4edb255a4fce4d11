"""
Resource catalog.

Maps stable resource ids ("wood", "food") to the canonical countable item
that represents one unit of the resource.
"""

import csv
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .parsers import normalize_item_id

logger = structlog.get_logger()

CSV_FILE_NAME = "items.csv"
CSV_HEADER = ["item_id", "display_name", "canonical_item_id"]


class ResourceType(BaseModel):
    """A tradeable resource type."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable resource key")
    canonical_item_id: str = Field(description="Concrete countable unit")
    display_name: str = Field(default="", description="Human-readable name")


class ResourceRegistry:
    """Static catalog of resource types, loaded once at startup."""

    def __init__(self, resources: Optional[List[ResourceType]] = None):
        self._resources: Dict[str, ResourceType] = {}
        for resource in resources or []:
            self.register(resource)

    def register(self, resource: ResourceType) -> None:
        if resource.id in self._resources:
            logger.warning("Replacing resource type", resource_id=resource.id)
        self._resources[resource.id] = resource

    def get(self, resource_id: str) -> Optional[ResourceType]:
        return self._resources.get(resource_id)

    def get_all(self) -> List[ResourceType]:
        return list(self._resources.values())

    def ids(self) -> List[str]:
        return list(self._resources)

    def get_for_item(self, item_id: str) -> Optional[ResourceType]:
        """Resolve a concrete item id back to its resource type."""
        for resource in self._resources.values():
            if resource.canonical_item_id == item_id:
                return resource
        return None

    def canonical_item(self, resource_id: str) -> Optional[str]:
        resource = self._resources.get(resource_id)
        return resource.canonical_item_id if resource else None

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._resources

    def __iter__(self) -> Iterator[ResourceType]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    @classmethod
    def from_csv(cls, path: Path) -> "ResourceRegistry":
        """
        Load resources from ``item_id,display_name,canonical_item_id`` rows.

        Rows with unparseable ids are logged and skipped.
        """
        registry = cls()
        with open(path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                resource_id = normalize_item_id(row.get("item_id"))
                item_id = normalize_item_id(row.get("canonical_item_id"))
                if resource_id is None or item_id is None:
                    logger.error("Invalid item row", file=str(path), row=row)
                    continue
                registry.register(
                    ResourceType(
                        id=resource_id,
                        canonical_item_id=item_id,
                        display_name=(row.get("display_name") or "").strip(),
                    )
                )

        logger.info("Loaded resources", count=len(registry), file=str(path))
        return registry
