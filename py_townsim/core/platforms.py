"""
Tourist platforms: path segments from which visitors leave a town.
"""

import uuid
from typing import Any, Dict, List, Optional, Set, Tuple

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()

Position = Tuple[int, int, int]

MAX_PLATFORMS = 10


def _pos_to_dict(pos: Optional[Position]) -> Optional[Dict[str, int]]:
    if pos is None:
        return None
    return {"x": pos[0], "y": pos[1], "z": pos[2]}


def _pos_from_dict(data: Optional[Dict[str, Any]]) -> Optional[Position]:
    if not data:
        return None
    return (int(data["x"]), int(data["y"]), int(data["z"]))


class Platform(BaseModel):
    """A departure path and the destinations it may route visitors to."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Platform id")
    name: str = Field(default="New Platform", description="Display name")
    enabled: bool = Field(default=True, description="Whether tourists may depart here")
    start_pos: Optional[Position] = Field(default=None, description="Path start marker")
    end_pos: Optional[Position] = Field(default=None, description="Path end marker")
    enabled_destinations: Set[str] = Field(
        default_factory=set, description="Allowed destination town ids (empty = any)"
    )

    def has_path(self) -> bool:
        return self.start_pos is not None and self.end_pos is not None

    def is_complete(self) -> bool:
        return self.enabled and self.has_path()

    def allows_destination(self, town_id: str) -> bool:
        return not self.enabled_destinations or town_id in self.enabled_destinations

    def set_destination_enabled(self, town_id: str, enabled: bool) -> None:
        if enabled:
            self.enabled_destinations.add(town_id)
        else:
            self.enabled_destinations.discard(town_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "startPos": _pos_to_dict(self.start_pos),
            "endPos": _pos_to_dict(self.end_pos),
            "destinations": sorted(self.enabled_destinations),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Platform":
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            name=data.get("name", "New Platform"),
            enabled=bool(data.get("enabled", True)),
            start_pos=_pos_from_dict(data.get("startPos")),
            end_pos=_pos_from_dict(data.get("endPos")),
            enabled_destinations=set(data.get("destinations", [])),
        )


class PlatformList:
    """Ordered platforms of one town, capped at ``MAX_PLATFORMS``."""

    def __init__(self):
        self._platforms: List[Platform] = []

    def add(self, name: Optional[str] = None) -> Optional[Platform]:
        if len(self._platforms) >= MAX_PLATFORMS:
            logger.debug("Platform limit reached", limit=MAX_PLATFORMS)
            return None
        platform = Platform(name=name or f"Platform #{len(self._platforms) + 1}")
        self._platforms.append(platform)
        return platform

    def remove(self, platform_id: str) -> bool:
        for i, platform in enumerate(self._platforms):
            if platform.id == platform_id:
                del self._platforms[i]
                return True
        return False

    def get(self, platform_id: str) -> Optional[Platform]:
        for platform in self._platforms:
            if platform.id == platform_id:
                return platform
        return None

    def get_all(self) -> List[Platform]:
        return list(self._platforms)

    def get_enabled(self) -> List[Platform]:
        return [p for p in self._platforms if p.is_complete()]

    def __len__(self) -> int:
        return len(self._platforms)

    def save(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self._platforms]

    def load(self, data: List[Dict[str, Any]]) -> None:
        self._platforms = []
        for raw in data or []:
            try:
                self._platforms.append(Platform.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid platform", error=str(e))
