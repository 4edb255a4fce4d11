"""
Parsers for the packed fields used in content CSV files.

Content rows pack lists into single cells separated by ``;``:

- effects:   ``storage_cap_all:200;basic_farming:20%;wood_to_planks``
- resources: ``wood:4;pop*food:1``
- lists:     ``farming_basic;wood_processing``
"""

import re
from typing import Any, List, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()

# namespace:path or bare path, lowercase like registry keys
ITEM_ID_PATTERN = re.compile(r"^(?:[a-z0-9_.-]+:)?[a-z0-9_./-]+$")

PER_POPULATION_PREFIX = "pop*"


class ContentError(Exception):
    """Malformed content pack (unknown or cyclic prerequisites, bad rows)."""


class Effect(BaseModel):
    """Modifier applied by an unlocked upgrade node."""

    model_config = ConfigDict(frozen=True)

    target: str = Field(description="Storage-cap selector or production recipe id")
    value: float = Field(default=1.0, description="Modifier value")
    is_percentage: bool = Field(default=False, description="Value was written as N%")


class ResourceAmount(BaseModel):
    """A resource id paired with a quantity."""

    model_config = ConfigDict(frozen=True)

    resource_id: str = Field(description="Resource identifier")
    amount: float = Field(description="Quantity per cycle or cost")
    per_population: bool = Field(
        default=False, description="Quantity scales with town population"
    )

    def scaled(self, population: int) -> float:
        """Quantity after applying population scaling."""
        return self.amount * population if self.per_population else self.amount


def normalize_item_id(raw: Any) -> Optional[str]:
    """
    Normalize a resource/item identifier.

    Returns:
        The trimmed identifier, or None if it cannot be parsed
    """
    if not isinstance(raw, str):
        return None
    key = raw.strip()
    if not key or not ITEM_ID_PATTERN.match(key):
        return None
    return key


def parse_list(raw: Optional[str]) -> List[str]:
    if raw is None:
        return []
    return [item.strip() for item in raw.split(";") if item.strip()]


def parse_effects(packed: Optional[str]) -> List[Effect]:
    """
    Parse a packed effect list.

    ``target:value`` and ``target:value%`` carry a number, ``target*value``
    is a multiplier, and a bare ``target`` unlocks with value 1.0.
    """
    effects: List[Effect] = []
    for part in parse_list(packed):
        if ":" not in part:
            if "*" in part:
                key, _, mult = part.partition("*")
                try:
                    effects.append(Effect(target=key.strip(), value=float(mult)))
                    continue
                except ValueError:
                    logger.warning("Invalid effect modifier value", effect=part)
            effects.append(Effect(target=part, value=1.0))
            continue

        key, _, value_str = part.partition(":")
        value_str = value_str.strip()
        is_pct = value_str.endswith("%")
        if is_pct:
            value_str = value_str[:-1]
        try:
            effects.append(
                Effect(target=key.strip(), value=float(value_str), is_percentage=is_pct)
            )
        except ValueError:
            logger.warning("Invalid effect value", effect=part)
    return effects


def parse_resource_amounts(packed: Optional[str]) -> List[ResourceAmount]:
    """Parse ``wood:4;pop*food:1`` into ordered resource amounts."""
    amounts: List[ResourceAmount] = []
    for part in parse_list(packed):
        key, sep, value_str = part.partition(":")
        if not sep:
            logger.warning("Invalid resource amount", entry=part)
            continue

        per_pop = key.startswith(PER_POPULATION_PREFIX)
        if per_pop:
            key = key[len(PER_POPULATION_PREFIX):]

        resource_id = normalize_item_id(key)
        if resource_id is None:
            logger.warning("Invalid resource id", entry=part)
            continue
        try:
            amount = float(value_str)
        except ValueError:
            logger.warning("Invalid resource amount", entry=part)
            continue
        amounts.append(
            ResourceAmount(resource_id=resource_id, amount=amount, per_population=per_pop)
        )
    return amounts


def parse_item_stack(raw: str) -> Optional[Tuple[str, int]]:
    """
    Parse a ``namespace:item[:count]`` reward string.

    A missing, non-numeric or non-positive count falls back to 1.

    Returns:
        (item_id, count), or None if the item id cannot be parsed
    """
    parts = raw.strip().split(":")
    if len(parts) < 2:
        logger.warning("Invalid reward format", reward=raw)
        return None

    item_id = normalize_item_id(":".join(parts[:2]))
    if item_id is None:
        logger.warning("Invalid reward item", reward=raw)
        return None

    count = 1
    if len(parts) >= 3:
        try:
            count = int(parts[2])
        except ValueError:
            count = 0
        if count <= 0:
            logger.warning("Invalid reward count, using 1", reward=raw)
            count = 1
    return item_id, count
