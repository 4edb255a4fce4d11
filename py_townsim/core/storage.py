"""
Clamped item/resource counter shared by the economy, buffer and personal storage.

Counts never go negative: a removal larger than the held quantity fails and
leaves the ledger untouched. Entries that reach zero are dropped.
"""

from typing import Any, Dict, Mapping, Optional

import structlog

from ..registry.parsers import normalize_item_id
from .results import Result, StorageError

logger = structlog.get_logger()


class StockLedger:
    """Map of item id -> positive count with all-or-nothing removal."""

    def __init__(self, initial: Optional[Mapping[str, int]] = None):
        self._counts: Dict[str, int] = {}
        for item_id, count in (initial or {}).items():
            if count > 0:
                self._counts[item_id] = int(count)

    def adjust(self, item_id: str, delta: int) -> Result[int, StorageError]:
        """
        Apply ``delta`` to ``item_id``.

        Returns:
            Result holding the new count, or a StorageError when a negative
            delta exceeds the held quantity (nothing is changed in that case)
        """
        current = self._counts.get(item_id, 0)
        new_count = current + int(delta)
        if new_count < 0:
            return Result.fail(
                StorageError(item_id=item_id, requested=-int(delta), available=current)
            )

        if new_count == 0:
            self._counts.pop(item_id, None)
        else:
            self._counts[item_id] = new_count
        return Result.ok(new_count)

    def add(self, item_id: str, delta: int) -> bool:
        return self.adjust(item_id, delta).success

    def remove(self, item_id: str, count: int) -> bool:
        if count <= 0:
            return True
        return self.adjust(item_id, -count).success

    def get(self, item_id: str) -> int:
        return self._counts.get(item_id, 0)

    def items(self) -> Dict[str, int]:
        """Copy of the held counts."""
        return dict(self._counts)

    def total(self) -> int:
        return sum(self._counts.values())

    def clear(self) -> None:
        self._counts.clear()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._counts

    def __len__(self) -> int:
        return len(self._counts)

    def to_dict(self) -> Dict[str, int]:
        return dict(self._counts)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], context: str = "") -> "StockLedger":
        """
        Rebuild a ledger from persisted data.

        Unparseable item ids and non-integer counts are logged and skipped, as
        is a payload that is not a mapping.
        """
        ledger = cls()
        if data is None:
            return ledger
        if not isinstance(data, Mapping):
            logger.warning(
                "Skipping non-mapping storage data",
                context=context,
                data_type=type(data).__name__,
            )
            return ledger
        for key, count in data.items():
            item_id = normalize_item_id(key)
            if item_id is None:
                logger.warning("Skipping unparseable item id", item_id=key, context=context)
                continue
            try:
                value = int(count)
            except (TypeError, ValueError):
                logger.warning("Skipping invalid item count", item_id=key, count=count, context=context)
                continue
            if value > 0:
                ledger._counts[item_id] = value
        return ledger
