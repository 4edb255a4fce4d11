"""Town persistence stores."""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger()


class TownPersistence(ABC):
    """
    Save/load contract used by the town manager.

    ``mark_dirty`` only flags that state changed; writing happens when the
    save subsystem calls ``save``.
    """

    def __init__(self):
        self._dirty = False

    def mark_dirty(self) -> None:
        self._dirty = True

    def is_dirty(self) -> bool:
        return self._dirty

    def clear_dirty(self) -> None:
        self._dirty = False

    @abstractmethod
    def save(self, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        """Last saved tree, or None if nothing was saved yet."""


class InMemoryTownPersistence(TownPersistence):
    """Keeps a deep copy of the saved tree in memory."""

    def __init__(self):
        super().__init__()
        self._data: Optional[str] = None

    def save(self, data: Dict[str, Any]) -> None:
        self._data = json.dumps(data)
        self.clear_dirty()

    def load(self) -> Optional[Dict[str, Any]]:
        if self._data is None:
            return None
        return json.loads(self._data)


class JsonFileTownPersistence(TownPersistence):
    """Stores the saved tree as a JSON file."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write-then-rename
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            logger.error("Failed to save towns", file=str(self.path))
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

        self.clear_dirty()
        logger.info("Towns saved", file=str(self.path), towns=len(data.get("towns", {})))

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            logger.info("No saved towns found", file=str(self.path))
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Corrupt town save file", file=str(self.path), error=str(e))
            return None
