"""
Persisted key/value settings for the companion
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from .config import STORE_CONFIG
from .core.logging_config import get_logger

logger = get_logger(__name__)


class ConfigStore(ABC):
    """Key/value store that survives process restarts"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def has(self, key: str) -> bool:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    def update(self, values: Dict[str, Any]) -> None:
        """Set several keys at once"""
        for key, value in values.items():
            self.set(key, value)


class MemoryConfigStore(ConfigStore):
    """Process-local store, used headless and in tests"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def clear(self) -> None:
        self._data.clear()


class JsonConfigStore(ConfigStore):
    """Handles saving and loading settings as a single JSON document"""

    def __init__(self,
                 directory: Optional[str] = None,
                 namespace: Optional[str] = None):
        """
        Initialize the store

        Args:
            directory: Directory holding the settings file
            namespace: File stem; every key lives inside this namespace
        """
        self.directory = Path(directory or STORE_CONFIG["directory"])
        self.namespace = namespace or STORE_CONFIG["namespace"]
        self.path = self.directory / f"{self.namespace}.json"
        self._data: Dict[str, Any] = self._load()

    def exists(self) -> bool:
        """Whether settings were ever written (false on first run)"""
        return self.path.exists()

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    def update(self, values: Dict[str, Any]) -> None:
        self._data.update(values)
        self._save()

    def has(self, key: str) -> bool:
        return key in self._data

    def clear(self) -> None:
        self._data = {}
        if self.path.exists():
            self.path.unlink()
        logger.info("Settings cleared", extra={"extra_data": {"path": str(self.path)}})

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {self.path}: expected a JSON object")
            return {}
        return data

    def _save(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

        # Write to a sibling file first so a crash never leaves half a document
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{self.namespace}-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
