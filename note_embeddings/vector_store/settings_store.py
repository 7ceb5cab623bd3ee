"""
Opaque settings blob storage.

The index and the user preferences are persisted together as one JSON
document, the same way the host application keeps plugin data.
"""

from __future__ import annotations

import copy
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from ..logging_utils import get_logger


logger = get_logger(__name__)


class SettingsStore(ABC):
    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored blob, or None when nothing was saved yet."""

    @abstractmethod
    def save(self, blob: Dict[str, Any]) -> None:
        """Durably replace the stored blob."""


class JsonFileSettingsStore(SettingsStore):
    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            logger.info("No settings found at '%s'; starting fresh.", self.path)
            return None
        with self.path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
        if not isinstance(raw, dict):
            raise ValueError(f"Settings file '{self.path}' does not hold a JSON object")
        return raw

    def save(self, blob: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(blob, fh, ensure_ascii=False)
        os.replace(tmp_path, self.path)
        logger.debug(
            "Saved settings with %d vectors to '%s'",
            len(blob.get("vectors", [])),
            self.path,
        )


class InMemorySettingsStore(SettingsStore):
    def __init__(self, blob: Optional[Dict[str, Any]] = None) -> None:
        self.blob = copy.deepcopy(blob) if blob is not None else None
        self.save_count = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.blob) if self.blob is not None else None

    def save(self, blob: Dict[str, Any]) -> None:
        self.blob = copy.deepcopy(blob)
        self.save_count += 1
