"""
Structured-text key-value stores.

The engine's durable records live behind a tiny read/write/clear surface
keyed by strings such as "progress:daily:dq-42". Values are JSON documents.

Backends:
- JsonFileStore: one JSON file per key under a directory (survives restarts)
- MemoryStore: process-local dict, used by previews and tests

A value that cannot be parsed reads as absent.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from loguru import logger


class KeyValueStore(ABC):
    """Raw string storage plus JSON helpers."""

    @abstractmethod
    def get_raw(self, key: str) -> str | None:
        ...

    @abstractmethod
    def set_raw(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        ...

    def get_json(self, key: str) -> Any | None:
        raw = self.get_raw(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("Ignoring unparsable record {}: {}", key, exc)
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_raw(key, json.dumps(value, separators=(",", ":")))


class MemoryStore(KeyValueStore):
    """In-process store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get_raw(self, key: str) -> str | None:
        return self._data.get(key)

    def set_raw(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class JsonFileStore(KeyValueStore):
    """
    File-backed store.

    Each key maps to {directory}/{url-quoted key}.json. Writes go through a
    temporary file and os.replace so a crash never leaves half a document.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path):
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def get_raw(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read {}: {}", path, exc)
            return None

    def set_raw(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(value)
        os.replace(tmp_path, path)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def keys(self, prefix: str = "") -> list[str]:
        found = []
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            key = unquote(path.name[: -len(self.SUFFIX)])
            if key.startswith(prefix):
                found.append(key)
        return sorted(found)
