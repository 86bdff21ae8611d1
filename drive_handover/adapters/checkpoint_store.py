"""Checkpoint stores for Drive Handover.

A checkpoint store is a flat, durable key -> string map. Jobs read it at the
start of every tick and write it at every suspend point, so each write must be
durable on its own. There is no locking across keys: at most one tick per job
runs at a time, and that is guaranteed by the scheduler, not by the store.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Dict, Mapping, Optional


logger = logging.getLogger("drive_handover.checkpoint_store")


class CheckpointStore(ABC):
    """Durable key/value persistence used by the job controller."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key``, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Deleting an absent key is a no-op."""

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        """Apply several changes at once; a None value deletes its key."""

        for key, value in values.items():
            if value is None:
                self.delete(key)
            else:
                self.set(key, value)


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store, used by tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        for key, value in values.items():
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = str(value)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileCheckpointStore(CheckpointStore):
    """Store backed by a single JSON object on disk.

    The whole file is rewritten on every change through a temporary file and
    ``os.replace``, so a crash mid-write leaves the previous checkpoint intact.
    ``update`` applies a whole checkpoint in a single such write.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = Lock()
        self._data: Optional[Dict[str, str]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, str]:
        if self._data is not None:
            return self._data

        data: Dict[str, str] = {}
        if self._path.exists():
            raw = self._path.read_text(encoding="utf-8")
            if raw.strip():
                try:
                    parsed = json.loads(raw)
                except json.JSONDecodeError as exc:
                    logger.error("Checkpoint file %s is not valid JSON: %r", self._path, exc)
                    raise
                if not isinstance(parsed, dict):
                    raise ValueError(f"Checkpoint file {self._path} must hold a JSON object")
                data = {str(k): str(v) for k, v in parsed.items() if v is not None}

        self._data = data
        return data

    def _flush(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.error("Failed to write checkpoint file %s: %r", self._path, exc)
            raise

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = str(value)
            self._flush(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key not in data:
                return
            del data[key]
            self._flush(data)

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        """Apply every change in one file write."""

        with self._lock:
            data = self._load()
            before = dict(data)
            for key, value in values.items():
                if value is None:
                    data.pop(key, None)
                else:
                    data[key] = str(value)
            if data != before:
                self._flush(data)
