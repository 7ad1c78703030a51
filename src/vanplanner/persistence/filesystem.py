"""File-based persistence helpers for the entity store and route outputs."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings


class FileStorage:
    """Thin wrapper around the data root for storing JSON, CSV and GeoJSON outputs."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"
        self.output_root.mkdir(parents=True, exist_ok=True)

    def make_run_directory(self, prefix: str = "route") -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = self.output_root / f"{prefix}_{timestamp}"
        path.mkdir(parents=True, exist_ok=False)
        return path

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=indent)

    def write_csv(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            handle.write(content)


class JsonStoreFile:
    """Entity store backend that keeps every record in one JSON document.

    The document is rewritten on each mutation; record maps are keyed by id
    under one section per entity kind.
    """

    def __init__(self, path: Path, storage: FileStorage | None = None) -> None:
        self.path = path
        self.storage = storage or FileStorage(root=path.parent)
        self._lock = threading.Lock()
        self._document: dict[str, dict[str, Any]] = {}

    def load(self) -> dict[str, list[dict[str, Any]]]:
        with self._lock:
            if self.path.exists():
                with self.path.open("r", encoding="utf-8") as handle:
                    raw = json.load(handle)
                self._document = {kind: dict(records) for kind, records in raw.items()}
            else:
                self._document = {}
            return {kind: list(records.values()) for kind, records in self._document.items()}

    def save(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._document.setdefault(kind, {})[record_id] = payload
            self.storage.write_json(self.path, self._document)

    def delete(self, kind: str, record_id: str) -> None:
        with self._lock:
            self._document.get(kind, {}).pop(record_id, None)
            self.storage.write_json(self.path, self._document)

    def clear(self) -> None:
        with self._lock:
            self._document = {}
            self.storage.write_json(self.path, self._document)
