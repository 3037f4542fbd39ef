from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStore(Protocol):
    def load(self, name: str) -> dict[str, Any] | None: ...

    def save(self, name: str, document: dict[str, Any]) -> None: ...


class JsonFileStore:
    """Named JSON documents under one directory.

    Writes go to a temp file that replaces the target, so readers never see
    a half-written document. All writes through one store are serialized.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def load(self, name: str) -> dict[str, Any] | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("json_store_load_failed path=%s: %s", path, exc)
            return None
        return parsed if isinstance(parsed, dict) else None

    def save(self, name: str, document: dict[str, Any]) -> None:
        path = self.path_for(name)
        payload = json.dumps(document, indent=2, ensure_ascii=False, default=str)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=str(self.directory))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, path)
            except Exception:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise


class JsonLinesLog:
    """Append-only log with one JSON object per line."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, record: dict[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False, default=str)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def rotate_if_larger_than(self, max_bytes: int) -> Path | None:
        with self._lock:
            if self.size() <= max_bytes:
                return None
            stamp = utc_now().strftime("%Y-%m-%d")
            archive = self.path.with_name(f"{self.path.stem}_{stamp}{self.path.suffix}")
            counter = 1
            while archive.exists():
                archive = self.path.with_name(f"{self.path.stem}_{stamp}_{counter}{self.path.suffix}")
                counter += 1
            os.replace(self.path, archive)
            self.path.touch()
            return archive
