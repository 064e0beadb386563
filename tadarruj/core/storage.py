"""Key-value byte stores the unlock engine persists its record into."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "UnlockProgressState"

# one lock per progress file, shared by every backend that writes to it
_file_locks: Dict[Path, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    resolved = path.expanduser().resolve()
    with _file_locks_guard:
        lock = _file_locks.get(resolved)
        if lock is None:
            lock = _file_locks[resolved] = threading.Lock()
        return lock


def default_progress_file() -> Path:
    return Path.home() / ".tadarruj" / "progress.json"


class KeyValueBackend(Protocol):
    def load(self) -> Optional[bytes]:
        ...

    def save(self, data: bytes) -> None:
        ...


class JsonFileBackend:
    """Stores records as entries of one JSON document on disk.

    File: ~/.tadarruj/progress.json unless told otherwise. Every backend writes
    only its own key, so several engines can share the file. Backends pointing
    at the same file share one lock. Records must be JSON; they are nested
    as-is so the file stays readable.
    """

    def __init__(self, file_path: Optional[Path] = None, key: str = DEFAULT_STORAGE_KEY) -> None:
        self._file_path = Path(file_path) if file_path is not None else default_progress_file()
        self._key = key
        self._lock = _lock_for(self._file_path)

    @property
    def file_path(self) -> Path:
        return self._file_path

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> Optional[bytes]:
        with self._lock:
            document = self._read_document()
        if self._key not in document:
            return None
        return json.dumps(document[self._key]).encode("utf-8")

    def save(self, data: bytes) -> None:
        """Write the record under this backend's key. Raises OSError on I/O failure."""
        record = json.loads(data.decode("utf-8"))
        with self._lock:
            document = self._read_document()
            document[self._key] = record
            self._write_document(document)

    def _write_document(self, document: Dict[str, Any]) -> None:
        parent = self._file_path.parent
        parent.mkdir(parents=True, exist_ok=True)
        tmp = tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=parent, prefix=self._file_path.name + ".", suffix=".tmp", delete=False
        )
        tmp_path = Path(tmp.name)
        try:
            with tmp:
                json.dump(document, tmp, indent=2)
            os.replace(tmp_path, self._file_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def _read_document(self) -> Dict[str, Any]:
        if not self._file_path.exists():
            return {}
        try:
            document = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning("Could not read progress from %s: %s", self._file_path, e)
            return {}
        if not isinstance(document, dict):
            logger.warning("Ignoring progress file %s: top level is not an object", self._file_path)
            return {}
        return document


class MemoryBackend:
    """In-process store, used by tests and by callers that do not persist."""

    def __init__(self, initial: Optional[bytes] = None) -> None:
        self._data = initial
        self.save_count = 0

    @property
    def data(self) -> Optional[bytes]:
        return self._data

    def load(self) -> Optional[bytes]:
        return self._data

    def save(self, data: bytes) -> None:
        self._data = data
        self.save_count += 1
