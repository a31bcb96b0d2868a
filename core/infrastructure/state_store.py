"""Key-value state stores for configuration persistence.

This module provides a simple key-value state store with:
- get/set/delete operations
- prefix key listing
- per-key locks for read-modify-write sequences

Two implementations:
- StateStore: in-memory dict (tests, one-shot runs)
- JsonFileStateStore: durable JSON file, re-read on every access and guarded
  by a lock file so that separate processes never overwrite each other's keys
"""

import json
import os
import tempfile
import threading
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Any, ContextManager, Dict, Iterator, List, Optional

from filelock import FileLock

from core.logger import get_logger

logger = get_logger(__name__)


class StateStore:
    """
    In-memory key-value state store.

    Supports:
    - Simple get/set operations
    - Prefix key listing
    - Per-key locking for read-modify-write sequences

    Single-key get/set are atomic. Callers doing read-then-write on a key
    must hold lock(key) for the whole sequence.

    Usage:
        store = StateStore()
        with store.lock("backup_123"):
            value = store.get("backup_123")
            store.set("backup_123", {...})
    """

    def __init__(self) -> None:
        """Initialize empty state store."""
        self._data: Dict[str, Any] = {}
        self._guard = threading.RLock()
        self._key_locks: Dict[str, threading.RLock] = {}
        logger.debug("StateStore initialized")

    # -------------------------------------------------------------------------
    # Storage primitives (overridden by durable backends)
    # -------------------------------------------------------------------------

    def _load(self) -> Dict[str, Any]:
        return self._data

    def _save(self, data: Dict[str, Any]) -> None:
        self._data = data

    def _exclusive(self) -> ContextManager[Any]:
        """Lock shared with other processes using the same backing data."""
        return nullcontext()

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        # Lock order everywhere: key lock, then _exclusive(), then _guard
        with self._exclusive(), self._guard:
            yield

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value for a key.

        Args:
            key: State key to retrieve
            default: Value to return if key not found

        Returns:
            Stored value or default
        """
        with self._transaction():
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set value for a key.

        Args:
            key: State key to set
            value: JSON-serializable value to store
        """
        with self._transaction():
            data = dict(self._load())
            data[key] = value
            self._save(data)
        logger.debug(f"State set: {key}")

    def delete(self, key: str) -> bool:
        """
        Delete a key from the store.

        Returns:
            True if key existed and was deleted, False otherwise
        """
        with self._transaction():
            data = dict(self._load())
            if key not in data:
                return False
            del data[key]
            self._save(data)
        logger.debug(f"State deleted: {key}")
        return True

    def exists(self, key: str) -> bool:
        with self._transaction():
            return key in self._load()

    def get_all_keys(self, prefix: Optional[str] = None) -> List[str]:
        """
        Get all keys, optionally filtered by prefix.

        Args:
            prefix: Optional prefix to filter keys

        Returns:
            List of matching keys
        """
        with self._transaction():
            keys = list(self._load().keys())
        if prefix is None:
            return keys
        return [k for k in keys if k.startswith(prefix)]

    def items(self, prefix: Optional[str] = None) -> Dict[str, Any]:
        """Snapshot of key/value pairs, optionally filtered by prefix."""
        with self._transaction():
            data = dict(self._load())
        if prefix is None:
            return data
        return {k: v for k, v in data.items() if k.startswith(prefix)}

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """Hold the per-key lock for a read-modify-write sequence."""
        with self._guard:
            key_lock = self._key_locks.setdefault(key, threading.RLock())
        with key_lock, self._exclusive():
            yield

    def clear(self) -> None:
        """Clear all state."""
        with self._transaction():
            self._save({})
        logger.debug("StateStore cleared")

    def size(self) -> int:
        """Get number of keys in store."""
        with self._transaction():
            return len(self._load())


class JsonFileStateStore(StateStore):
    """
    Durable state store backed by a single JSON file.

    Every read loads the file and every write replaces it atomically
    (temp file + os.replace), so a crash mid-write never leaves a truncated
    store behind.

    Each load-modify-save holds an inter-process lock on "<file>.lock", and
    lock(key) holds the same lock, so a long-running scheduler and one-shot
    CLI commands can share one file without losing each other's writes.
    """

    def __init__(self, path: str | Path, lock_timeout: float = 30) -> None:
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.lock_path = self.path.with_name(f"{self.path.name}.lock")
        self._file_lock = FileLock(str(self.lock_path), timeout=lock_timeout)
        logger.debug(f"JsonFileStateStore using {self.path}")

    def _exclusive(self) -> ContextManager[Any]:
        return self._file_lock

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            content = f.read()
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"State file {self.path} does not contain a JSON object")
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
