"""Local collection cache used when the collection service is unreachable."""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar

from ..schemas import COLLECTIONS, get_collection

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_SUFFIX = "_data"
LAST_SYNC_KEY = "lastSyncTimestamp"
MODE_KEY = "connectivityMode"

ONLINE = "online"
OFFLINE = "offline"
UNKNOWN = "unknown"


@dataclass
class SyncStatus:
    last_sync_timestamp: Optional[str] = None
    connectivity_mode: str = UNKNOWN

    @property
    def online(self) -> bool:
        return self.connectivity_mode == ONLINE


def cache_key(name: str) -> str:
    return f"{name}{KEY_SUFFIX}"


class LocalCache:
    """
    Persist collections to a JSON key-value file so callers keep working even
    when the collection service is offline.

    On first access a collection is seeded from ``<seed_dir>/<name>.json``
    (the static snapshot shipped with the client) or from its empty default.
    """

    def __init__(self, storage_path: str | Path | None = None, seed_dir: str | Path | None = None):
        env_path = os.getenv("KABLAN_CACHE_FILE")
        if storage_path is not None:
            self.path = Path(storage_path).expanduser()
        elif env_path:
            self.path = Path(env_path).expanduser()
        else:
            self.path = Path.home() / ".kablan" / "cache.json"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.seed_dir = Path(seed_dir).expanduser() if seed_dir is not None else None
        self._lock = Lock()
        self._reset_mode()

    def get(self, name: str) -> Any:
        with self._lock:
            store = self._read_store()
            key = cache_key(name)
            if key in store:
                return copy.deepcopy(store[key])
            content = self._initial(name)
            store[key] = content
            self._write_store(store)
        return copy.deepcopy(content)

    def update(self, name: str, mutate: Callable[[Any], T]) -> T:
        """Apply ``mutate`` to the cached collection in place and persist it."""
        with self._lock:
            store = self._read_store()
            key = cache_key(name)
            content = store[key] if key in store else self._initial(name)
            result = mutate(content)
            store[key] = content
            self._write_store(store)
        return copy.deepcopy(result)

    def set(self, name: str, content: Any) -> None:
        get_collection(name)
        with self._lock:
            store = self._read_store()
            store[cache_key(name)] = copy.deepcopy(content)
            store[LAST_SYNC_KEY] = datetime.now(timezone.utc).isoformat()
            self._write_store(store)

    def has(self, name: str) -> bool:
        with self._lock:
            return cache_key(name) in self._read_store()

    def clear_all(self) -> None:
        """Wipe every cached collection and the sync bookkeeping."""
        with self._lock:
            store = self._read_store()
            for name in COLLECTIONS:
                store.pop(cache_key(name), None)
            store.pop(LAST_SYNC_KEY, None)
            store.pop(MODE_KEY, None)
            self._write_store(store)
        logger.info("All local data cleared")

    # ------------------------------------------------------------------
    # Sync status
    # ------------------------------------------------------------------

    def status(self) -> SyncStatus:
        with self._lock:
            store = self._read_store()
        return SyncStatus(
            last_sync_timestamp=store.get(LAST_SYNC_KEY),
            connectivity_mode=store.get(MODE_KEY, UNKNOWN),
        )

    def set_mode(self, mode: str) -> None:
        with self._lock:
            store = self._read_store()
            if store.get(MODE_KEY) == mode:
                return
            store[MODE_KEY] = mode
            self._write_store(store)
        logger.info("Connectivity is now %s", mode)

    def _reset_mode(self) -> None:
        """Connectivity is unknown until this process talks to the service."""
        with self._lock:
            store = self._read_store()
            if store.get(MODE_KEY, UNKNOWN) == UNKNOWN:
                return
            store[MODE_KEY] = UNKNOWN
            self._write_store(store)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _initial(self, name: str) -> Any:
        content = self._load_seed(name)
        return get_collection(name).empty() if content is None else content

    def _load_seed(self, name: str) -> Optional[Any]:
        if self.seed_dir is None:
            return None
        spec = get_collection(name)
        path = self.seed_dir / spec.filename
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable seed %s: %s", path, exc)
            return None
        if not isinstance(data, spec.shape):
            logger.warning("Ignoring seed %s: expected a JSON %s", path, spec.shape.__name__)
            return None
        logger.info("Loaded initial %s from %s", name, path)
        return data

    def _read_store(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
                if isinstance(data, dict):
                    return data
        except (json.JSONDecodeError, OSError):
            pass
        return {}

    def _write_store(self, data: Dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)
