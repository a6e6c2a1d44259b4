"""
Whole-document JSON collection store.

The store is the only component that touches collection files in the
canonical directory. A collection is always read and written in full; record
level changes go through :meth:`CollectionStore.update`, which holds the
collection's lock across the read-modify-write so concurrent callers cannot
overwrite each other's changes.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar, Union

from pydantic import ValidationError

from ..schemas import COLLECTIONS, CollectionSpec
from .backup import BackupManager
from .replicator import Replicator

logger = logging.getLogger(__name__)

Collection = Union[List[Any], Dict[str, Any]]
T = TypeVar("T")


class StoreError(Exception):
    """Base class for fatal store failures."""


class UnknownCollection(StoreError, KeyError):
    """Collection name is not one of the managed collections."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown collection"


class DirectoryUnwritable(StoreError):
    """Canonical directory cannot be created or written."""


class SerializationFailure(StoreError):
    """Content is not JSON serializable or has the wrong top-level shape."""


class VerificationMismatch(StoreError):
    """Re-read of a freshly written file differs from what was written."""


def serialize(content: Collection) -> str:
    """Pretty-printed UTF-8 JSON, as stored on disk."""
    try:
        return json.dumps(content, ensure_ascii=False, indent=2, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationFailure(f"Collection content is not JSON serializable: {exc}") from exc


class CollectionStore:
    """Reads and writes named collections in the canonical directory."""

    def __init__(
        self,
        canonical_dir: Path,
        backups: Optional[BackupManager] = None,
        replicator: Optional[Replicator] = None,
    ):
        self.canonical_dir = Path(canonical_dir)
        self.backups = backups or BackupManager()
        self.replicator = replicator
        self._locks: Dict[str, threading.RLock] = {name: threading.RLock() for name in COLLECTIONS}

    def spec(self, name: str) -> CollectionSpec:
        try:
            return COLLECTIONS[name]
        except KeyError:
            raise UnknownCollection(f"Unknown collection '{name}'") from None

    def path_for(self, name: str) -> Path:
        return self.canonical_dir / self.spec(name).filename

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        """Hold the collection lock; re-entrant so read/write can nest inside."""
        self.spec(name)
        lock = self._locks[name]
        with lock:
            yield

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self, name: str) -> Collection:
        """Load a collection; missing or corrupt files yield the empty default."""
        spec = self.spec(name)
        path = self.canonical_dir / spec.filename
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return spec.empty()
        except (OSError, ValueError) as exc:
            logger.error("Could not read %s, treating as empty: %s", path, exc)
            return spec.empty()

        if not isinstance(data, spec.shape):
            logger.error(
                "%s holds %s, expected %s; treating as empty",
                path, type(data).__name__, spec.shape.__name__,
            )
            return spec.empty()
        return self._validated(spec, data)

    def _validated(self, spec: CollectionSpec, data: Collection) -> Collection:
        if spec.shape is dict:
            if not data:
                return data
            try:
                spec.model.model_validate(data)
            except ValidationError as exc:
                logger.error("Rejecting invalid %s: %s", spec.name, exc)
                return spec.empty()
            return data

        kept = []
        for index, item in enumerate(data):
            try:
                spec.model.model_validate(item)
            except ValidationError as exc:
                logger.warning("Dropping invalid %s record at index %d: %s", spec.name, index, exc)
                continue
            kept.append(item)
        return kept

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, name: str, content: Collection) -> bool:
        """
        Replace a collection on disk.

        Order: backup the previous file, ensure the directory is writable,
        write through a temp file, verify by re-reading, then hand the bytes
        to the replicator. Fatal problems raise a :class:`StoreError`.
        """
        spec = self.spec(name)
        if not isinstance(content, spec.shape):
            raise SerializationFailure(
                f"{name} must be a JSON {'array' if spec.shape is list else 'object'}, "
                f"got {type(content).__name__}"
            )
        payload = serialize(content)
        path = self.canonical_dir / spec.filename

        with self.lock(name):
            self.backups.backup(path)
            self._ensure_writable()
            expected = payload.encode("utf-8")
            tmp_path = path.with_suffix(".tmp")
            try:
                with tmp_path.open("wb") as handle:
                    handle.write(expected)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_path, path)
            except OSError as exc:
                raise DirectoryUnwritable(f"Could not write {path}: {exc}") from exc

            try:
                written = path.read_bytes()
            except OSError as exc:
                raise VerificationMismatch(f"Could not re-read {path}: {exc}") from exc
            if written != expected:
                raise VerificationMismatch(f"Content of {path} differs from what was written")

            # queued while locked so replicas see writes in order
            if self.replicator is not None:
                self.replicator.submit(name, payload, self.canonical_dir)

        logger.info("Saved %s (%s)", spec.filename, _describe(content))
        return True

    def update(self, name: str, mutate: Callable[[Collection], T]) -> T:
        """
        Run a read-modify-write cycle under the collection lock.

        ``mutate`` edits the collection in place and returns the value handed
        back to the caller. If it raises, nothing is written.
        """
        with self.lock(name):
            content = self.read(name)
            result = mutate(content)
            self.write(name, content)
            return result

    def _ensure_writable(self) -> None:
        try:
            self.canonical_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryUnwritable(
                f"Cannot create data directory {self.canonical_dir}: {exc}"
            ) from exc
        if not os.access(self.canonical_dir, os.W_OK):
            raise DirectoryUnwritable(
                f"No write permission on data directory {self.canonical_dir}"
            )


def _describe(content: Collection) -> str:
    if isinstance(content, list):
        return f"{len(content)} records"
    return f"{len(content)} keys"
