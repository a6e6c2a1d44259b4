"""Server context: storage wiring resolved once per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..config import StorageConfig
from .backup import BackupManager
from .replicator import Replicator
from .resolver import resolve_canonical_directory
from .store import CollectionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerContext:
    """Canonical directory plus the components that depend on it."""

    candidates: List[Path]
    canonical_dir: Path
    backups: BackupManager
    replicator: Replicator
    store: CollectionStore = field(repr=False)

    @classmethod
    def build(
        cls,
        candidates: Sequence[Path],
        backup_keep: int = 50,
        backup_retention_days: int = 30,
        replication_workers: int = 2,
    ) -> "ServerContext":
        paths = [Path(candidate) for candidate in candidates]
        canonical = resolve_canonical_directory(paths)
        backups = BackupManager(keep=backup_keep, retention_days=backup_retention_days)
        replicator = Replicator(paths, max_workers=replication_workers)
        store = CollectionStore(canonical, backups=backups, replicator=replicator)
        return cls(
            candidates=paths,
            canonical_dir=canonical,
            backups=backups,
            replicator=replicator,
            store=store,
        )

    @classmethod
    def from_config(cls, storage: Optional[StorageConfig] = None) -> "ServerContext":
        storage = storage or StorageConfig()
        storage.validate()
        return cls.build(
            storage.data_dirs,
            backup_keep=storage.backup_keep,
            backup_retention_days=storage.backup_retention_days,
            replication_workers=storage.replication_workers,
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "canonical_dir": str(self.canonical_dir),
            "candidates": [str(candidate) for candidate in self.candidates],
            "replication_failures": dict(self.replicator.failures),
        }

    def close(self) -> None:
        """Drain pending replication before shutdown."""
        if not self.replicator.flush(timeout=30):
            logger.warning("Replication still pending at shutdown")
        self.replicator.shutdown()
