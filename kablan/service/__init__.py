"""Server-side persistence: canonical directory, backups, replication."""

from .backup import BackupManager
from .context import ServerContext
from .replicator import Replicator
from .resolver import resolve_canonical_directory
from .store import (
    CollectionStore,
    DirectoryUnwritable,
    SerializationFailure,
    StoreError,
    UnknownCollection,
    VerificationMismatch,
)

__all__ = [
    "BackupManager",
    "CollectionStore",
    "DirectoryUnwritable",
    "Replicator",
    "SerializationFailure",
    "ServerContext",
    "StoreError",
    "UnknownCollection",
    "VerificationMismatch",
    "resolve_canonical_directory",
]
