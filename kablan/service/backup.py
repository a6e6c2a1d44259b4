"""
Best-effort backup snapshots of collection files.

Every overwrite of a collection file is preceded by a copy of the previous
version into ``<dir>/backups/<name>-<timestamp>.json``. Nothing in this module
raises to the caller: a failed backup is logged and the primary write proceeds.

Full snapshots (every collection at once, plus ``backup-info.json``) and
restore are used by the maintenance CLI.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

BACKUP_DIRNAME = "backups"
SNAPSHOT_PREFIX = "backup-"
SNAPSHOT_INFO = "backup-info.json"


def backup_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ':' and '.' replaced so it is filename safe."""
    moment = moment or datetime.now(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return stamp.replace(":", "-").replace(".", "-")


class BackupManager:
    """Pre-write copies with a keep-N / max-age retention policy."""

    def __init__(self, keep: int = 50, retention_days: int = 30):
        self.keep = keep
        self.retention_days = retention_days

    # ------------------------------------------------------------------
    # Per-write backups
    # ------------------------------------------------------------------

    def backup(self, file_path: Path) -> Optional[Path]:
        """Copy ``file_path`` into the sibling ``backups`` directory.

        Returns the backup path, or None when there was nothing to back up
        or the copy failed.
        """
        file_path = Path(file_path)
        try:
            if not file_path.is_file():
                return None
            backup_dir = file_path.parent / BACKUP_DIRNAME
            backup_dir.mkdir(parents=True, exist_ok=True)
            target = backup_dir / f"{file_path.stem}-{backup_timestamp()}{file_path.suffix}"
            counter = 1
            while target.exists():
                target = backup_dir / f"{file_path.stem}-{backup_timestamp()}-{counter}{file_path.suffix}"
                counter += 1
            shutil.copyfile(file_path, target)
        except OSError as exc:
            logger.warning("Backup of %s failed: %s", file_path, exc)
            return None

        logger.debug("Backed up %s to %s", file_path.name, target)
        self.prune(backup_dir, file_path.stem)
        return target

    def list_backups(self, directory: Path, name: Optional[str] = None) -> List[Path]:
        """Per-write backups under ``directory``, newest first."""
        backup_dir = Path(directory) / BACKUP_DIRNAME
        if not backup_dir.is_dir():
            return []
        pattern = re.compile(
            rf"^{re.escape(name) if name else '[A-Za-z]+'}-\d{{4}}-\d{{2}}-\d{{2}}T.*\.json$"
        )
        found = [path for path in backup_dir.iterdir() if path.is_file() and pattern.match(path.name)]
        return sorted(found, key=lambda path: path.name.split("-", 1)[1], reverse=True)

    def prune(self, backup_dir: Path, name: str) -> int:
        """Drop backups of ``name`` beyond ``keep`` or older than the retention window."""
        removed = 0
        cutoff = time.time() - self.retention_days * 86400
        try:
            backups = self.list_backups(Path(backup_dir).parent, name)
            for index, path in enumerate(backups):
                if index >= self.keep or path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
        except OSError as exc:
            logger.warning("Pruning backups of %s failed: %s", name, exc)
        if removed:
            logger.info("Pruned %d old backup(s) of %s", removed, name)
        return removed

    # ------------------------------------------------------------------
    # Full snapshots
    # ------------------------------------------------------------------

    def snapshot_all(self, directory: Path, names: Iterable[str]) -> Optional[Path]:
        """Copy every existing collection file into a fresh snapshot folder."""
        directory = Path(directory)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        snapshot_dir = directory / BACKUP_DIRNAME / f"{SNAPSHOT_PREFIX}{stamp}"
        try:
            snapshot_dir.mkdir(parents=True, exist_ok=True)
            copied = 0
            for name in names:
                source = directory / f"{name}.json"
                if not source.is_file():
                    logger.info("Skipped (not found): %s", source.name)
                    continue
                shutil.copy2(source, snapshot_dir / source.name)
                copied += 1
            info = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "filesBackedUp": copied,
                "backupPath": str(snapshot_dir),
                "retention": f"{self.retention_days} days",
            }
            (snapshot_dir / SNAPSHOT_INFO).write_text(json.dumps(info, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Snapshot of %s failed: %s", directory, exc)
            return None

        logger.info("Snapshot completed: %s (%d files)", snapshot_dir.name, copied)
        self._prune_snapshots(directory / BACKUP_DIRNAME)
        return snapshot_dir

    def list_snapshots(self, directory: Path) -> List[Path]:
        """Snapshot folders under ``directory``, newest first."""
        backup_dir = Path(directory) / BACKUP_DIRNAME
        if not backup_dir.is_dir():
            return []
        return sorted(
            (path for path in backup_dir.iterdir() if path.is_dir() and path.name.startswith(SNAPSHOT_PREFIX)),
            key=lambda path: path.name,
            reverse=True,
        )

    def restore(self, snapshot_dir: Path, targets: Iterable[Path]) -> int:
        """Copy a snapshot's collection files into every target directory.

        Returns the number of files written; a failed target is logged and
        skipped.
        """
        snapshot_dir = Path(snapshot_dir)
        if not snapshot_dir.is_dir():
            raise FileNotFoundError(f"Snapshot {snapshot_dir} does not exist")
        files = [path for path in snapshot_dir.glob("*.json") if path.name != SNAPSHOT_INFO]
        restored = 0
        for target in targets:
            target = Path(target)
            for source in files:
                try:
                    target.mkdir(parents=True, exist_ok=True)
                    destination = target / source.name
                    self.backup(destination)
                    shutil.copy2(source, destination)
                    restored += 1
                except OSError as exc:
                    logger.error("Failed to restore %s to %s: %s", source.name, target, exc)
        logger.info("Restored %d file(s) from %s", restored, snapshot_dir.name)
        return restored

    def _prune_snapshots(self, backup_dir: Path) -> None:
        cutoff = time.time() - self.retention_days * 86400
        for index, path in enumerate(self.list_snapshots(backup_dir.parent)):
            try:
                if index >= self.keep or path.stat().st_mtime < cutoff:
                    shutil.rmtree(path)
                    logger.info("Deleted old snapshot: %s", path.name)
            except OSError as exc:
                logger.warning("Failed to delete %s: %s", path.name, exc)
