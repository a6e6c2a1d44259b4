"""
Maintenance commands for the data directories.

    python -m kablan.service.maintenance backup     # snapshot every collection
    python -m kablan.service.maintenance list       # list snapshots and backups
    python -m kablan.service.maintenance restore [SNAPSHOT]
    python -m kablan.service.maintenance status     # candidate directories overview
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..config import Config
from ..schemas import COLLECTIONS
from .backup import BackupManager
from .main import setup_logging
from .resolver import resolve_canonical_directory

logger = logging.getLogger(__name__)


def cmd_backup(config: Config, args: argparse.Namespace) -> int:
    storage = config.storage
    canonical = resolve_canonical_directory(storage.data_dirs)
    manager = BackupManager(keep=storage.backup_keep, retention_days=storage.backup_retention_days)
    snapshot = manager.snapshot_all(canonical, COLLECTIONS)
    if snapshot is None:
        return 1
    print(snapshot)
    return 0


def cmd_list(config: Config, args: argparse.Namespace) -> int:
    storage = config.storage
    canonical = resolve_canonical_directory(storage.data_dirs)
    manager = BackupManager(keep=storage.backup_keep, retention_days=storage.backup_retention_days)
    snapshots = manager.list_snapshots(canonical)
    if not snapshots:
        print("No snapshots found")
    for index, snapshot in enumerate(snapshots, start=1):
        info_path = snapshot / "backup-info.json"
        try:
            info = json.loads(info_path.read_text(encoding="utf-8"))
            print(f"{index}. {snapshot.name}  files={info.get('filesBackedUp')}  at={info.get('timestamp')}")
        except (OSError, ValueError):
            print(f"{index}. {snapshot.name}  (no metadata)")
    if args.collection:
        for path in manager.list_backups(canonical, args.collection):
            print(f"   {path.name}")
    return 0


def cmd_restore(config: Config, args: argparse.Namespace) -> int:
    storage = config.storage
    canonical = resolve_canonical_directory(storage.data_dirs)
    manager = BackupManager(keep=storage.backup_keep, retention_days=storage.backup_retention_days)
    if args.snapshot:
        snapshot = Path(args.snapshot)
        if not snapshot.is_absolute() and not snapshot.exists():
            snapshot = canonical / "backups" / args.snapshot
    else:
        snapshots = manager.list_snapshots(canonical)
        if not snapshots:
            logger.error("No snapshots found under %s", canonical)
            return 1
        snapshot = snapshots[0]
    try:
        restored = manager.restore(snapshot, storage.data_dirs)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    print(f"Restored {restored} file(s) from {snapshot.name}")
    return 0


def cmd_status(config: Config, args: argparse.Namespace) -> int:
    storage = config.storage
    canonical = resolve_canonical_directory(storage.data_dirs)
    for directory in storage.data_dirs:
        marker = "*" if directory == canonical else " "
        files = sorted(path.name for path in directory.glob("*.json")) if directory.is_dir() else []
        print(f"{marker} {directory}: {', '.join(files) or 'empty'}")
    return 0


COMMANDS = {
    "backup": cmd_backup,
    "list": cmd_list,
    "restore": cmd_restore,
    "status": cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kablan-maintenance", description=__doc__.splitlines()[1])
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("backup", help="snapshot every collection of the canonical directory")
    list_parser = sub.add_parser("list", help="list snapshots")
    list_parser.add_argument("--collection", help="also list per-write backups of this collection")
    restore_parser = sub.add_parser("restore", help="restore a snapshot into every data directory")
    restore_parser.add_argument("snapshot", nargs="?", help="snapshot folder name or path (default: newest)")
    sub.add_parser("status", help="show candidate directories")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = Config.load()
    setup_logging(config.logging)
    return COMMANDS[args.command](config, args)


if __name__ == "__main__":
    sys.exit(main())
