"""
Backup Manager Tests
====================

Per-write backups, retention and full snapshots.
"""

import json
import os
import re
import time
from datetime import datetime, timezone

import pytest

from kablan.schemas import COLLECTIONS
from kablan.service.backup import BackupManager, backup_timestamp


class TestPerWriteBackups:
    """Copies taken before a collection file is overwritten"""

    def test_timestamp_is_filename_safe(self):
        """Colons and dots are replaced in the ISO timestamp"""
        moment = datetime(2024, 3, 5, 14, 7, 9, 123000, tzinfo=timezone.utc)
        assert backup_timestamp(moment) == "2024-03-05T14-07-09-123000Z"

    def test_backup_name_and_content(self, tmp_path):
        """Backups sit next to the file under backups/"""
        source = tmp_path / "projects.json"
        source.write_text('[{"id": "p1"}]', encoding="utf-8")

        target = BackupManager().backup(source)

        assert target.parent == tmp_path / "backups"
        assert re.match(r"^projects-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{6}Z\.json$", target.name)
        assert target.read_text(encoding="utf-8") == '[{"id": "p1"}]'

    def test_missing_file_is_not_backed_up(self, tmp_path):
        """Nothing happens for a collection that was never written"""
        assert BackupManager().backup(tmp_path / "projects.json") is None
        assert not (tmp_path / "backups").exists()

    def test_keep_limit(self, tmp_path):
        """Only the newest N backups survive"""
        source = tmp_path / "suppliers.json"
        manager = BackupManager(keep=2)
        for version in range(4):
            source.write_text(json.dumps([{"id": str(version)}]), encoding="utf-8")
            manager.backup(source)

        backups = manager.list_backups(tmp_path, "suppliers")
        assert len(backups) == 2
        assert json.loads(backups[0].read_text(encoding="utf-8")) == [{"id": "3"}]

    def test_retention_window(self, tmp_path):
        """Backups older than the retention window are removed"""
        backup_dir = tmp_path / "backups"
        backup_dir.mkdir()
        stale = backup_dir / "users-2020-01-01T00-00-00-000000Z.json"
        stale.write_text("[]", encoding="utf-8")
        old = time.time() - 40 * 86400
        os.utime(stale, (old, old))

        removed = BackupManager(retention_days=30).prune(backup_dir, "users")

        assert removed == 1
        assert not stale.exists()

    def test_list_filters_by_collection(self, tmp_path):
        """Listing by name ignores other collections"""
        manager = BackupManager()
        for name in ("users", "projects"):
            path = tmp_path / f"{name}.json"
            path.write_text("[]", encoding="utf-8")
            manager.backup(path)
        assert [path.name.split("-")[0] for path in manager.list_backups(tmp_path, "users")] == ["users"]
        assert len(manager.list_backups(tmp_path)) == 2


class TestSnapshots:
    """Full snapshots and restore"""

    @pytest.fixture
    def populated(self, tmp_path):
        directory = tmp_path / "data"
        directory.mkdir()
        (directory / "projects.json").write_text('[{"id": "p1"}]', encoding="utf-8")
        (directory / "settings.json").write_text('{"vatRate": 17}', encoding="utf-8")
        return directory

    def test_snapshot_contains_files_and_info(self, populated):
        """Every existing collection is copied with metadata"""
        snapshot = BackupManager().snapshot_all(populated, COLLECTIONS)

        assert snapshot.name.startswith("backup-")
        assert (snapshot / "projects.json").is_file()
        assert (snapshot / "settings.json").is_file()
        assert not (snapshot / "users.json").exists()
        info = json.loads((snapshot / "backup-info.json").read_text(encoding="utf-8"))
        assert info["filesBackedUp"] == 2
        assert info["backupPath"] == str(snapshot)
        assert BackupManager().list_snapshots(populated) == [snapshot]

    def test_restore_into_every_target(self, populated, tmp_path):
        """Restoring writes the snapshot into each directory"""
        manager = BackupManager()
        snapshot = manager.snapshot_all(populated, COLLECTIONS)
        (populated / "projects.json").write_text("[]", encoding="utf-8")
        replica = tmp_path / "public" / "data"

        restored = manager.restore(snapshot, [populated, replica])

        assert restored == 4
        for directory in (populated, replica):
            assert (directory / "projects.json").read_text(encoding="utf-8") == '[{"id": "p1"}]'
        # the overwritten version was kept
        assert manager.list_backups(populated, "projects")

    def test_restore_missing_snapshot(self, tmp_path):
        """An unknown snapshot is an error"""
        with pytest.raises(FileNotFoundError):
            BackupManager().restore(tmp_path / "backups" / "backup-nope", [tmp_path])
