"""
Collection Store Tests
======================

Whole-document reads and writes in the canonical directory.
"""

import json
import shutil
import threading
from pathlib import Path

import pytest

from kablan.service.backup import BackupManager
from kablan.service.store import (
    CollectionStore,
    DirectoryUnwritable,
    SerializationFailure,
    UnknownCollection,
    VerificationMismatch,
)


class TestRead:
    """Reading collections that may be missing or damaged"""

    def test_absent_list_collection_is_empty(self, store):
        """A collection with no file reads as an empty list"""
        assert store.read("projects") == []
        assert not store.path_for("projects").exists()

    def test_absent_settings_is_empty_object(self, store):
        """Settings is an object collection"""
        assert store.read("settings") == {}

    def test_corrupt_file_reads_as_empty(self, store):
        """Unparseable JSON is treated as an empty collection"""
        store.canonical_dir.mkdir(parents=True)
        store.path_for("suppliers").write_text("{not json", encoding="utf-8")
        assert store.read("suppliers") == []

    def test_wrong_shape_reads_as_empty(self, store):
        """An object where a list is expected is ignored"""
        store.canonical_dir.mkdir(parents=True)
        store.path_for("projects").write_text('{"id": "p1"}', encoding="utf-8")
        assert store.read("projects") == []

    def test_invalid_records_are_dropped(self, store):
        """Records failing validation are skipped, valid ones kept"""
        store.canonical_dir.mkdir(parents=True)
        store.path_for("users").write_text(
            json.dumps([{"id": "u1", "username": "dana"}, {"id": "u2"}]), encoding="utf-8"
        )
        assert store.read("users") == [{"id": "u1", "username": "dana"}]

    def test_unknown_collection(self, store):
        """Only managed collections can be read"""
        with pytest.raises(UnknownCollection):
            store.read("invoices")


class TestWrite:
    """Writing collections with backup and verification"""

    def test_round_trip(self, store):
        """What was written is what is read back"""
        content = [
            {"id": "p1", "name": "בניין מגורים", "contractAmount": 1200000, "custom": {"a": [1, 2]}},
            {"id": "p2", "name": "Villa", "isArchived": True},
        ]
        assert store.write("projects", content) is True
        assert store.read("projects") == content

    def test_file_format(self, store):
        """Files are pretty printed UTF-8 without ASCII escaping"""
        store.write("categories", [{"id": "1", "name": "חשמל"}])
        text = store.path_for("categories").read_text(encoding="utf-8")
        assert "חשמל" in text
        assert text.startswith("[\n  {")

    def test_backup_before_write(self, store):
        """Overwriting keeps a copy of the previous version"""
        first = [{"id": "p1", "name": "first"}]
        store.write("projects", first)
        before = store.path_for("projects").read_bytes()

        store.write("projects", [{"id": "p1", "name": "second"}])

        backups = store.backups.list_backups(store.canonical_dir, "projects")
        assert len(backups) == 1
        assert backups[0].read_bytes() == before
        assert store.read("projects")[0]["name"] == "second"

    def test_first_write_has_no_backup(self, store):
        """Nothing to back up when the file did not exist"""
        store.write("projects", [])
        assert store.backups.list_backups(store.canonical_dir, "projects") == []

    def test_shape_mismatch_rejected(self, store):
        """A list cannot be written to the settings object"""
        with pytest.raises(SerializationFailure):
            store.write("settings", [])
        assert not store.path_for("settings").exists()

    def test_unserializable_content_rejected(self, store):
        """Non-JSON values fail before anything touches disk"""
        with pytest.raises(SerializationFailure):
            store.write("projects", [{"id": "p1", "tags": {"a", "b"}}])
        with pytest.raises(SerializationFailure):
            store.write("projects", [{"id": "p1", "amount": float("nan")}])
        assert not store.path_for("projects").exists()

    def test_reread_mismatch_fails_the_write(self, store, monkeypatch):
        """Bytes on disk that differ from what was written are fatal"""
        monkeypatch.setattr(Path, "read_bytes", lambda self: b"[]")
        with pytest.raises(VerificationMismatch):
            store.write("projects", [{"id": "p1"}])

    def test_failed_backup_does_not_block_write(self, store, monkeypatch):
        """Backups are best effort; the write still goes through"""
        store.write("projects", [{"id": "p1", "name": "first"}])

        def refuse(source, target):
            raise OSError("disk full")

        monkeypatch.setattr(shutil, "copyfile", refuse)

        assert store.write("projects", [{"id": "p1", "name": "second"}]) is True
        assert store.read("projects") == [{"id": "p1", "name": "second"}]
        assert store.backups.list_backups(store.canonical_dir, "projects") == []

    def test_unwritable_directory(self, tmp_path):
        """A canonical directory that cannot be created is fatal"""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        store = CollectionStore(blocker / "data")
        with pytest.raises(DirectoryUnwritable):
            store.write("projects", [])


class TestUpdate:
    """Read-modify-write cycles under the collection lock"""

    def test_update_returns_mutation_result(self, store):
        """The mutation's return value is handed back"""
        added = store.update("projects", lambda items: items.append({"id": "p1"}) or len(items))
        assert added == 1
        assert store.read("projects") == [{"id": "p1"}]

    def test_failed_mutation_writes_nothing(self, store):
        """An exception inside the mutation leaves the file untouched"""
        store.write("projects", [{"id": "p1"}])

        def explode(items):
            items.clear()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.update("projects", explode)
        assert store.read("projects") == [{"id": "p1"}]

    def test_concurrent_writers_keep_every_update(self, tmp_path):
        """Two writers adding records concurrently lose nothing"""
        store = CollectionStore(tmp_path / "data", backups=BackupManager(keep=5))
        per_writer = 15
        barrier = threading.Barrier(2)

        def writer(prefix):
            barrier.wait()
            for index in range(per_writer):
                store.update("projects", lambda items: items.append({"id": f"{prefix}-{index}"}))

        threads = [threading.Thread(target=writer, args=(prefix,)) for prefix in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        ids = {record["id"] for record in store.read("projects")}
        assert len(ids) == per_writer * 2
        assert {"a-0", "b-0", f"a-{per_writer - 1}", f"b-{per_writer - 1}"} <= ids


class TestReplicationThroughStore:
    """Writes reach the other candidate directories"""

    def test_replicas_converge(self, context, data_dirs):
        """After a flush every candidate holds the same bytes"""
        assert context.canonical_dir == data_dirs[0]
        context.store.write("projects", [{"id": "p1", "name": "Villa"}])
        context.store.write("projects", [{"id": "p1", "name": "Villa 2"}])
        assert context.replicator.flush(timeout=10)

        canonical = (data_dirs[0] / "projects.json").read_bytes()
        for replica in data_dirs[1:]:
            assert (replica / "projects.json").read_bytes() == canonical
        assert context.replicator.failures == {}
