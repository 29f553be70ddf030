import json

from idealab_core.errors import StorageTransientError
from idealab_core.maintenance import (
    delete_by_classification, delete_one, find_unreferenced_media, is_backup, is_orphan,
)
from idealab_core.scanner import Scanner
from idealab_core.storage import BackendKind, BackendSet, InMemoryStorage, StoredBlob


class ReadOnlyStorage(InMemoryStorage):
    def delete(self, key):
        raise StorageTransientError("store is read-only")


def test_delete_one_then_already_gone(backends):
    backends.get(BackendKind.LOCAL).write("backup-1", "x")
    (record,) = Scanner(backends).scan()

    assert delete_one(backends, record).deleted is True
    assert delete_one(backends, record).deleted is False
    assert backends.get(BackendKind.LOCAL).read("backup-1") is None


def test_bulk_delete_backups_leaves_others(backends):
    local = backends.get(BackendKind.LOCAL)
    local.write("backup-a", "1")
    local.write("old_BACKUP_b", "2")
    local.write("settings", "3")
    backends.blob.write("project-p1", json.dumps({"id": "p1"}))
    records = Scanner(backends).scan({"p1"})

    report = delete_by_classification(backends, records, is_backup)

    assert report.deleted_count == 2
    assert report.not_found_count == 0
    assert report.failures == ()
    assert local.list_keys() == ["settings"]
    assert backends.blob.read("project-p1") is not None
    # the snapshot handed in is not modified
    assert len(records) == 4


def test_bulk_delete_orphans_counts_missing_keys(backends):
    backends.blob.write("project-gone", "{}")
    backends.blob.write("project-kept", "{}")
    records = Scanner(backends).scan({"kept"})
    backends.blob.delete("project-gone")

    report = delete_by_classification(backends, records, is_orphan)
    assert report.deleted_count == 0
    assert report.not_found_count == 1
    assert backends.blob.read("project-kept") == "{}"


def test_bulk_delete_records_failures_and_continues():
    backends = BackendSet({
        BackendKind.LOCAL: ReadOnlyStorage({"backup-x": "1"}),
        BackendKind.SESSION: InMemoryStorage({"backup-y": "2"}),
    })
    records = Scanner(backends).scan()

    report = delete_by_classification(backends, records, is_backup)

    assert report.deleted_count == 1
    assert len(report.failures) == 1
    failed, reason = report.failures[0]
    assert failed.raw_key == "backup-x"
    assert "read-only" in reason


def test_unreferenced_media(backends):
    blob = backends.blob
    blob.write("project-p1", json.dumps({
        "id": "p1",
        "thumbnailUrl": "idb://images/p1-thumbnail",
        "script": [{"id": "c1", "audioUrl": "idb://audio/p1-audio-c1"}],
    }))
    blob.write("media-images-p1-thumbnail", StoredBlob(b"png", "image/png"))
    blob.write("media-audio-p1-audio-c1", StoredBlob(b"mp3", "audio/mpeg"))
    blob.write("media-images-p9-thumbnail", StoredBlob(b"old", "image/png"))
    records = Scanner(backends).scan({"p1"})

    stale = find_unreferenced_media(backends, records, {"p1"})
    assert [r.raw_key for r in stale] == ["media-images-p9-thumbnail"]


def test_unreferenced_media_is_empty_when_a_project_cannot_be_read(backends, monkeypatch):
    backends.blob.write("media-images-p9-thumbnail", StoredBlob(b"old", "image/png"))
    records = Scanner(backends).scan({"p1"})

    def broken_read(key):
        raise StorageTransientError("locked")

    monkeypatch.setattr(backends.blob, "read", broken_read)
    assert find_unreferenced_media(backends, records, {"p1"}) == []
