import json
import logging

from idealab_core.errors import StorageTransientError
from idealab_core.scanner import Scanner, display_key, summarize
from idealab_core.storage import BackendKind, BackendSet, InMemoryStorage, StoredBlob
from idealab_core.utils import serialize_value


class FlakyStorage(InMemoryStorage):
    def __init__(self, initial=None, bad_keys=(), unreachable=False):
        super().__init__(initial)
        self.bad_keys = set(bad_keys)
        self.unreachable = unreachable

    def list_keys(self):
        if self.unreachable:
            raise StorageTransientError("store unavailable")
        return super().list_keys()

    def read(self, key):
        if key in self.bad_keys:
            raise StorageTransientError(f"cannot read {key}")
        return super().read(key)


def seed_example(backends):
    backends.get(BackendKind.SESSION).write(
        "session", json.dumps({"seriesName": "Foo", "episodeName": "Bar", "currentStep": 2})
    )
    backends.get(BackendKind.LOCAL).write("backup-session-2024", "<<not json>>")
    backends.blob.write("project-abc", json.dumps({"id": "abc", "seriesName": "Lost"}))


def test_scan_classifies_across_all_stores(backends):
    seed_example(backends)
    records = Scanner(backends).scan({"xyz"})

    assert len(records) == 3
    by_key = {r.raw_key: r for r in records}
    assert by_key["backup-session-2024"].is_backup
    assert by_key["backup-session-2024"].preview == "Raw Data (Not JSON)"
    assert by_key["project-abc"].is_orphan
    assert by_key["session"].preview == "Project: Foo - Bar (Step 2)"
    assert not by_key["session"].is_orphan


def test_scan_sizes_and_order(backends):
    seed_example(backends)
    backends.blob.write("media-images-p1-thumbnail", StoredBlob(b"\x00" * 4096, "image/png"))
    records = Scanner(backends).scan()

    sizes = [r.size_bytes for r in records]
    assert sizes == sorted(sizes, reverse=True)
    assert records[0].raw_key == "media-images-p1-thumbnail"
    assert records[0].size_bytes == 4096
    for r in records:
        value = backends.resolve(r).read(r.raw_key)
        assert r.size_bytes == len(serialize_value(value))


def test_ties_broken_by_display_key():
    backends = BackendSet({BackendKind.SESSION: InMemoryStorage({"b": "xx", "a": "yy", "c": "zzz"})})
    keys = [r.raw_key for r in Scanner(backends).scan()]
    assert keys == ["c", "a", "b"]


def test_scan_is_repeatable(backends):
    seed_example(backends)
    scanner = Scanner(backends)
    assert scanner.scan({"xyz"}) == scanner.scan({"xyz"})


def test_registry_changes_only_affect_orphan_flag(backends):
    seed_example(backends)
    scanner = Scanner(backends)
    before = {r.raw_key: r for r in scanner.scan({"xyz"})}
    after = {r.raw_key: r for r in scanner.scan({"abc"})}
    assert before["project-abc"].is_orphan and not after["project-abc"].is_orphan
    assert before["session"] == after["session"]


def test_unreadable_key_is_skipped(caplog):
    backends = BackendSet({
        BackendKind.LOCAL: FlakyStorage({"good": "1", "bad": "2"}, bad_keys={"bad"}),
    })
    records = Scanner(backends).scan()
    assert [r.raw_key for r in records] == ["good"]
    assert "skipping LocalStorage key 'bad'" in caplog.text


def test_unreachable_store_does_not_hide_others():
    backends = BackendSet({
        BackendKind.LOCAL: FlakyStorage(unreachable=True),
        BackendKind.SESSION: InMemoryStorage({"s": "1"}),
    })
    assert [r.raw_key for r in Scanner(backends).scan()] == ["s"]


def test_nothing_reachable_yields_empty_snapshot(caplog):
    backends = BackendSet({
        BackendKind.LOCAL: FlakyStorage(unreachable=True),
        BackendKind.SESSION: FlakyStorage(unreachable=True),
    })
    with caplog.at_level(logging.ERROR):
        assert Scanner(backends).scan() == []
    assert "no storage backend reachable" in caplog.text


def test_active_session_display_key(backends):
    backends.get(BackendKind.LOCAL).write("idea-lab-storage", json.dumps({"state": {"savedProjects": {}}}))
    (record,) = Scanner(backends).scan()
    assert record.display_key == "LocalStorage: Active Session (idea-lab-storage)"
    assert record.is_active_session
    assert record.category == "projects"


def test_display_key_for_non_default_substore():
    assert display_key(BackendKind.BLOB, "f1", "other/files", default_substore="keyval-store/keyval") \
        == "BlobStore: other/files / f1"
    assert display_key(BackendKind.BLOB, "f1", "keyval-store/keyval", default_substore="keyval-store/keyval") \
        == "BlobStore: f1"


def test_summarize_groups_by_category(backends):
    seed_example(backends)
    backends.blob.write("media-audio-p1-audio-1", StoredBlob(b"abc", "audio/mpeg"))
    summary = summarize(Scanner(backends).scan({"xyz"}))

    assert summary.total.count == 4
    assert summary.categories["audio"].count == 1
    assert summary.categories["audio"].size == 3
    assert summary.backups.count == 1
    assert summary.orphans.count == 1
    assert sum(c.count for c in summary.categories.values()) == summary.total.count


def test_worker_count_comes_from_config(backends, monkeypatch):
    monkeypatch.setenv("IDEALAB_SCAN_WORKERS", "7")
    assert Scanner.from_config(backends).max_workers == 7
    assert Scanner.from_config(backends, {"scan_workers": 1}).max_workers == 1
