# tests/test_storage_providers.py

import json
import sqlite3

import pytest

from idealab_core.errors import StorageQuotaError, StorageTransientError
from idealab_core.storage import (
    BackendKind, BlobBackend, InMemoryStorage, JSONFileStorage, SQLiteStorage, StorageRecord, StoredBlob,
)


def test_memory_read_missing_and_idempotent_delete():
    store = InMemoryStorage({"a": "1"})
    assert store.read("missing") is None
    assert store.delete("a") is True
    assert store.delete("a") is False
    assert store.list_keys() == []


def test_json_file_roundtrip_and_missing_file(tmp_path):
    store = JSONFileStorage(str(tmp_path / "ls.json"))
    assert store.list_keys() == []
    store.write("session", '{"seriesName":"Foo"}')
    assert store.read("session") == '{"seriesName":"Foo"}'
    # a second adapter over the same file sees the write
    assert JSONFileStorage(str(tmp_path / "ls.json")).list_keys() == ["session"]
    assert store.delete("session") is True
    assert store.delete("session") is False


def test_json_file_rejects_non_strings(tmp_path):
    store = JSONFileStorage(str(tmp_path / "ls.json"))
    with pytest.raises(TypeError):
        store.write("k", {"a": 1})


def test_json_file_quota(tmp_path):
    store = JSONFileStorage(str(tmp_path / "ls.json"), quota_bytes=20)
    store.write("k", "x" * 10)
    with pytest.raises(StorageQuotaError):
        store.write("k2", "y" * 50)
    assert store.read("k2") is None
    assert store.read("k") == "x" * 10


def test_json_file_corrupt_is_transient(tmp_path):
    path = tmp_path / "ls.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageTransientError):
        JSONFileStorage(str(path)).list_keys()


def test_sqlite_value_kinds_roundtrip(tmp_path):
    store = SQLiteStorage(str(tmp_path / "db.sqlite3"))
    store.write("text", "hello")
    store.write("obj", {"seriesName": "Foo", "n": [1, 2]})
    store.write("blob", StoredBlob(b"\x00\x01\xff", "image/png"))
    store.write("raw", b"abc")

    assert store.read("text") == "hello"
    assert store.read("obj") == {"seriesName": "Foo", "n": [1, 2]}
    assert store.read("blob") == StoredBlob(b"\x00\x01\xff", "image/png")
    assert store.read("raw") == StoredBlob(b"abc", "application/octet-stream")
    assert store.read("missing") is None
    assert sorted(store.list_keys()) == ["blob", "obj", "raw", "text"]


def test_sqlite_delete_reports_not_found(tmp_path):
    store = SQLiteStorage(str(tmp_path / "db.sqlite3"))
    store.write("k", "v")
    assert store.delete("k") is True
    assert store.delete("k") is False


def test_sqlite_rejects_bad_store_name(tmp_path):
    with pytest.raises(ValueError):
        SQLiteStorage(str(tmp_path / "db.sqlite3"), store='x"; DROP TABLE y')


def test_blob_backend_enumerates_substores(tmp_path):
    blob = BlobBackend(str(tmp_path / "blob"))
    blob.write("project-1", "{}")
    SQLiteStorage(str(tmp_path / "blob" / "other-db.sqlite3"), store="files").write("f1", "x")

    names = [name for name, _ in blob.iter_substores()]
    assert names[0] == blob.default_name
    assert "other-db/files" in names
    assert blob.substore("other-db/files").read("f1") == "x"
    assert blob.substore(None).read("project-1") == "{}"


def test_blob_backend_skips_unreadable_database(tmp_path, caplog):
    blob = BlobBackend(str(tmp_path / "blob"))
    blob.write("k", "v")
    (tmp_path / "blob" / "broken.sqlite3").write_bytes(b"this is not a sqlite database at all" * 10)

    names = [name for name, _ in blob.iter_substores()]
    assert names == [blob.default_name]
    assert "skipping database broken" in caplog.text


def test_backend_set_resolves_substore(backends, tmp_path):
    SQLiteStorage(str(tmp_path / "blob" / "aux.sqlite3"), store="kv").write("x", "1")
    record = StorageRecord(
        backend=BackendKind.BLOB, raw_key="x", display_key="BlobStore: aux/kv / x",
        size_bytes=1, preview="", substore="aux/kv",
    )
    assert backends.resolve(record).read("x") == "1"
