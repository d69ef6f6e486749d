"""Tests for FileStore - layout, escaping, per-key locking and sweeping."""

from __future__ import annotations

import json
import os
import pickle
import stat
import threading
from datetime import timedelta

import pytest

from kvspine.errors import DecodeError, InvalidKeyError, StorageError
from kvspine.stores import FileStore
from kvspine.stores.file import escape_key, unescape_key


class TestEscapeKey:
    @pytest.mark.parametrize(
        "key,escaped",
        [
            ("abc", "abc"),
            ("user/42", "user%2F42"),
            (".", "%2E"),
            ("..", "%2E%2E"),
            ("a b", "a%20b"),
            ("k:v", "k%3Av"),
            ("a\\b", "a%5Cb"),
        ],
    )
    def test_escape(self, key, escaped):
        assert escape_key(key) == escaped
        assert unescape_key(escaped) == key

    def test_single_path_component(self):
        for key in ["../../etc/passwd", "a/b/c", "/abs"]:
            assert "/" not in escape_key(key)
            assert escape_key(key) not in (".", "..")


class TestLayout:
    def test_path_with_extension(self, file_store, tmp_path):
        file_store.set("user/42", {"n": 1})
        path = tmp_path / "kvs" / "user%2F42.json"
        assert path.exists()
        assert file_store.path_for("user/42") == path

    def test_record_content(self, file_store):
        file_store.set("a", {"n": 1})
        record = json.loads(file_store.path_for("a").read_bytes())
        assert record == {"expires_at": None, "data": {"n": 1}}

    def test_expiry_is_persisted(self, file_store, clock):
        file_store.set_ex("a", 1, 5)
        record = json.loads(file_store.path_for("a").read_bytes())
        assert record["expires_at"] == (clock.now + timedelta(seconds=5)).isoformat()

    def test_empty_extension(self, tmp_path):
        with FileStore(directory=tmp_path, filename_extension="", gc_interval=-1) as store:
            store.set("a", 1)
            assert (tmp_path / "a").exists()
            assert store.get("a", int) == (True, 1)

    def test_custom_extension(self, tmp_path):
        with FileStore(directory=tmp_path, filename_extension="kv", gc_interval=-1) as store:
            store.set("a", 1)
            assert (tmp_path / "a.kv").exists()

    def test_file_permissions(self, file_store):
        file_store.set("a", 1)
        assert stat.S_IMODE(os.stat(file_store.path_for("a")).st_mode) == 0o600

    def test_creates_nested_directory(self, tmp_path):
        directory = tmp_path / "a" / "b" / "c"
        with FileStore(directory=directory, gc_interval=-1):
            assert directory.is_dir()

    def test_existing_files_survive_reopen(self, tmp_path):
        with FileStore(directory=tmp_path, gc_interval=-1) as store:
            store.set("a", 1)
        with FileStore(directory=tmp_path, gc_interval=-1) as store:
            assert store.get("a", int) == (True, 1)

    def test_directory_creation_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(StorageError) as exc_info:
            FileStore(directory=blocker / "kv", gc_interval=-1)
        assert exc_info.value.context.store == "file"

    def test_pickle_codec(self, tmp_path):
        with FileStore(directory=tmp_path, codec="pickle", gc_interval=-1) as store:
            store.set("ids", {1, 2})
            assert store.get("ids", set[int]) == (True, {1, 2})


class TestCorruptFiles:
    def test_invalid_payload(self, file_store):
        file_store.path_for("bad").write_bytes(b"{not json")
        with pytest.raises(DecodeError):
            file_store.get("bad")
        assert file_store.has("bad") is False

    def test_record_missing_fields(self, file_store):
        file_store.path_for("bad").write_bytes(b'{"foo": 1}')
        with pytest.raises(DecodeError):
            file_store.get("bad")
        assert file_store.has("bad") is False

    def test_has_agrees_with_get(self, file_store, clock):
        file_store.set("live", 1)
        file_store.set_ex("expired", 1, 1)
        file_store.path_for("corrupt").write_bytes(b"\x00\x01")
        clock.advance(2)

        for key in ["live", "expired", "corrupt", "missing"]:
            try:
                found, _ = file_store.get(key)
            except DecodeError:
                found = False
            assert file_store.has(key) is found

    def test_unencodable_key(self, file_store):
        assert file_store.has("\ud800") is False
        with pytest.raises(InvalidKeyError):
            file_store.get("\ud800")
        with pytest.raises(InvalidKeyError):
            file_store.set("\ud800", 1)

    def test_delete_corrupt_file(self, file_store):
        file_store.path_for("bad").write_bytes(b"garbage")
        file_store.delete("bad")
        assert not file_store.path_for("bad").exists()


class TestCorruptPickleFiles:
    @pytest.fixture
    def pickle_store(self, tmp_path):
        store = FileStore(directory=tmp_path / "kvs", codec="pickle", gc_interval=-1)
        yield store
        store.close()

    @pytest.mark.parametrize("payload", [b"\x80\x09garbage", b"\x80\x04K", b"garbage"])
    def test_get_and_has(self, pickle_store, payload):
        pickle_store.path_for("bad").write_bytes(payload)
        with pytest.raises(DecodeError):
            pickle_store.get("bad")
        assert pickle_store.has("bad") is False

    def test_gc_aborts(self, pickle_store):
        pickle_store.path_for("bad").write_bytes(b"\x80\x09garbage")
        with pytest.raises(StorageError) as exc_info:
            pickle_store.gc()
        assert isinstance(exc_info.value.cause, DecodeError)

    def test_record_not_a_dict(self, pickle_store):
        pickle_store.path_for("bad").write_bytes(pickle.dumps([1, 2]))
        with pytest.raises(DecodeError):
            pickle_store.get("bad")
        assert pickle_store.has("bad") is False


class TestConcurrency:
    def test_distinct_keys_do_not_block(self, file_store):
        with file_store._locks.write(escape_key("a")):
            other = threading.Thread(target=file_store.set, args=("b", 1))
            other.start()
            other.join(2)
            assert not other.is_alive()

            same = threading.Thread(target=file_store.set, args=("a", 1))
            same.start()
            same.join(0.1)
            assert same.is_alive()

        same.join(2)
        assert not same.is_alive()
        assert file_store.get("a", int) == (True, 1)

    def test_same_key_writes_do_not_interleave(self, file_store):
        values = [chr(ord("a") + n) * 200_000 for n in range(6)]
        errors = []

        def writer(value):
            for _ in range(10):
                file_store.set("shared", value)

        def reader():
            for _ in range(30):
                try:
                    found, value = file_store.get("shared", str)
                    assert not found or value in values
                except (AssertionError, DecodeError) as e:
                    errors.append(e)

        threads = [threading.Thread(target=writer, args=(v,)) for v in values]
        threads.append(threading.Thread(target=reader))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert file_store.get("shared", str)[1] in values

    def test_lock_registry_drains(self, file_store):
        file_store.set("a", 1)
        file_store.get("a")
        file_store.delete("a")
        file_store.gc()
        assert len(file_store._locks) == 0


class TestGC:
    def test_skips_foreign_files(self, file_store, tmp_path, clock):
        directory = tmp_path / "kvs"
        (directory / "notes.txt").write_text("not ours")
        (directory / "subdir").mkdir()
        file_store.set_ex("a", 1, 1)
        clock.advance(2)

        assert file_store.gc() == 1
        assert (directory / "notes.txt").exists()
        assert (directory / "subdir").is_dir()

    def test_skips_non_canonical_names(self, file_store, tmp_path):
        # escape_key never emits lower-case escapes
        (tmp_path / "kvs" / "a%2fb.json").write_bytes(b"garbage")
        assert file_store.gc() == 0

    def test_aborts_on_corrupt_file(self, file_store, clock):
        file_store.path_for("bad").write_bytes(b"{not json")
        file_store.set_ex("old", 1, 1)
        clock.advance(2)

        with pytest.raises(StorageError) as exc_info:
            file_store.gc()
        assert exc_info.value.context.operation == "gc"
        assert isinstance(exc_info.value.cause, DecodeError)

        file_store.delete("bad")
        file_store.gc()
        assert not file_store.path_for("old").exists()

    def test_waits_for_key_lock(self, file_store, clock):
        file_store.set_ex("a", 1, 1)
        clock.advance(2)
        removed = []

        with file_store._locks.read(escape_key("a")):
            sweep = threading.Thread(target=lambda: removed.append(file_store.gc()))
            sweep.start()
            sweep.join(0.1)
            assert sweep.is_alive()

        sweep.join(2)
        assert removed == [1]

    def test_directory_removed(self, tmp_path):
        directory = tmp_path / "kvs"
        store = FileStore(directory=directory, gc_interval=-1)
        directory.rmdir()
        with pytest.raises(StorageError):
            store.gc()
        store.close()
