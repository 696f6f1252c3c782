import json
import os
import time

import pytest

from gardenrig.domain.exceptions import PersistenceError
from infrastructure.persistence.json_store import FileLock, JsonFileStore


def test_save_then_load(tmp_path):
    store = JsonFileStore(str(tmp_path / "var"))
    store.save("moisture_history", {"entries": {"a": [True]}})

    assert store.load("moisture_history") == {"entries": {"a": [True]}}
    assert not (tmp_path / "var" / "moisture_history.json.tmp").exists()
    assert not (tmp_path / "var" / "moisture_history.json.lock").exists()


def test_load_missing_returns_none(tmp_path):
    assert JsonFileStore(str(tmp_path)).load("nothing") is None


def test_load_corrupt_file_raises(tmp_path):
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(PersistenceError):
        JsonFileStore(str(tmp_path)).load("broken")


def test_load_non_object_raises(tmp_path):
    (tmp_path / "list.json").write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(PersistenceError):
        JsonFileStore(str(tmp_path)).load("list")


def test_save_unserializable_payload_raises(tmp_path):
    with pytest.raises(PersistenceError):
        JsonFileStore(str(tmp_path)).save("bad", {"value": object()})


def test_save_fails_when_lock_is_held(tmp_path):
    store = JsonFileStore(str(tmp_path), lock_timeout=0.05)
    (tmp_path / "held.json.lock").write_text(str(os.getpid()), encoding="ascii")

    with pytest.raises(PersistenceError):
        store.save("held", {"a": 1})
    assert (tmp_path / "held.json.lock").exists()


def test_lock_left_by_dead_process_is_broken(tmp_path):
    store = JsonFileStore(str(tmp_path), lock_timeout=5.0)
    (tmp_path / "moisture_history.json.lock").write_text("999999999", encoding="ascii")

    started = time.monotonic()
    store.save("moisture_history", {"entries": {}})

    assert time.monotonic() - started < 1.0
    assert store.load("moisture_history") == {"entries": {}}
    assert not (tmp_path / "moisture_history.json.lock").exists()


def test_old_lock_without_pid_is_broken(tmp_path):
    lock = tmp_path / "safety_shutdown_log.json.lock"
    lock.write_text("", encoding="ascii")
    an_hour_ago = time.time() - 3600
    os.utime(lock, (an_hour_ago, an_hour_ago))

    store = JsonFileStore(str(tmp_path), lock_timeout=5.0)
    started = time.monotonic()
    store.save("safety_shutdown_log", {"entries": {}})

    assert time.monotonic() - started < 1.0
    assert not lock.exists()


def test_file_lock_records_holder_pid(tmp_path):
    path = tmp_path / "x.lock"
    with FileLock(str(path)):
        assert path.read_text(encoding="ascii") == str(os.getpid())
    assert not path.exists()


def test_file_lock_is_exclusive(tmp_path):
    path = str(tmp_path / "x.lock")
    with FileLock(path):
        assert FileLock(path, timeout=0.05).acquire() is False
    assert FileLock(path, timeout=0.05).acquire() is True
