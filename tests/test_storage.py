import json
import os
import time

import pytest

from storefront.storage import LocalStorage, StorageLockTimeout


def test_items_persist_in_file(tmp_path):
    path = tmp_path / "state" / "storage.json"
    store = LocalStorage(str(path))
    store.set_item("oauth_state", "xyz")
    store.set_json("cart", [{"a": 1}])
    assert json.loads(path.read_text())["oauth_state"] == "xyz"
    other = LocalStorage(str(path))
    assert other.get_item("oauth_state") == "xyz"
    assert other.get_json("cart") == [{"a": 1}]
    other.remove_item("oauth_state")
    assert store.get_item("oauth_state") is None
    assert not (tmp_path / "state" / "storage.json.lock").exists()


def test_corrupt_file_reads_empty(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{not json")
    store = LocalStorage(str(path))
    assert store.get_item("cart") is None
    assert store.get_json("cart", []) == []


def test_claim_is_one_shot(tmp_path):
    store = LocalStorage(str(tmp_path / "s.json"))
    token = store.claim("auth_complete_processing", ttl=30, now=1000.0)
    assert token
    assert store.claim("auth_complete_processing", ttl=30, now=1010.0) is None
    assert store.release("auth_complete_processing", "someone-else") is False
    assert store.release("auth_complete_processing", token) is True
    assert store.claim("auth_complete_processing", ttl=30, now=1011.0)


def test_stale_claim_taken_over(storage):
    first = storage.claim("guard", ttl=30, now=0.0)
    second = storage.claim("guard", ttl=30, now=31.0)
    assert second and second != first
    assert storage.release("guard", first) is False


def test_lock_left_by_dead_writer_is_taken_over(tmp_path):
    path = tmp_path / "s.json"
    lock = tmp_path / "s.json.lock"
    lock.write_text("")
    old = time.time() - 60
    os.utime(lock, (old, old))
    store = LocalStorage(str(path), lock_timeout=0.2)
    store.set_item("cart", "[]")
    assert store.get_item("cart") == "[]"
    assert not lock.exists()


def test_live_lock_still_blocks(tmp_path):
    lock = tmp_path / "s.json.lock"
    lock.write_text("")
    store = LocalStorage(str(tmp_path / "s.json"), lock_timeout=0.05)
    with pytest.raises(StorageLockTimeout):
        store.set_item("cart", "[]")
