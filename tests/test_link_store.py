from __future__ import annotations

import json
import threading

from link_digest.link_store import LinkStore, StorageError
from link_digest.utils import sanitize_email


def test_sanitize_email_replaces_at_and_dots():
    assert sanitize_email("jane.doe@example.com") == "jane_doe_at_example_com"


def test_count_is_zero_for_unknown_email(tmp_path):
    store = LinkStore(tmp_path)
    assert store.count("nobody@example.com") == 0


def test_append_persists_links_in_submission_order(tmp_path):
    store = LinkStore(tmp_path)
    store.append("a@example.com", "https://one.test")
    queue = store.append("a@example.com", "https://two.test")

    assert queue.links == ["https://one.test", "https://two.test"]
    raw = json.loads((tmp_path / "a_at_example_com.json").read_text(encoding="utf-8"))
    assert raw == {"email": "a@example.com", "links": ["https://one.test", "https://two.test"]}
    assert store.count("a@example.com") == 2


def test_corrupt_record_is_treated_as_empty(tmp_path):
    store = LinkStore(tmp_path)
    store.path_for("a@example.com").write_text("{not json", encoding="utf-8")

    assert store.count("a@example.com") == 0
    queue = store.append("a@example.com", "https://one.test")
    assert queue.links == ["https://one.test"]


def test_clear_empties_queue(tmp_path):
    store = LinkStore(tmp_path)
    store.append("a@example.com", "https://one.test")
    store.clear("a@example.com")
    assert store.count("a@example.com") == 0


def test_failed_write_drops_the_update(tmp_path, monkeypatch):
    store = LinkStore(tmp_path)
    store.append("a@example.com", "https://one.test")

    def broken_save(queue):
        raise StorageError("disk full")

    monkeypatch.setattr(store, "save", broken_save)
    queue = store.append("a@example.com", "https://two.test")

    assert queue.links == ["https://one.test"]
    assert store.count("a@example.com") == 1


def test_lock_is_shared_per_address(tmp_path):
    store = LinkStore(tmp_path)
    assert store.lock("a@example.com") is store.lock("a@example.com")
    assert store.lock("a@example.com") is not store.lock("b@example.com")


def test_concurrent_appends_for_same_email_are_not_lost(tmp_path):
    store = LinkStore(tmp_path)
    urls = [f"https://example.com/{i}" for i in range(40)]
    threads = [threading.Thread(target=store.append, args=("a@example.com", url)) for url in urls]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(store.load("a@example.com").links) == sorted(urls)


def test_sanitize_email_strips_path_separators():
    assert "/" not in sanitize_email("/tmp/outside/victim")
    assert "\\" not in sanitize_email("..\\..\\victim")


def test_slashed_email_never_leaves_storage_dir(tmp_path):
    root = tmp_path / "store"
    outside = tmp_path / "outside"
    outside.mkdir()
    store = LinkStore(root)

    for email in (str(outside / "victim"), "../outside/victim", "..\\outside\\other"):
        store.append(email, "https://a.test")
        assert store.path_for(email).parent == root
        assert store.count(email) == 1

    assert not (outside / "victim.json").exists()
    assert list(outside.iterdir()) == []
    assert all(path.parent == root for path in tmp_path.rglob("*.json"))
