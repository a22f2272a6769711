import random
import threading

import pytest

from candystore.config import (
    Config,
    GetOrCreateStatus,
    RawStore,
    ReplaceStatus,
    SetStatus,
)
from candystore.lists import ListCompactionParams, ListStore


@pytest.fixture
def db():
    return ListStore(RawStore(Config()))


def keys(db, name):
    return [k for k, _ in db.iter_list(name)]


def test_lists_basic(db):
    db.set_in_list("texas", "dallas", "500,000")
    db.set_in_list("texas", "austin", "300,000")
    db.set_in_list("texas", "houston", "700,000")
    db.set_in_list("texas", "dallas", "450,000")

    assert db.get_from_list("texas", "dallas") == b"450,000"
    assert db.get_from_list("texas", "austin") == b"300,000"
    assert db.get_from_list("texas", "houston") == b"700,000"

    assert len(list(db.iter_list("texas"))) == 3
    assert db.list_len("texas") == 3
    assert list(db.iter_list("arkansas")) == []
    assert db.list_len("arkansas") == 0

    items = list(db.iter_list("texas"))
    assert items[0][0] == b"dallas"
    assert items[2][0] == b"houston"


def test_many_items_removed_while_iterating(db):
    n = 10_000
    val = "very long key " + "a" * 75
    for i in range(n):
        db.set_in_list("xxx", f"my key {i}", val)
        assert db.list_len("xxx") == i + 1

    for i, (k, _) in enumerate(db.iter_list("xxx")):
        assert k == f"my key {i}".encode()
        db.remove_from_list("xxx", k)
        assert db.list_len("xxx") == n - i - 1

    assert list(db.iter_list("xxx")) == []
    assert len(db.store) == 0


def test_lists_multithreading(db):
    counts = {"created": 0, "replaced": 0, "removed": 0, "gotten": 0}
    counts_lock = threading.Lock()
    num_thds, num_iters = 10, 300
    errors = []

    def work(thd):
        rng = random.Random(thd)
        try:
            for _ in range(num_iters):
                idx1 = rng.randrange(256)
                created = db.set_in_list("xxx", f"key{idx1}", f"val-{thd}").was_created()
                with counts_lock:
                    counts["created" if created else "replaced"] += 1
                v = db.get_from_list("xxx", f"key{rng.randrange(256)}")
                if v is not None:
                    assert v.startswith(b"val-")
                    with counts_lock:
                        counts["gotten"] += 1
                if db.remove_from_list("xxx", f"key{rng.randrange(256)}") is not None:
                    with counts_lock:
                        counts["removed"] += 1
        except Exception as exc:  # surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=work, args=(t,)) for t in range(num_thds)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    remaining = len(list(db.iter_list("xxx")))
    assert counts["created"] - counts["removed"] == remaining
    assert counts["created"] + counts["replaced"] == num_thds * num_iters


def test_list_atomics(db):
    assert db.get_or_create_in_list("xxx", "yyy", "1") == GetOrCreateStatus.created_new(b"1")
    assert db.get_or_create_in_list("xxx", "yyy", "2") == GetOrCreateStatus.existing_value(b"1")
    assert db.replace_in_list("xxx", "yyy", "3", None) == ReplaceStatus.prev_value(b"1")
    assert db.replace_in_list("xxx", "zzz", "3", None) == ReplaceStatus.does_not_exist()
    assert db.get_or_create_in_list("xxx", "yyy", "7") == GetOrCreateStatus.existing_value(b"3")
    assert db.set_in_list("xxx", "yyy", "4") == SetStatus(b"3")
    assert db.get_from_list("xxx", "yyy") == b"4"


def test_replace_with_expected_value(db):
    db.set_in_list("xxx", "yyy", "1")
    assert db.replace_in_list("xxx", "yyy", "2", "9") == ReplaceStatus.wrong_value(b"1")
    assert db.get_from_list("xxx", "yyy") == b"1"
    assert db.replace_in_list("xxx", "yyy", "2", "1") == ReplaceStatus.prev_value(b"1")
    assert db.get_from_list("xxx", "yyy") == b"2"


def test_rev_iter(db):
    for i in range(1, 5):
        db.set_in_list("mylist", f"item{i}", "xxx")

    assert keys(db, "mylist") == [b"item1", b"item2", b"item3", b"item4"]
    assert [k for k, _ in db.iter_list_backwards("mylist")] == [
        b"item4",
        b"item3",
        b"item2",
        b"item1",
    ]
    assert db.peek_list_head("mylist") == (b"item1", b"xxx")
    assert db.peek_list_tail("mylist") == (b"item4", b"xxx")


def test_peek_empty_list(db):
    assert db.peek_list_head("nothing") is None
    assert db.peek_list_tail("nothing") is None


def test_promote(db):
    for i in range(1, 5):
        db.set_in_list("mylist", f"item{i}", "xxx")
    assert keys(db, "mylist") == [b"item1", b"item2", b"item3", b"item4"]

    db.set_in_list("mylist", "item2", "yyy")
    assert keys(db, "mylist") == [b"item1", b"item2", b"item3", b"item4"]

    db.set_in_list_promoting("mylist", "item2", "zzz")
    assert keys(db, "mylist") == [b"item1", b"item3", b"item4", b"item2"]

    db.set_in_list_promoting("mylist", "item1", "zzz")
    assert keys(db, "mylist") == [b"item3", b"item4", b"item2", b"item1"]

    db.set_in_list_promoting("mylist", "item1", "zzz")
    assert keys(db, "mylist") == [b"item3", b"item4", b"item2", b"item1"]
    assert db.get_from_list("mylist", "item1") == b"zzz"


def test_lists_are_independent(db):
    db.set_in_list("a", "k", "1")
    db.set_in_list("b", "k", "2")
    assert db.get_from_list("a", "k") == b"1"
    assert db.get_from_list("b", "k") == b"2"
    assert db.remove_from_list("a", "k") == b"1"
    assert db.get_from_list("b", "k") == b"2"


def test_bytes_and_str_keys_agree(db):
    db.set_in_list(b"lst", b"item", b"val")
    assert db.get_from_list("lst", "item") == b"val"


def test_lock_list_excludes_other_threads(db):
    list_ph, _ = db._make_list_key("mylist")
    lock = db.lock_list(list_ph)
    assert db.lock_list(list_ph) is lock

    attempts = []

    def try_lock():
        got = db.lock_list(list_ph).acquire(blocking=False)
        if got:
            db.lock_list(list_ph).release()
        attempts.append(got)

    with db.lock_list(list_ph):
        t = threading.Thread(target=try_lock)
        t.start()
        t.join()

    t = threading.Thread(target=try_lock)
    t.start()
    t.join()

    assert attempts == [False, True]

    acquired = db.lock_list(list_ph).acquire(blocking=False)
    assert acquired is True
    db.lock_list(list_ph).release()


def test_compaction_params_defaults():
    params = ListCompactionParams()
    assert (params.min_length, params.min_holes_ratio) == (100, 0.25)
    assert ListCompactionParams(min_length=5).min_length == 5