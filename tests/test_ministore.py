import pytest

from candystore.ministore import (
    HEADER_SIZE,
    MAX_SHARD,
    MiniHash,
    MiniStore,
    ShardFile,
    main,
    siphash24_64,
)


def test_siphash_reference_vector():
    assert siphash24_64(b"", bytes(range(16))) == 0x726FDB47DD0E0E31


def test_siphash_rejects_bad_key():
    with pytest.raises(ValueError):
        siphash24_64(b"x", b"short")


def test_hash_parts_are_in_range():
    for i in range(200):
        ph = MiniHash.of_key(i.to_bytes(4, "little"))
        assert ph.sig != 0
        assert 0 <= ph.row < 64
        assert 0 <= ph.shard < MAX_SHARD


def test_set_get_remove(tmp_path):
    with MiniStore(tmp_path) as db:
        assert db.get(b"hello") is None
        assert db.set(b"hello", b"world")
        assert db.get(b"hello") == b"world"
        assert db.get(b"nonexistent") is None
        assert db.remove(b"hello") is True
        assert db.remove(b"hello") is False
        assert db.get(b"hello") is None
        assert list(db) == []


def test_overwrite_keeps_single_entry(tmp_path):
    with MiniStore(tmp_path) as db:
        db.set("k", "v1")
        db.set("k", "v2")
        assert db.get("k") == b"v2"
        assert list(db) == [(b"k", b"v2")]


def test_first_shard_file_name(tmp_path):
    with MiniStore(tmp_path):
        names = sorted(p.name for p in tmp_path.iterdir())
    assert names == [f"0-{MAX_SHARD}"]


def test_shard_file_direct(tmp_path):
    with ShardFile(tmp_path, 0, MAX_SHARD) as shard:
        assert shard.path.stat().st_size == HEADER_SIZE
        ph = MiniHash.of_key(b"abc")
        assert shard.set(ph, b"abc", b"123")
        assert shard.get(ph, b"abc") == b"123"
        assert shard.get(ph, b"abd") is None
        assert list(shard) == [(b"abc", b"123")]
        assert shard.remove(ph, b"abc")
        assert not shard.remove(ph, b"abc")


def test_many_entries_force_split(tmp_path):
    count = 40_000
    with MiniStore(tmp_path) as db:
        for i in range(count):
            db.set(i.to_bytes(4, "little"), (i * 2).to_bytes(4, "little"))
        assert len(db.shards) > 1
        ends = [s.end for s in db.shards]
        assert ends == sorted(ends)
        assert ends[-1] == MAX_SHARD
        items = dict(db)
        assert len(items) == count
        for i in (0, 1, 12_345, count - 1):
            assert db.get(i.to_bytes(4, "little")) == (i * 2).to_bytes(4, "little")
        assert all(int.from_bytes(v, "little") == 2 * int.from_bytes(k, "little") for k, v in items.items())
    files = {p.name for p in tmp_path.iterdir()}
    assert f"0-{MAX_SHARD}" not in files
    assert len(files) == len(ends)


def test_main_output(tmp_path, capsys):
    assert main([str(tmp_path / "db"), "--count", "100"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["b'world'", "None", "None", "0", "100"]