import math
import random

import pytest

from candystore.simulator import (
    SimDB,
    SimHash,
    SimShard,
    main,
    random_hash,
    run_fill_simulation,
)


def test_random_hash_is_32_bit():
    for _ in range(100):
        h = random_hash()
        for part in (h.shard_idx, h.row_idx, h.signature):
            assert 0 <= part < 1 << 32


def test_shard_rejects_full_row():
    shard = SimShard(1, 2)
    assert shard.add(SimHash(0, 0, 1))
    assert shard.add(SimHash(0, 5, 2))
    assert not shard.add(SimHash(0, 9, 3))
    assert shard.total == 2


def test_shard_counts_signature_collisions():
    shard = SimShard(4, 8)
    shard.add(SimHash(0, 1, 42))
    shard.add(SimHash(0, 1, 42))
    shard.add(SimHash(0, 2, 42))
    assert shard.collisions == 1
    assert shard.total == 3


def test_db_keeps_entries_and_ranges():
    random.seed(1234)
    db = SimDB(4, 4)
    hashes = [random_hash() for _ in range(500)]
    for h in hashes:
        db.add(h)
    assert db.total == 500
    assert sum(s.total for s in db.shards.values()) == 500
    assert db.boundaries == sorted(db.boundaries)
    assert db.boundaries[-1] == 1 << 32
    assert db.num_splits == len(db.fill_levels) == len(db.boundaries) - 1
    previous = 0
    for key in db.boundaries:
        for row in db.shards[key].rows:
            for h in row:
                assert previous <= h.shard_idx < key
        previous = key
    stored = sorted(
        (h for s in db.shards.values() for row in s.rows for h in row),
        key=lambda h: (h.shard_idx, h.row_idx, h.signature),
    )
    assert stored == sorted(hashes, key=lambda h: (h.shard_idx, h.row_idx, h.signature))


def test_db_rejects_out_of_range_index():
    db = SimDB(2, 2)
    with pytest.raises(ValueError):
        db.add(SimHash(1 << 32, 0, 1))


def test_fill_simulation_invariants():
    random.seed(7)
    result = run_fill_simulation(4, 8, 10)
    assert result.added == 4 * 8 * 10
    assert result.total == result.added == result.summed
    assert result.elements == 32
    assert 0.0 < result.avg_fill <= 1.0
    assert all(0.0 < f <= 1.0 for f in result.fill_levels)


def test_collision_probability_zero_for_width_one():
    result = run_fill_simulation(2, 1, 1)
    assert result.collision_probability == 0.0
    assert result.collisions == 0


def test_avg_nan_without_splits():
    result = run_fill_simulation(64, 64, 0)
    assert math.isnan(result.avg_fill)
    assert result.total == 0


def test_main_prints_all_configurations(capsys):
    random.seed(3)
    assert main(["--rounds", "0", "--reps", "10"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 4 * 6 + 6
    assert lines[0].startswith("r=  32 w=  32")
    assert lines[-1].startswith("width=1024 time per lookup=")