"""Simulation of shard fill levels and signature collisions under random keys."""

from __future__ import annotations

import argparse
import bisect
import math
import random
import time
from collections import deque
from dataclasses import dataclass, field

_TOP_KEY = 1 << 32


@dataclass(frozen=True)
class SimHash:
    shard_idx: int
    row_idx: int
    signature: int


def random_hash() -> SimHash:
    """Return a hash with three independent random 32-bit parts."""
    return SimHash(random.getrandbits(32), random.getrandbits(32), random.getrandbits(32))


class SimShard:
    """A shard of fixed rows, each holding at most ``row_width`` hashes."""

    def __init__(self, num_rows: int, row_width: int) -> None:
        self.row_width = row_width
        self.total = 0
        self.collisions = 0
        self.rows: list[list[SimHash]] = [[] for _ in range(num_rows)]

    def add(self, h: SimHash) -> bool:
        """Add ``h``; return False when its row is full."""
        row = self.rows[h.row_idx % len(self.rows)]
        if len(row) >= self.row_width:
            return False
        if any(other.signature == h.signature for other in row):
            self.collisions += 1
        row.append(h)
        self.total += 1
        return True


class SimDB:
    """Shards keyed by the exclusive upper bound of their shard-index range."""

    def __init__(self, num_rows: int, row_width: int) -> None:
        self.num_rows = num_rows
        self.row_width = row_width
        self.total = 0
        self.num_splits = 0
        self.fill_level_on_split = 0
        self.fill_levels: list[float] = []
        self.boundaries: list[int] = [_TOP_KEY]
        self.shards: dict[int, SimShard] = {_TOP_KEY: SimShard(num_rows, row_width)}
        self._retired_collisions = 0

    @property
    def collisions(self) -> int:
        return self._retired_collisions + sum(s.collisions for s in self.shards.values())

    def add(self, to_add: SimHash) -> None:
        """Add a hash, splitting full shards in two as needed."""
        pending = deque([to_add])
        while pending:
            h = pending.popleft()
            pos = bisect.bisect_right(self.boundaries, h.shard_idx)
            if pos == len(self.boundaries):
                raise ValueError(f"no shard for 0x{h.shard_idx:x}")
            key_after = self.boundaries[pos]
            key_before = self.boundaries[pos - 1] if pos > 0 else 0

            if self.shards[key_after].add(h):
                self.total += 1
                continue

            prev = self.shards.pop(key_after)
            self._retired_collisions += prev.collisions
            midpoint = key_before // 2 + key_after // 2
            self.boundaries.insert(pos, midpoint)
            self.shards[midpoint] = SimShard(self.num_rows, self.row_width)
            self.shards[key_after] = SimShard(self.num_rows, self.row_width)

            self.num_splits += 1
            self.fill_level_on_split += prev.total
            self.fill_levels.append(
                (self.fill_level_on_split / self.num_splits) / (self.num_rows * self.row_width)
            )
            self.total -= prev.total

            moved = [e for row in prev.rows for e in row]
            moved.append(h)
            pending.extendleft(reversed(moved))


@dataclass
class SimulationResult:
    rows: int
    width: int
    added: int
    total: int
    summed: int
    avg_fill: float
    elements: int
    size_kb: int
    collisions: int
    collision_probability: float
    fill_levels: list[float] = field(default_factory=list)

    def format(self) -> str:
        return (
            f"r={self.rows:4} w={self.width:4} avg={self.avg_fill:.6f} elems={self.elements:7} "
            f"sz={self.size_kb:4}KB collisions={self.collisions} "
            f"collisions-probability={self.collision_probability:.15f} "
            f"{'GOOD' if self.avg_fill > 0.8 else ''} {'BIG' if self.size_kb > 800 else ''}"
        )


def run_fill_simulation(rows: int, width: int, rounds: int = 100) -> SimulationResult:
    """Fill a simulated store with ``rounds`` shards' worth of random hashes."""
    db = SimDB(rows, width)
    added = 0
    for _ in range(rounds):
        for _ in range(rows * width):
            db.add(random_hash())
            added += 1

    summed = sum(s.total for s in db.shards.values())
    avg = sum(db.fill_levels) / len(db.fill_levels) if db.fill_levels else math.nan
    return SimulationResult(
        rows=rows,
        width=width,
        added=added,
        total=db.total,
        summed=summed,
        avg_fill=avg,
        elements=rows * width,
        size_kb=(rows * width * 12) // 1024,
        collisions=db.collisions,
        collision_probability=1.0 - math.exp(-width * (width - 1.0) / float(1 << 33)),
        fill_levels=list(db.fill_levels),
    )


def _time_lookup(width: int, reps: int) -> float:
    values = list(range(width))
    values[-1] = 80808080
    found = 0
    t0 = time.perf_counter_ns()
    for _ in range(reps):
        found += values.index(80808080) if 80808080 in values else 0
        found += values.index(80808081) if 80808081 in values else 0
    elapsed = time.perf_counter_ns() - t0
    if found != (width - 1) * reps:
        raise RuntimeError("lookup benchmark produced a wrong position sum")
    return elapsed / reps


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Simulate shard fill levels and collisions.")
    parser.add_argument("--rounds", type=int, default=100)
    parser.add_argument("--reps", type=int, default=100_000)
    args = parser.parse_args(argv)

    for rows in (32, 64, 128, 256):
        for width in (32, 64, 128, 256, 512, 1024):
            result = run_fill_simulation(rows, width, args.rounds)
            if result.total != result.summed or result.total != result.added:
                raise RuntimeError("simulation lost entries")
            print(result.format())

    for width in (32, 64, 128, 256, 512, 1024):
        print(f"width={width:4} time per lookup={int(_time_lookup(width, args.reps)):4}ns")
    return 0