# candystore

Building blocks for a sharded hash-table key-value store:

- `candystore.hashing`: SipHash-2-4 with 128-bit output and the 64-bit
  *parted hash* that places an entry by shard, row and signature.
- `candystore.config`: `Config`, the error classes, the operation result types
  and `RawStore`, a thread-safe in-memory key-value layer.
- `candystore.lists`: `ListStore`, ordered collections of keyed items kept on
  top of a `RawStore`.
- `candystore.list_maintenance`: whole-list operations on a `ListStore`.
- `candystore.queues`: `QueueStore`, double-ended queues on top of a `RawStore`.
- `candystore.ministore`: `MiniStore`, a minimal single-threaded store whose
  shards live in files with a memory-mapped header.
- `candystore.simulator`: a simulation of shard fill levels and signature
  collisions under random keys.

It needs nothing beyond the Python standard library (3.10 or newer).

## Installation

```
pip install .
```

## Hashing

```python
from candystore.hashing import PartedHash, parted_hash

ph = parted_hash(b"aaaabbbbccccdddd", b"hello world")
ph.value              # 13445180190757400308
ph.shard_selector()   # upper 16 bits
ph.row_selector()     # bits 32..47, modulo 64 rows
ph.signature()        # lower 32 bits, never 0
assert PartedHash.from_bytes(ph.to_bytes()) == ph   # 8 bytes, little-endian
```

`siphash24_128(key, data)` returns the two 64-bit halves of the hash; the key
must be 16 bytes.

## Configuration, results and errors

`Config` is a dataclass with these fields and defaults: `max_shard_size`
(64 MiB), `min_compaction_threshold` (8 MiB), `hash_seed` (16 bytes),
`expected_number_of_keys` (0), `max_concurrent_list_ops` (64), `truncate_up`,
`clear_on_unsupported_version`, `mlock_headers` and `num_compaction_threads`.
A `hash_seed` that is not 16 bytes raises `ValueError`.

Operations report what happened through small frozen result types:

- `SetStatus`: `prev_value`, `was_created()`
- `ReplaceStatus`: `outcome`, `data`, `was_replaced()`
- `GetOrCreateStatus`: `was_created()`, `already_exists()`, `value()`

`RawStore` raises subclasses of `CandyError`: `KeyTooLong` for keys over
16383 bytes, `ValueTooLong` for values over 65535 bytes, and
`EntryCannotFitInShard` when key plus value exceed `max_shard_size`.

```python
from candystore.config import RawStore

store = RawStore()
store.set_raw("k", "v").was_created()            # True
store.get_or_create_raw("k", "x").value()        # b"v"
store.replace_raw("k", "w", "v").was_replaced()  # True
store.remove_raw("k")                            # b"w"
```

Text arguments are encoded as UTF-8; values come back as `bytes`.

## Lists

```python
from candystore.lists import ListStore
from candystore import list_maintenance as lm

lists = ListStore()
lists.set_in_list("asia", "iraq", "arabic")
lists.set_in_list("asia", "china", "chinese")
lists.get_from_list("asia", "china")        # b"chinese"
list(lists.iter_list("asia"))               # [(b"iraq", b"arabic"), (b"china", b"chinese")]
lists.set_in_list_promoting("asia", "iraq", "arabic")   # moves iraq to the tail
lists.remove_from_list("asia", "china")     # b"chinese"
lists.list_len("asia")                      # 1

lm.pop_list_head(lists, "asia")             # (b"iraq", b"arabic")
```

Also available: `replace_in_list`, `get_or_create_in_list`,
`iter_list_backwards`, `peek_list_head`, `peek_list_tail` and `lock_list`.
Removing an item from the middle leaves a hole that iteration skips.
`list_maintenance` offers `compact_list_if_needed` (with
`ListCompactionParams`, default `min_length=100`, `min_holes_ratio=0.25`),
`discard_list`, `pop_list_head`, `pop_list_tail` and `retain_in_list`, each
taking the `ListStore` as first argument.

## Queues

```python
from candystore.queues import QueueStore

queues = QueueStore()
queues.push_to_queue_tail("work", "item1")
queues.push_to_queue_tail("work", "item2")
queues.extend_queue("work", ["item3", "item4"])   # range of the new indices
queues.pop_queue_head("work")    # b"item1"
queues.peek_queue_tail("work")   # b"item4"
queues.queue_len("work")         # 3
```

Also available: `push_to_queue_head`, the `*_with_idx` variants of pop and
peek, `remove_from_queue` by index, `discard_queue`, `iter_queue`,
`iter_queue_backwards` and `queue_range`.

`ListStore` and `QueueStore` each create a `RawStore` of their own unless one
is passed in, so both can share one store.

## Command-line tools

```
candystore-mini [DIRPATH] [--count N]
```

exercises `MiniStore` in `DIRPATH` (default `/tmp/mini-dbdir`): set, get and
remove of one key, then `N` inserts (default 100000), printing the entry
counts and logging each shard split.

```
candystore-simulator [--rounds N] [--reps N]
```

runs the shard-fill simulation for row counts 32 to 256 and row widths 32 to
1024, printing average fill at split, collision counts and the expected
collision probability, then times a list lookup per width.

## What this package does not do

The main key-value layer, `RawStore`, keeps everything in memory: nothing it
holds, and so no list or queue, survives the process. It does no sharding,
splitting, compaction or merging, and keeps no statistics; of the `Config`
fields it uses only `hash_seed`, `max_shard_size` and
`max_concurrent_list_ops`. There is no typed-value layer and no
large-value storage. The only file-backed store is `MiniStore`, which is
single-threaded and starts each shard file afresh when it opens a directory.

## Running the tests

```
pip install ".[test]"
pytest
```