"""Double-ended queues stored as entries of the raw key-value layer."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from .config import QUEUE_ITEM_NAMESPACE, QUEUE_NAMESPACE, RawStore, as_bytes
from .hashing import PartedHash, parted_hash

FIRST_QUEUE_IDX = 0x8000_0000_0000_0000

_QUEUE = struct.Struct("<QQQ")
_IDX = struct.Struct("<Q")


@dataclass
class _Queue:
    head_idx: int  # inclusive
    tail_idx: int  # exclusive
    num_items: int

    def is_empty(self) -> bool:
        return self.head_idx == self.tail_idx

    def to_bytes(self) -> bytes:
        return _QUEUE.pack(self.head_idx, self.tail_idx, self.num_items)

    @classmethod
    def from_bytes(cls, data: bytes) -> "_Queue":
        return cls(*_QUEUE.unpack(data))


class _Pos(Enum):
    HEAD = "head"
    TAIL = "tail"


class QueueStore:
    """Queues with push/pop at both ends, indexed access and iteration, over a raw store."""

    def __init__(self, store: RawStore | None = None) -> None:
        self.store = store if store is not None else RawStore()
        num_locks = 1
        while num_locks < max(1, self.store.config.max_concurrent_list_ops):
            num_locks *= 2
        self._locks = [threading.Lock() for _ in range(num_locks)]
        self._locks_mask = num_locks - 1

    def _lock_for(self, ph: PartedHash) -> threading.Lock:
        return self._locks[ph.signature() & self._locks_mask]

    def _queue_key(self, queue_key: bytes) -> tuple[PartedHash, bytes]:
        return (
            parted_hash(self.store.config.hash_seed, queue_key),
            queue_key + QUEUE_NAMESPACE,
        )

    @staticmethod
    def _item_key(queue_key: bytes, idx: int) -> bytes:
        return queue_key + _IDX.pack(idx) + QUEUE_ITEM_NAMESPACE

    def _save(self, full_queue_key: bytes, queue: _Queue) -> None:
        if queue.is_empty():
            self.store.remove_raw(full_queue_key)
        else:
            self.store.set_raw(full_queue_key, queue.to_bytes())

    def _push(self, queue_key, val, pos: _Pos) -> int:
        queue_key, val = as_bytes(queue_key), as_bytes(val)
        ph, full_key = self._queue_key(queue_key)
        with self._lock_for(ph):
            status = self.store.get_or_create_raw(
                full_key, _Queue(FIRST_QUEUE_IDX, FIRST_QUEUE_IDX + 1, 1).to_bytes()
            )
            if status.was_created():
                item_idx = FIRST_QUEUE_IDX
            else:
                queue = _Queue.from_bytes(status.value())
                if pos is _Pos.HEAD:
                    queue.head_idx -= 1
                    item_idx = queue.head_idx
                else:
                    item_idx = queue.tail_idx
                    queue.tail_idx += 1
                queue.num_items += 1
                self.store.set_raw(full_key, queue.to_bytes())
            self.store.set_raw(self._item_key(queue_key, item_idx), val)
            return item_idx

    def push_to_queue_head(self, queue_key, val) -> int:
        """Push ``val`` at the head of the queue and return its index."""
        return self._push(queue_key, val, _Pos.HEAD)

    def push_to_queue_tail(self, queue_key, val) -> int:
        """Push ``val`` at the tail of the queue and return its index."""
        return self._push(queue_key, val, _Pos.TAIL)

    def _pop(self, queue_key, pos: _Pos) -> tuple[int, bytes] | None:
        queue_key = as_bytes(queue_key)
        ph, full_key = self._queue_key(queue_key)
        with self._lock_for(ph):
            queue_bytes = self.store.get_raw(full_key)
            if queue_bytes is None:
                return None
            queue = _Queue.from_bytes(queue_bytes)
            result = None
            while queue.head_idx < queue.tail_idx:
                if pos is _Pos.HEAD:
                    idx = queue.head_idx
                    queue.head_idx += 1
                else:
                    queue.tail_idx -= 1
                    idx = queue.tail_idx
                val = self.store.remove_raw(self._item_key(queue_key, idx))
                if val is not None:
                    result = (idx, val)
                    queue.num_items -= 1
                    break
            self._save(full_key, queue)
            return result

    def pop_queue_head_with_idx(self, queue_key) -> tuple[int, bytes] | None:
        """Remove and return (index, value) of the head element, or None if empty."""
        return self._pop(queue_key, _Pos.HEAD)

    def pop_queue_head(self, queue_key) -> bytes | None:
        """Remove and return the head element, or None if empty."""
        res = self.pop_queue_head_with_idx(queue_key)
        return None if res is None else res[1]

    def pop_queue_tail_with_idx(self, queue_key) -> tuple[int, bytes] | None:
        """Remove and return (index, value) of the tail element, or None if empty."""
        return self._pop(queue_key, _Pos.TAIL)

    def pop_queue_tail(self, queue_key) -> bytes | None:
        """Remove and return the tail element, or None if empty."""
        res = self.pop_queue_tail_with_idx(queue_key)
        return None if res is None else res[1]

    def remove_from_queue(self, queue_key, idx: int) -> bytes | None:
        """Remove the element at ``idx``, leaving a hole if it is not at an end."""
        queue_key = as_bytes(queue_key)
        ph, full_key = self._queue_key(queue_key)
        with self._lock_for(ph):
            val = self.store.remove_raw(self._item_key(queue_key, idx))
            if val is None:
                return None
            queue_bytes = self.store.get_raw(full_key)
            if queue_bytes is not None:
                queue = _Queue.from_bytes(queue_bytes)
                if queue.head_idx == idx:
                    queue.head_idx += 1
                if queue.tail_idx == idx + 1:
                    queue.tail_idx -= 1
                queue.num_items -= 1
                self._save(full_key, queue)
            return val

    def discard_queue(self, queue_key) -> bool:
        """Drop the queue and all its elements; return whether it existed."""
        queue_key = as_bytes(queue_key)
        ph, full_key = self._queue_key(queue_key)
        with self._lock_for(ph):
            queue_bytes = self.store.get_raw(full_key)
            if queue_bytes is None:
                return False
            queue = _Queue.from_bytes(queue_bytes)
            for idx in range(queue.head_idx, queue.tail_idx):
                self.store.remove_raw(self._item_key(queue_key, idx))
            self.store.remove_raw(full_key)
            return True

    def _fetch_queue(self, queue_key: bytes) -> _Queue | None:
        ph, full_key = self._queue_key(queue_key)
        with self._lock_for(ph):
            queue_bytes = self.store.get_raw(full_key)
        return None if queue_bytes is None else _Queue.from_bytes(queue_bytes)

    def extend_queue(self, queue_key, items: Iterable) -> range:
        """Append ``items`` at the tail (not crash-safe); return the range of new indices."""
        queue_key = as_bytes(queue_key)
        ph, full_key = self._queue_key(queue_key)
        with self._lock_for(ph):
            status = self.store.get_or_create_raw(
                full_key, _Queue(FIRST_QUEUE_IDX, FIRST_QUEUE_IDX, 0).to_bytes()
            )
            queue = _Queue.from_bytes(status.value())
            first_idx = queue.tail_idx
            for item in items:
                self.store.set_raw(self._item_key(queue_key, queue.tail_idx), as_bytes(item))
                queue.tail_idx += 1
                queue.num_items += 1
            self.store.set_raw(full_key, queue.to_bytes())
            return range(first_idx, queue.tail_idx)

    def _iter(self, queue_key, forward: bool) -> Iterator[tuple[int, bytes]]:
        queue_key = as_bytes(queue_key)
        queue = self._fetch_queue(queue_key)
        if queue is None:
            return
        indices = range(queue.head_idx, queue.tail_idx)
        for idx in indices if forward else reversed(indices):
            val = self.store.get_raw(self._item_key(queue_key, idx))
            if val is not None:
                yield idx, val

    def iter_queue(self, queue_key) -> Iterator[tuple[int, bytes]]:
        """Yield (index, value) from head to tail over the indices present at the start."""
        return self._iter(queue_key, True)

    def iter_queue_backwards(self, queue_key) -> Iterator[tuple[int, bytes]]:
        """Yield (index, value) from tail to head over the indices present at the start."""
        return self._iter(queue_key, False)

    def peek_queue_head_with_idx(self, queue_key) -> tuple[int, bytes] | None:
        return next(self.iter_queue(queue_key), None)

    def peek_queue_head(self, queue_key) -> bytes | None:
        res = self.peek_queue_head_with_idx(queue_key)
        return None if res is None else res[1]

    def peek_queue_tail_with_idx(self, queue_key) -> tuple[int, bytes] | None:
        return next(self.iter_queue_backwards(queue_key), None)

    def peek_queue_tail(self, queue_key) -> bytes | None:
        res = self.peek_queue_tail_with_idx(queue_key)
        return None if res is None else res[1]

    def queue_len(self, queue_key) -> int:
        """Number of elements in the queue, 0 if it does not exist."""
        queue = self._fetch_queue(as_bytes(queue_key))
        return 0 if queue is None else queue.num_items

    def queue_range(self, queue_key) -> range:
        """Index range of the queue, or an empty range if it does not exist."""
        queue = self._fetch_queue(as_bytes(queue_key))
        if queue is None:
            return range(FIRST_QUEUE_IDX, FIRST_QUEUE_IDX)
        return range(queue.head_idx, queue.tail_idx)