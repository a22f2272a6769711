"""Ordered collections ("lists") of keyed items stored over the raw key-value layer."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from .config import (
    CHAIN_NAMESPACE,
    ITEM_NAMESPACE,
    LIST_NAMESPACE,
    GetOrCreateStatus,
    RawStore,
    ReplaceStatus,
    SetStatus,
    as_bytes,
)
from .hashing import PartedHash, parted_hash

FIRST_LIST_IDX = 0x8000_0000_0000_0000

_LIST = struct.Struct("<QQQ")
_CHAIN = struct.Struct("<QQB")
_IDX = struct.Struct("<Q")

IDX_SUFFIX_LEN = _IDX.size
LIST_KEY_SUFFIX_LEN = 8 + len(ITEM_NAMESPACE)

KVPair = tuple[bytes, bytes]


@dataclass
class _List:
    head_idx: int  # inclusive
    tail_idx: int  # exclusive
    num_items: int

    def span_len(self) -> int:
        return self.tail_idx - self.head_idx

    def holes(self) -> int:
        return self.span_len() - self.num_items

    def is_empty(self) -> bool:
        return self.head_idx == self.tail_idx

    def to_bytes(self) -> bytes:
        return _LIST.pack(self.head_idx, self.tail_idx, self.num_items)

    @classmethod
    def from_bytes(cls, data: bytes) -> "_List":
        return cls(*_LIST.unpack(data))

    def __repr__(self) -> str:
        return f"List(0x{self.head_idx:016x}..0x{self.tail_idx:016x} items={self.num_items})"


def _chain_key(list_ph: PartedHash, idx: int) -> bytes:
    return _CHAIN.pack(list_ph.value, idx, CHAIN_NAMESPACE)


def _idx_bytes(idx: int) -> bytes:
    return _IDX.pack(idx)


@dataclass(frozen=True)
class ListCompactionParams:
    """When to compact a list: minimal span length and minimal ratio of holes to span."""

    min_length: int = 100
    min_holes_ratio: float = 0.25


class _InsertMode(Enum):
    SET = "set"
    GET_OR_CREATE = "get_or_create"
    REPLACE = "replace"


class ListStore:
    """Lists of (item key, value) pairs kept in insertion order, over a raw store."""

    def __init__(self, store: RawStore | None = None) -> None:
        self.store = store if store is not None else RawStore()
        num_locks = 1
        while num_locks < max(1, self.store.config.max_concurrent_list_ops):
            num_locks *= 2
        self._locks = [threading.Lock() for _ in range(num_locks)]
        self._locks_mask = num_locks - 1

    def lock_list(self, list_ph: PartedHash) -> threading.Lock:
        """Return the keyed lock guarding the list with hash ``list_ph``."""
        return self._locks[list_ph.signature() & self._locks_mask]

    def _make_list_key(self, list_key) -> tuple[PartedHash, bytes]:
        full = as_bytes(list_key) + LIST_NAMESPACE
        return parted_hash(self.store.config.hash_seed, full), full

    def _make_item_key(self, list_ph: PartedHash, item_key) -> tuple[PartedHash, bytes]:
        full = as_bytes(item_key) + list_ph.to_bytes() + ITEM_NAMESPACE
        return parted_hash(self.store.config.hash_seed, full), full

    def _load_list(self, full_list_key: bytes) -> _List | None:
        data = self.store.get_raw(full_list_key)
        return None if data is None else _List.from_bytes(data)

    def _save_list(self, full_list_key: bytes, lst: _List) -> None:
        if lst.is_empty():
            self.store.remove_raw(full_list_key)
        else:
            self.store.set_raw(full_list_key, lst.to_bytes())

    def _get_from_list_at_index(
        self, list_ph: PartedHash, idx: int, truncate: bool
    ) -> tuple[PartedHash, bytes, bytes] | None:
        """Find the item at ``idx``: (item hash, key, value), stripped of suffixes if ``truncate``."""
        item_ph_bytes = self.store.get_raw(_chain_key(list_ph, idx))
        if item_ph_bytes is None:
            return None
        item_ph = PartedHash.from_bytes(item_ph_bytes)
        suffix = list_ph.to_bytes() + ITEM_NAMESPACE
        idx_suffix = _idx_bytes(idx)
        for k, v in self.store.get_by_hash(item_ph):
            if k.endswith(suffix) and v.endswith(idx_suffix):
                if truncate:
                    k = k[: len(k) - len(suffix)]
                    v = v[: len(v) - IDX_SUFFIX_LEN]
                return item_ph, k, v
        return None

    def _insert(self, list_key, item_key, val, mode: _InsertMode, expected_val=None):
        list_ph, full_list_key = self._make_list_key(list_key)
        item_ph, full_item_key = self._make_item_key(list_ph, item_key)
        val = as_bytes(val)

        with self.lock_list(list_ph):
            existing = self.store.get_raw(full_item_key)
            if existing is not None:
                existing_val = existing[:-IDX_SUFFIX_LEN]
                idx_suffix = existing[-IDX_SUFFIX_LEN:]
                if mode is _InsertMode.GET_OR_CREATE:
                    return GetOrCreateStatus.existing_value(existing_val)
                if (
                    mode is _InsertMode.REPLACE
                    and expected_val is not None
                    and as_bytes(expected_val) != existing_val
                ):
                    return ReplaceStatus.wrong_value(existing_val)
                self.store.replace_raw(full_item_key, val + idx_suffix, None)
                if mode is _InsertMode.SET:
                    return SetStatus(existing_val)
                return ReplaceStatus.prev_value(existing_val)

            if mode is _InsertMode.REPLACE:
                return ReplaceStatus.does_not_exist()

            status = self.store.get_or_create_raw(
                full_list_key, _List(FIRST_LIST_IDX, FIRST_LIST_IDX + 1, 1).to_bytes()
            )
            if status.was_created():
                idx = FIRST_LIST_IDX
            else:
                lst = _List.from_bytes(status.value())
                idx = lst.tail_idx
                lst.tail_idx += 1
                lst.num_items += 1
                self.store.set_raw(full_list_key, lst.to_bytes())

            self.store.set_raw(_chain_key(list_ph, idx), item_ph.to_bytes())
            self.store.set_raw(full_item_key, val + _idx_bytes(idx))

        if mode is _InsertMode.SET:
            return SetStatus(None)
        return GetOrCreateStatus.created_new(val)

    def set_in_list(self, list_key, item_key, val) -> SetStatus:
        """Insert or update an item of a list, keeping its position if it existed."""
        return self._insert(list_key, item_key, val, _InsertMode.SET)

    def set_in_list_promoting(self, list_key, item_key, val) -> SetStatus:
        """Like :meth:`set_in_list` but move the item to the tail (not crash-safe)."""
        self.remove_from_list(list_key, item_key)
        return self._insert(list_key, item_key, val, _InsertMode.SET)

    def replace_in_list(self, list_key, item_key, val, expected_val=None) -> ReplaceStatus:
        """Update an existing item only; never creates it."""
        return self._insert(list_key, item_key, val, _InsertMode.REPLACE, expected_val)

    def get_or_create_in_list(self, list_key, item_key, default_val) -> GetOrCreateStatus:
        """Return the item's value, creating it with ``default_val`` if missing."""
        return self._insert(list_key, item_key, default_val, _InsertMode.GET_OR_CREATE)

    def get_from_list(self, list_key, item_key) -> bytes | None:
        """Return the value of an item of a list, or None."""
        list_ph, _ = self._make_list_key(list_key)
        _, full_item_key = self._make_item_key(list_ph, item_key)
        val = self.store.get_raw(full_item_key)
        return None if val is None else val[:-IDX_SUFFIX_LEN]

    def remove_from_list(self, list_key, item_key) -> bytes | None:
        """Remove an item from anywhere in a list; a middle item leaves a hole."""
        list_ph, full_list_key = self._make_list_key(list_key)
        _, full_item_key = self._make_item_key(list_ph, item_key)

        with self.lock_list(list_ph):
            existing = self.store.get_raw(full_item_key)
            if existing is None:
                return None
            (item_idx,) = _IDX.unpack(existing[-IDX_SUFFIX_LEN:])
            existing_val = existing[:-IDX_SUFFIX_LEN]

            lst = self._load_list(full_list_key)
            if lst is not None:
                lst.num_items -= 1
                if lst.head_idx == item_idx:
                    lst.head_idx += 1
                elif lst.tail_idx == item_idx + 1:
                    lst.tail_idx -= 1
                self._save_list(full_list_key, lst)

            self.store.remove_raw(_chain_key(list_ph, item_idx))
            self.store.remove_raw(full_item_key)
            return existing_val

    def _iter(self, list_key, forward: bool) -> Iterator[KVPair]:
        list_ph, full_list_key = self._make_list_key(list_key)
        with self.lock_list(list_ph):
            lst = self._load_list(full_list_key)
        if lst is None:
            return
        indices = range(lst.head_idx, lst.tail_idx)
        for idx in indices if forward else reversed(indices):
            found = self._get_from_list_at_index(list_ph, idx, True)
            if found is not None:
                yield found[1], found[2]

    def iter_list(self, list_key) -> Iterator[KVPair]:
        """Yield (item key, value) pairs from head to tail, skipping holes."""
        return self._iter(list_key, True)

    def iter_list_backwards(self, list_key) -> Iterator[KVPair]:
        """Yield (item key, value) pairs from tail to head, skipping holes."""
        return self._iter(list_key, False)

    def peek_list_head(self, list_key) -> KVPair | None:
        """Return the first item of the list, or None if it is empty."""
        return next(self.iter_list(list_key), None)

    def peek_list_tail(self, list_key) -> KVPair | None:
        """Return the last item of the list, or None if it is empty."""
        return next(self.iter_list_backwards(list_key), None)

    def list_len(self, list_key) -> int:
        """Number of items in the list, 0 if it does not exist."""
        _, full_list_key = self._make_list_key(list_key)
        lst = self._load_list(full_list_key)
        return 0 if lst is None else lst.num_items