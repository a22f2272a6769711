"""Configuration, errors, operation statuses and the raw key-value layer."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from .hashing import PartedHash, parted_hash

MAX_TOTAL_KEY_SIZE = 0x3FFF
MAX_TOTAL_VALUE_SIZE = 0xFFFF
NAMESPACING_RESERVED_SIZE = 0xFF
VALUE_RESERVED_SIZE = 0xFF
MAX_KEY_SIZE = MAX_TOTAL_KEY_SIZE - NAMESPACING_RESERVED_SIZE
MAX_VALUE_SIZE = MAX_TOTAL_VALUE_SIZE - VALUE_RESERVED_SIZE

USER_NAMESPACE = b"\x01"
LIST_NAMESPACE = b"\x02"
ITEM_NAMESPACE = b"\x03"
CHAIN_NAMESPACE = 4
QUEUE_NAMESPACE = b"\x05"
QUEUE_ITEM_NAMESPACE = b"\x06"

DEFAULT_HASH_SEED = b"kOYLu0xvq2WtzcKJ"


def as_bytes(data: bytes | bytearray | memoryview | str) -> bytes:
    """Return ``data`` as bytes, encoding text as UTF-8."""
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


@dataclass
class Config:
    """Store options; the defaults suit most uses."""

    max_shard_size: int = 64 * 1024 * 1024
    min_compaction_threshold: int = 8 * 1024 * 1024
    hash_seed: bytes = DEFAULT_HASH_SEED
    expected_number_of_keys: int = 0
    max_concurrent_list_ops: int = 64
    truncate_up: bool = True
    clear_on_unsupported_version: bool = False
    mlock_headers: bool = False
    num_compaction_threads: int = 4

    def __post_init__(self) -> None:
        self.hash_seed = bytes(self.hash_seed)
        if len(self.hash_seed) != 16:
            raise ValueError(f"hash_seed must be 16 bytes, got {len(self.hash_seed)}")


class CandyError(Exception):
    """Base class of the store's own errors."""


class KeyTooLong(CandyError):
    def __init__(self, size: int) -> None:
        super().__init__(f"key too long {size}")
        self.size = size


class ValueTooLong(CandyError):
    def __init__(self, size: int) -> None:
        super().__init__(f"value too long {size}")
        self.size = size


class EntryCannotFitInShard(CandyError):
    def __init__(self, size: int, max_size: int) -> None:
        super().__init__(f"entry too big ({size}) for a single shard file ({max_size})")
        self.size = size
        self.max_size = max_size


@dataclass(frozen=True)
class SetStatus:
    """Result of a set: ``prev_value`` is None when the entry was created."""

    prev_value: bytes | None = None

    def was_created(self) -> bool:
        return self.prev_value is None


class ReplaceOutcome(Enum):
    PREV_VALUE = "prev_value"
    WRONG_VALUE = "wrong_value"
    DOES_NOT_EXIST = "does_not_exist"


@dataclass(frozen=True)
class ReplaceStatus:
    """Result of a replace, with the value that was found where there was one."""

    outcome: ReplaceOutcome
    data: bytes | None = None

    @classmethod
    def prev_value(cls, data: bytes) -> "ReplaceStatus":
        return cls(ReplaceOutcome.PREV_VALUE, data)

    @classmethod
    def wrong_value(cls, data: bytes) -> "ReplaceStatus":
        return cls(ReplaceOutcome.WRONG_VALUE, data)

    @classmethod
    def does_not_exist(cls) -> "ReplaceStatus":
        return cls(ReplaceOutcome.DOES_NOT_EXIST)

    def was_replaced(self) -> bool:
        return self.outcome is ReplaceOutcome.PREV_VALUE


@dataclass(frozen=True)
class GetOrCreateStatus:
    """Result of get-or-create: the value now stored and whether it was just created."""

    created: bool
    data: bytes

    @classmethod
    def created_new(cls, data: bytes) -> "GetOrCreateStatus":
        return cls(True, data)

    @classmethod
    def existing_value(cls, data: bytes) -> "GetOrCreateStatus":
        return cls(False, data)

    def was_created(self) -> bool:
        return self.created

    def already_exists(self) -> bool:
        return not self.created

    def value(self) -> bytes:
        return self.data


class RawStore:
    """Thread-safe in-memory key-value layer addressed by raw byte keys."""

    def __init__(self, config: Config | None = None) -> None:
        self.config = config if config is not None else Config()
        self._lock = threading.RLock()
        self._entries: dict[bytes, bytes] = {}
        self._by_hash: dict[PartedHash, set[bytes]] = {}

    def _hash(self, key: bytes) -> PartedHash:
        return parted_hash(self.config.hash_seed, key)

    def _check(self, key: bytes, val: bytes) -> None:
        if len(key) > MAX_TOTAL_KEY_SIZE:
            raise KeyTooLong(len(key))
        if len(val) > MAX_TOTAL_VALUE_SIZE:
            raise ValueTooLong(len(val))
        total = len(key) + len(val)
        if total > self.config.max_shard_size:
            raise EntryCannotFitInShard(total, self.config.max_shard_size)

    def _store(self, key: bytes, val: bytes) -> None:
        if key not in self._entries:
            self._by_hash.setdefault(self._hash(key), set()).add(key)
        self._entries[key] = val

    def get_raw(self, key) -> bytes | None:
        with self._lock:
            return self._entries.get(as_bytes(key))

    def set_raw(self, key, val) -> SetStatus:
        key, val = as_bytes(key), as_bytes(val)
        self._check(key, val)
        with self._lock:
            prev = self._entries.get(key)
            self._store(key, val)
            return SetStatus(prev)

    def replace_raw(self, key, val, expected_val=None) -> ReplaceStatus:
        key, val = as_bytes(key), as_bytes(val)
        self._check(key, val)
        with self._lock:
            existing = self._entries.get(key)
            if existing is None:
                return ReplaceStatus.does_not_exist()
            if expected_val is not None and as_bytes(expected_val) != existing:
                return ReplaceStatus.wrong_value(existing)
            self._store(key, val)
            return ReplaceStatus.prev_value(existing)

    def remove_raw(self, key) -> bytes | None:
        key = as_bytes(key)
        with self._lock:
            val = self._entries.pop(key, None)
            if val is not None:
                ph = self._hash(key)
                bucket = self._by_hash.get(ph)
                if bucket is not None:
                    bucket.discard(key)
                    if not bucket:
                        del self._by_hash[ph]
            return val

    def get_or_create_raw(self, key, default_val) -> GetOrCreateStatus:
        key, default_val = as_bytes(key), as_bytes(default_val)
        self._check(key, default_val)
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return GetOrCreateStatus.existing_value(existing)
            self._store(key, default_val)
            return GetOrCreateStatus.created_new(default_val)

    def get_by_hash(self, ph: PartedHash) -> list[tuple[bytes, bytes]]:
        """Return every (key, value) whose key hashes to ``ph``."""
        with self._lock:
            return [(k, self._entries[k]) for k in sorted(self._by_hash.get(ph, ()))]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._by_hash.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        with self._lock:
            snapshot = list(self._entries.items())
        return iter(snapshot)