"""A minimal single-threaded sharded hash store kept in files with a mapped header."""

from __future__ import annotations

import argparse
import logging
import mmap
import os
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from .config import as_bytes

logger = logging.getLogger(__name__)

WIDTH = 512
ROWS = 64
INVALID_SIG = 0
MAX_SHARD = 0xFFFF + 1

_SIG_FALLBACK = 0x1234_5678
_MASK64 = (1 << 64) - 1
_ZERO_KEY = bytes(16)

_SIG = struct.Struct("<I")
_DESC = struct.Struct("<IHH")
_ROW_SIGS = struct.Struct(f"<{WIDTH}I")
_SIGS_SIZE = WIDTH * _SIG.size
ROW_SIZE = _SIGS_SIZE + WIDTH * _DESC.size
HEADER_SIZE = ROWS * ROW_SIZE


def _rotl(x: int, bits: int) -> int:
    return ((x << bits) | (x >> (64 - bits))) & _MASK64


def _rounds(v0: int, v1: int, v2: int, v3: int, count: int) -> tuple[int, int, int, int]:
    for _ in range(count):
        v0 = (v0 + v1) & _MASK64
        v1 = _rotl(v1, 13) ^ v0
        v0 = _rotl(v0, 32)
        v2 = (v2 + v3) & _MASK64
        v3 = _rotl(v3, 16) ^ v2
        v0 = (v0 + v3) & _MASK64
        v3 = _rotl(v3, 21) ^ v0
        v2 = (v2 + v1) & _MASK64
        v1 = _rotl(v1, 17) ^ v2
        v2 = _rotl(v2, 32)
    return v0, v1, v2, v3


def siphash24_64(data: bytes, key: bytes = _ZERO_KEY) -> int:
    """Return SipHash-2-4 (64-bit output) of ``data`` under the 16-byte ``key``."""
    key = bytes(key)
    if len(key) != 16:
        raise ValueError(f"siphash key must be 16 bytes, got {len(key)}")
    data = bytes(data)
    k0, k1 = struct.unpack("<QQ", key)
    v0 = k0 ^ 0x736F6D6570736575
    v1 = k1 ^ 0x646F72616E646F6D
    v2 = k0 ^ 0x6C7967656E657261
    v3 = k1 ^ 0x7465646279746573

    whole = len(data) - len(data) % 8
    for (m,) in struct.iter_unpack("<Q", data[:whole]):
        v3 ^= m
        v0, v1, v2, v3 = _rounds(v0, v1, v2, v3, 2)
        v0 ^= m

    last = ((len(data) & 0xFF) << 56) | int.from_bytes(data[whole:], "little")
    v3 ^= last
    v0, v1, v2, v3 = _rounds(v0, v1, v2, v3, 2)
    v0 ^= last

    v2 ^= 0xFF
    v0, v1, v2, v3 = _rounds(v0, v1, v2, v3, 4)
    return v0 ^ v1 ^ v2 ^ v3


@dataclass(frozen=True)
class MiniHash:
    """A 64-bit key hash split into shard, row and signature parts."""

    value: int

    @classmethod
    def of_key(cls, key: bytes) -> "MiniHash":
        return cls(siphash24_64(key))

    @property
    def sig(self) -> int:
        low = self.value & 0xFFFF_FFFF
        return _SIG_FALLBACK if low == INVALID_SIG else low

    @property
    def row(self) -> int:
        return (self.value >> 32) % ROWS

    @property
    def shard(self) -> int:
        return self.value >> 48


class Descriptor(NamedTuple):
    offset: int
    klen: int
    vlen: int


class ShardFile:
    """One shard: a header of signature rows mapped into memory, then appended entries."""

    def __init__(self, dirpath: str | os.PathLike, start: int, end: int) -> None:
        self.start = start
        self.end = end
        self.path = Path(dirpath) / f"{start}-{end}"
        self._file = open(self.path, "w+b")
        try:
            self._file.truncate(HEADER_SIZE)
            self._mmap = mmap.mmap(self._file.fileno(), HEADER_SIZE)
        except BaseException:
            self._file.close()
            raise
        self._write_pos = HEADER_SIZE

    def __enter__(self) -> "ShardFile":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if not self._mmap.closed:
            self._mmap.close()
        self._file.close()

    def _sigs(self, row: int) -> tuple[int, ...]:
        return _ROW_SIGS.unpack_from(self._mmap, row * ROW_SIZE)

    def _set_sig(self, row: int, i: int, sig: int) -> None:
        _SIG.pack_into(self._mmap, row * ROW_SIZE + i * _SIG.size, sig)

    def _desc(self, row: int, i: int) -> Descriptor:
        return Descriptor(*_DESC.unpack_from(self._mmap, row * ROW_SIZE + _SIGS_SIZE + i * _DESC.size))

    def _set_desc(self, row: int, i: int, desc: Descriptor) -> None:
        _DESC.pack_into(self._mmap, row * ROW_SIZE + _SIGS_SIZE + i * _DESC.size, *desc)

    def _read(self, desc: Descriptor) -> tuple[bytes, bytes]:
        self._file.seek(desc.offset)
        data = self._file.read(desc.klen + desc.vlen)
        if len(data) != desc.klen + desc.vlen:
            raise OSError(f"short read at offset {desc.offset} in {self.path}")
        return data[: desc.klen], data[desc.klen :]

    def _write(self, key: bytes, val: bytes) -> Descriptor:
        if len(key) > 0xFFFF:
            raise ValueError(f"key too long {len(key)}")
        if len(val) > 0xFFFF:
            raise ValueError(f"value too long {len(val)}")
        offset = self._write_pos
        if offset + len(key) + len(val) > 0xFFFF_FFFF:
            raise OSError(f"shard file {self.path} is full")
        self._file.seek(offset)
        self._file.write(key)
        self._file.write(val)
        self._write_pos += len(key) + len(val)
        return Descriptor(offset, len(key), len(val))

    def _find(self, ph: MiniHash, key: bytes) -> int | None:
        for i, sig in enumerate(self._sigs(ph.row)):
            if sig == ph.sig and self._read(self._desc(ph.row, i))[0] == key:
                return i
        return None

    def get(self, ph: MiniHash, key: bytes) -> bytes | None:
        """Return the value stored under ``key`` or None."""
        i = self._find(ph, key)
        if i is None:
            return None
        return self._read(self._desc(ph.row, i))[1]

    def set(self, ph: MiniHash, key: bytes, val: bytes) -> bool:
        """Store ``key``; return False when its row has no free slot."""
        i = self._find(ph, key)
        if i is not None:
            self._set_desc(ph.row, i, self._write(key, val))
            return True
        try:
            i = self._sigs(ph.row).index(INVALID_SIG)
        except ValueError:
            return False
        self._set_desc(ph.row, i, self._write(key, val))
        self._set_sig(ph.row, i, ph.sig)
        return True

    def remove(self, ph: MiniHash, key: bytes) -> bool:
        """Drop ``key``; return whether it was present."""
        i = self._find(ph, key)
        if i is None:
            return False
        self._set_sig(ph.row, i, INVALID_SIG)
        return True

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        for row in range(ROWS):
            for i, sig in enumerate(self._sigs(row)):
                if sig != INVALID_SIG:
                    yield self._read(self._desc(row, i))


class MiniStore:
    """Single-threaded store that splits a shard in two when one of its rows fills up."""

    def __init__(self, dirpath: str | os.PathLike) -> None:
        self.dirpath = Path(dirpath)
        self.dirpath.mkdir(parents=True, exist_ok=True)
        self.shards: list[ShardFile] = [ShardFile(self.dirpath, 0, MAX_SHARD)]

    def __enter__(self) -> "MiniStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        for shard in self.shards:
            shard.close()

    def _shard_for(self, ph: MiniHash) -> ShardFile:
        return next(shard for shard in self.shards if ph.shard < shard.end)

    def get(self, key) -> bytes | None:
        key = as_bytes(key)
        ph = MiniHash.of_key(key)
        return self._shard_for(ph).get(ph, key)

    def remove(self, key) -> bool:
        key = as_bytes(key)
        ph = MiniHash.of_key(key)
        return self._shard_for(ph).remove(ph, key)

    def set(self, key, val) -> bool:
        key, val = as_bytes(key), as_bytes(val)
        ph = MiniHash.of_key(key)
        while True:
            shard = self._shard_for(ph)
            if shard.set(ph, key, val):
                return True
            self._split(shard)

    def _split(self, shard: ShardFile) -> None:
        start, end = shard.start, shard.end
        mid = (start + end) // 2
        logger.info("splitting [%d, %d) to [%d, %d) and [%d, %d)", start, end, start, mid, mid, end)
        self.shards.remove(shard)

        bottom = ShardFile(self.dirpath, start, mid)
        top = ShardFile(self.dirpath, mid, end)
        for key, val in shard:
            ph = MiniHash.of_key(key)
            (bottom if ph.shard < mid else top).set(ph, key, val)

        shard.close()
        os.remove(shard.path)

        self.shards.extend((bottom, top))
        self.shards.sort(key=lambda s: s.end)

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        for shard in list(self.shards):
            yield from shard


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Exercise the minimal sharded store.")
    parser.add_argument("dirpath", nargs="?", default="/tmp/mini-dbdir")
    parser.add_argument("--count", type=int, default=100_000)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    with MiniStore(args.dirpath) as db:
        db.set(b"hello", b"world")
        print(db.get(b"hello"))
        print(db.get(b"nonexistent"))
        db.remove(b"hello")
        print(db.get(b"hello"))
        print(sum(1 for _ in db))

        for i in range(args.count):
            db.set(i.to_bytes(4, "little"), ((i * 2) & 0xFFFF_FFFF).to_bytes(4, "little"))
        print(sum(1 for _ in db))
    return 0