"""Keyed SipHash-2-4 (128-bit) hashing and the parted hash used to place entries."""

from __future__ import annotations

import struct
from dataclasses import dataclass

NUM_ROWS = 64
INVALID_SIG = 0
_FALLBACK_SIG = 0x6052_C9B7

_MASK64 = (1 << 64) - 1


def _rotl(x: int, bits: int) -> int:
    return ((x << bits) | (x >> (64 - bits))) & _MASK64


def _sip_rounds(
    v: tuple[int, int, int, int], count: int
) -> tuple[int, int, int, int]:
    v0, v1, v2, v3 = v
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


def siphash24_128(key: bytes, data: bytes) -> tuple[int, int]:
    """Return the two 64-bit halves (h1, h2) of SipHash-2-4 with 128-bit output."""
    key = bytes(key)
    if len(key) != 16:
        raise ValueError(f"siphash key must be 16 bytes, got {len(key)}")
    data = bytes(data)
    k0, k1 = struct.unpack("<QQ", key)

    v0 = k0 ^ 0x736F6D6570736575
    v1 = k1 ^ 0x646F72616E646F6D ^ 0xEE
    v2 = k0 ^ 0x6C7967656E657261
    v3 = k1 ^ 0x7465646279746573

    length = len(data)
    whole = length - length % 8
    for (m,) in struct.iter_unpack("<Q", data[:whole]):
        v3 ^= m
        v0, v1, v2, v3 = _sip_rounds((v0, v1, v2, v3), 2)
        v0 ^= m

    last = ((length & 0xFF) << 56) | int.from_bytes(data[whole:], "little")
    v3 ^= last
    v0, v1, v2, v3 = _sip_rounds((v0, v1, v2, v3), 2)
    v0 ^= last

    v2 ^= 0xEE
    v0, v1, v2, v3 = _sip_rounds((v0, v1, v2, v3), 4)
    h1 = v0 ^ v1 ^ v2 ^ v3

    v1 ^= 0xDD
    v0, v1, v2, v3 = _sip_rounds((v0, v1, v2, v3), 4)
    h2 = v0 ^ v1 ^ v2 ^ v3

    return h1, h2


@dataclass(frozen=True)
class PartedHash:
    """A 64-bit hash split into shard selector, row selector and signature."""

    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value <= _MASK64:
            raise ValueError(f"parted hash out of range: {self.value:#x}")

    def is_valid(self) -> bool:
        return self.signature() != INVALID_SIG

    def shard_selector(self) -> int:
        return (self.value >> 48) & 0xFFFF

    def row_selector(self) -> int:
        return ((self.value >> 32) & 0xFFFF) % NUM_ROWS

    def signature(self) -> int:
        return self.value & 0xFFFF_FFFF

    def to_bytes(self) -> bytes:
        return self.value.to_bytes(8, "little")

    @classmethod
    def from_bytes(cls, data: bytes) -> "PartedHash":
        data = bytes(data)
        if len(data) != 8:
            raise ValueError(f"parted hash needs 8 bytes, got {len(data)}")
        return cls(int.from_bytes(data, "little"))

    @classmethod
    def _from_hash(cls, h1: int, h2: int) -> "PartedHash":
        sig = h1 & 0xFFFF_FFFF
        if sig == INVALID_SIG:
            sig = h2 & 0xFFFF_FFFF
            if sig == INVALID_SIG:
                sig = (h2 >> 32) & 0xFFFF_FFFF
                if sig == INVALID_SIG:
                    sig = _FALLBACK_SIG
        shard = h1 & 0xFFFF_0000_0000_0000
        row = h1 & 0x0000_FFFF_0000_0000
        return cls(shard | row | sig)


def parted_hash(seed: bytes, buf: bytes) -> PartedHash:
    """Hash ``buf`` with the 16-byte ``seed`` into a :class:`PartedHash`."""
    return PartedHash._from_hash(*siphash24_128(seed, buf))