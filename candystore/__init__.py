"""Sharded hash-table store pieces: parted hashing, an in-memory raw store with lists and queues, a minimal file-backed store and a shard-fill simulator."""

__version__ = "0.5.4"