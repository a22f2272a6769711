"""Whole-list operations: compaction, discarding, popping from either end and retaining."""

from __future__ import annotations

from collections.abc import Callable

from .lists import (
    IDX_SUFFIX_LEN,
    LIST_KEY_SUFFIX_LEN,
    KVPair,
    ListCompactionParams,
    ListStore,
    _chain_key,
    _idx_bytes,
    _List,
)


def compact_list_if_needed(
    lists: ListStore, list_key, params: ListCompactionParams | None = None
) -> bool:
    """Rewrite the list without holes if it is long and holey enough; return whether it was.

    Not crash-safe.
    """
    if params is None:
        params = ListCompactionParams()
    store = lists.store
    list_ph, full_list_key = lists._make_list_key(list_key)

    with lists.lock_list(list_ph):
        lst = lists._load_list(full_list_key)
        if lst is None:
            return False
        if lst.span_len() < params.min_length:
            return False
        if lst.holes() < lst.span_len() * params.min_holes_ratio:
            return False

        new_idx = lst.tail_idx
        for idx in range(lst.head_idx, lst.tail_idx):
            found = lists._get_from_list_at_index(list_ph, idx, False)
            if found is None:
                continue
            item_ph, full_k, full_v = found

            store.set_raw(_chain_key(list_ph, new_idx), item_ph.to_bytes())
            store.set_raw(full_k, full_v[:-IDX_SUFFIX_LEN] + _idx_bytes(new_idx))
            store.remove_raw(_chain_key(list_ph, idx))
            new_idx += 1

        if new_idx == lst.tail_idx:
            store.remove_raw(full_list_key)
        else:
            compacted = _List(lst.tail_idx, new_idx, new_idx - lst.tail_idx)
            store.set_raw(full_list_key, compacted.to_bytes())
        return True


def discard_list(lists: ListStore, list_key) -> bool:
    """Remove the list and every item in it; return whether the list existed."""
    store = lists.store
    list_ph, full_list_key = lists._make_list_key(list_key)

    with lists.lock_list(list_ph):
        lst = lists._load_list(full_list_key)
        if lst is None:
            return False
        for idx in range(lst.head_idx, lst.tail_idx):
            found = lists._get_from_list_at_index(list_ph, idx, False)
            if found is None:
                continue
            store.remove_raw(_chain_key(list_ph, idx))
            store.remove_raw(found[1])
        store.remove_raw(full_list_key)
        return True


def _pop(lists: ListStore, list_key, forward: bool) -> KVPair | None:
    store = lists.store
    list_ph, full_list_key = lists._make_list_key(list_key)

    with lists.lock_list(list_ph):
        lst = lists._load_list(full_list_key)
        if lst is None:
            return None
        indices = range(lst.head_idx, lst.tail_idx)
        for idx in indices if forward else reversed(indices):
            found = lists._get_from_list_at_index(list_ph, idx, False)
            if found is None:
                continue
            _, full_k, full_v = found

            if forward:
                lst.head_idx = idx + 1
            else:
                lst.tail_idx = idx
            lst.num_items -= 1
            lists._save_list(full_list_key, lst)

            store.remove_raw(_chain_key(list_ph, idx))
            store.remove_raw(full_k)
            return full_k[:-LIST_KEY_SUFFIX_LEN], full_v[:-IDX_SUFFIX_LEN]
        return None


def pop_list_head(lists: ListStore, list_key) -> KVPair | None:
    """Remove and return the first (key, value) of the list, or None if it is empty."""
    return _pop(lists, list_key, True)


def pop_list_tail(lists: ListStore, list_key) -> KVPair | None:
    """Remove and return the last (key, value) of the list, or None if it is empty."""
    return _pop(lists, list_key, False)


def retain_in_list(
    lists: ListStore, list_key, func: Callable[[bytes, bytes], bool]
) -> None:
    """Keep only the items for which ``func(key, value)`` is true, compacting the list.

    The list stays locked throughout, so ``func`` must not operate on the same list.
    Not crash-safe.
    """
    store = lists.store
    list_ph, full_list_key = lists._make_list_key(list_key)

    with lists.lock_list(list_ph):
        lst = lists._load_list(full_list_key)
        if lst is None:
            return
        for idx in range(lst.head_idx, lst.tail_idx):
            lst.head_idx = idx + 1
            found = lists._get_from_list_at_index(list_ph, idx, False)
            if found is None:
                continue
            item_ph, full_k, full_v = found
            val = full_v[:-IDX_SUFFIX_LEN]
            key = full_k[:-LIST_KEY_SUFFIX_LEN]

            store.remove_raw(_chain_key(list_ph, idx))

            if func(key, val):
                new_idx = lst.tail_idx
                lst.tail_idx += 1
                store.set_raw(_chain_key(list_ph, new_idx), item_ph.to_bytes())
                store.set_raw(full_k, val + _idx_bytes(new_idx))
            else:
                lst.num_items -= 1
                store.remove_raw(full_k)

        lists._save_list(full_list_key, lst)