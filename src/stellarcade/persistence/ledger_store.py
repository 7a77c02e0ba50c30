"""Ledger store: tiered key-value storage with per-entry expiration.

The store holds every record the engine owns, keyed by DataKey. Each
entry carries its own live_until_ledger; writers renew it explicitly
through extend_ttl, mirroring host semantics:

    extend_ttl(key, threshold, extend_to):
        if live_until - current < threshold:
            live_until = current + extend_to

The engine never evicts. Reclaiming un-renewed entries is a host concern
exposed through expired_keys() / evict_expired().

Atomicity: all mutation goes through atomic(keys), which locks exactly
the listed keys (sorted by encoded form, so two operations can never
deadlock), stages writes in a LedgerTransaction, and applies them only
when the block exits normally. An exception anywhere inside the block
discards every staged write. Unrelated keys never contend.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Iterable, Iterator, Optional

from stellarcade.persistence.clock import Clock, LedgerClock
from stellarcade.persistence.keys import DataKey, StorageTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """A stored value plus its expiration metadata."""
    value: Any
    live_until_ledger: int
    last_modified_ledger: int


class KeyLocks:
    """One lock per key, alive only while someone holds or waits on it.

    Each table entry counts its holders and waiters; the entry is dropped
    when the count returns to zero, so the table never outgrows the set
    of keys currently in use. The guard lock only protects the table; it
    is never held while waiting on a key lock.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[DataKey, list[Any]] = {}  # key -> [lock, refcount]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: DataKey) -> threading.Lock:
        with self._guard:
            slot = self._locks.get(key)
            if slot is None:
                slot = [threading.Lock(), 0]
                self._locks[key] = slot
            slot[1] += 1
            return slot[0]

    def _checkin(self, key: DataKey) -> None:
        with self._guard:
            slot = self._locks[key]
            slot[1] -= 1
            if slot[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[DataKey]) -> Iterator[None]:
        ordered = sorted(set(keys), key=lambda k: k.encode())
        acquired: list[tuple[DataKey, threading.Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


class LedgerTransaction:
    """Staged writes over a locked key set.

    Reads see staged writes first, then committed storage. Writes are
    only allowed for keys locked by the enclosing atomic() block.
    """

    def __init__(self, store: LedgerStore, keys: frozenset[DataKey]) -> None:
        self._store = store
        self._keys = keys
        self._staged: dict[DataKey, LedgerEntry] = {}
        self._closed = False

    @property
    def current_ledger(self) -> int:
        return self._store.current_ledger

    def get(self, key: DataKey, default: Any = None) -> Any:
        entry = self.entry(key)
        return default if entry is None else entry.value

    def has(self, key: DataKey) -> bool:
        return self.entry(key) is not None

    def entry(self, key: DataKey) -> Optional[LedgerEntry]:
        staged = self._staged.get(key)
        if staged is not None:
            return staged
        return self._store.entry(key)

    def set(self, key: DataKey, value: Any) -> None:
        """Stage a write. New entries start with zero remaining TTL."""
        self._check_writable(key)
        now = self._store.current_ledger
        existing = self.entry(key)
        live_until = existing.live_until_ledger if existing is not None else now
        self._staged[key] = LedgerEntry(
            value=value,
            live_until_ledger=live_until,
            last_modified_ledger=now,
        )

    def extend_ttl(self, key: DataKey, threshold: int, extend_to: int) -> None:
        """Stage a TTL extension for an existing (or staged) entry."""
        self._check_writable(key)
        existing = self.entry(key)
        if existing is None:
            raise KeyError(f"Cannot extend TTL of missing entry: {key}")
        now = self._store.current_ledger
        if existing.live_until_ledger - now < threshold:
            self._staged[key] = replace(existing, live_until_ledger=now + extend_to)
        elif key not in self._staged:
            self._staged[key] = existing

    def _check_writable(self, key: DataKey) -> None:
        if self._closed:
            raise RuntimeError("Transaction already closed")
        if key not in self._keys:
            raise RuntimeError(f"Write outside locked scope: {key}")

    def _commit(self) -> None:
        self._store._apply(self._staged)
        self._closed = True

    def _discard(self) -> None:
        self._staged.clear()
        self._closed = True


class LedgerStore:
    """In-memory tiered ledger storage.

    Usage:
        store = LedgerStore(LedgerClock())
        with store.atomic([DataKey.badge(1)]) as txn:
            txn.set(DataKey.badge(1), definition)
            txn.extend_ttl(DataKey.badge(1), 518_400, 518_400)

        store.get(DataKey.badge(1))
        store.ttl(DataKey.badge(1))
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or LedgerClock()
        self._entries: dict[DataKey, LedgerEntry] = {}
        self._locks = KeyLocks()
        self._apply_lock = threading.Lock()

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def current_ledger(self) -> int:
        return self._clock.sequence

    @property
    def locks(self) -> KeyLocks:
        return self._locks

    # ------------------------------------------------------------------
    # Reads (lock-free; entries are immutable values)
    # ------------------------------------------------------------------

    def entry(self, key: DataKey) -> Optional[LedgerEntry]:
        return self._entries.get(key)

    def get(self, key: DataKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        return default if entry is None else entry.value

    def has(self, key: DataKey) -> bool:
        return key in self._entries

    def ttl(self, key: DataKey) -> Optional[int]:
        """Remaining ledgers before the entry expires, or None if absent."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.live_until_ledger - self.current_ledger

    def keys(self, tier: Optional[StorageTier] = None) -> list[DataKey]:
        if tier is None:
            return list(self._entries)
        return [k for k in self._entries if k.tier == tier]

    @property
    def count(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Atomic mutation
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self, keys: Iterable[DataKey]) -> Iterator[LedgerTransaction]:
        """Lock keys, yield a transaction, commit on clean exit."""
        key_set = frozenset(keys)
        with self._locks.hold(key_set):
            txn = LedgerTransaction(self, key_set)
            try:
                yield txn
            except BaseException:
                txn._discard()
                raise
            txn._commit()

    def _apply(self, staged: dict[DataKey, LedgerEntry]) -> None:
        with self._apply_lock:
            self._entries.update(staged)

    # ------------------------------------------------------------------
    # Host maintenance
    # ------------------------------------------------------------------

    def expired_keys(self, tier: Optional[StorageTier] = None) -> list[DataKey]:
        now = self.current_ledger
        return [
            k for k, e in self._entries.items()
            if e.live_until_ledger < now and (tier is None or k.tier == tier)
        ]

    def evict_expired(self, tier: Optional[StorageTier] = None) -> list[DataKey]:
        """Drop every entry (optionally of one tier) whose TTL has run out.

        Returns the evicted keys.
        """
        with self._apply_lock:
            expired = self.expired_keys(tier)
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Evicted %d expired ledger entries", len(expired))
        return expired

    # ------------------------------------------------------------------
    # Snapshot support (StateStore)
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[DataKey, LedgerEntry]:
        with self._apply_lock:
            return dict(self._entries)

    def restore(self, entries: dict[DataKey, LedgerEntry]) -> None:
        with self._apply_lock:
            self._entries = dict(entries)
