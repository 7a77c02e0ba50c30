"""Shared machinery for ledger-backed lifecycle operations.

Every mutating operation follows the same shape:

    with store.atomic(keys) as txn:      # lock exactly the touched keys
        ...checks, in fixed order...     # raise LedgerError on failure
        self._write(txn, key, value)     # stage write + renew TTL
        event = self._emit(txn, ...)     # append the one audit event
    self._publish(event)                 # notify subscribers post-commit

Checks raise before anything commits, the event append is the last step
inside the unit, and a failed append discards the staged writes.
"""

from __future__ import annotations

import logging
from typing import Any

from stellarcade.identity.auth import AuthGate
from stellarcade.persistence.event_log import EventKind, EventLog, EventRecord
from stellarcade.persistence.keys import DataKey
from stellarcade.persistence.ledger_store import LedgerStore, LedgerTransaction
from stellarcade.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


class LifecycleEngine:
    """Base class for the domain engines and the configuration store."""

    def __init__(
        self,
        store: LedgerStore,
        event_log: EventLog,
        auth: AuthGate,
        resolver: PolicyResolver,
    ) -> None:
        self._store = store
        self._event_log = event_log
        self._auth = auth
        self._resolver = resolver

    def _renew(self, txn: LedgerTransaction, key: DataKey) -> None:
        ttl = self._resolver.ttl_for_kind(key.kind)
        txn.extend_ttl(key, ttl.threshold_ledgers, ttl.extend_to_ledgers)

    def _write(self, txn: LedgerTransaction, key: DataKey, value: Any) -> None:
        """Stage a write and renew the written entry's TTL."""
        txn.set(key, value)
        self._renew(txn, key)

    def _emit(
        self,
        txn: LedgerTransaction,
        kind: EventKind,
        actor: str,
        payload: dict[str, Any],
    ) -> EventRecord:
        return self._event_log.record(
            kind, actor, payload, ledger_sequence=txn.current_ledger,
        )

    def _publish(self, event: EventRecord) -> None:
        logger.info(
            "%s %s by %s at ledger %d",
            event.event_id, event.event_kind.value, event.actor_id, event.ledger_sequence,
        )
        self._event_log.publish(event)
