"""Ledger storage, event log and snapshot persistence."""

from stellarcade.persistence.clock import Clock, LedgerClock, WallClockLedger
from stellarcade.persistence.event_log import EventKind, EventLog, EventRecord
from stellarcade.persistence.keys import DataKey, KeyKind, StorageTier
from stellarcade.persistence.ledger_store import LedgerEntry, LedgerStore, LedgerTransaction

__all__ = [
    "Clock",
    "DataKey",
    "EventKind",
    "EventLog",
    "EventRecord",
    "KeyKind",
    "LedgerClock",
    "LedgerEntry",
    "LedgerStore",
    "LedgerTransaction",
    "StorageTier",
    "WallClockLedger",
]
