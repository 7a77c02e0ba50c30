"""Append-only event log: the audit channel of every accepted mutation.

Each successful operation appends exactly one EventRecord. Events are
immutable once written. The log serves as:
1. The audit trail for off-engine verification.
2. The sole channel to collaborators (reward and fee services read it
   through read_from() or subscribe()).

Appends happen inside the operation's atomic unit, so a failed append
aborts the operation and no storage write commits. Subscribers are
notified only after the unit has committed (see publish()).
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    """Classification of engine events."""
    INITIALIZED = "initialized"
    # Badge events
    BADGE_DEFINED = "badge_defined"
    USER_EVALUATED = "user_evaluated"
    BADGE_AWARDED = "badge_awarded"
    # Tournament events
    TOURNAMENT_CREATED = "tournament_created"
    PLAYER_JOINED = "player_joined"
    RESULT_RECORDED = "result_recorded"
    TOURNAMENT_FINALIZED = "tournament_finalized"


EventHandler = Callable[["EventRecord"], None]


class EventLogError(Exception):
    """An append could not be made durable (duplicate ID or write failure)."""


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    ledger_sequence: int,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "ledger_sequence": ledger_sequence,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event in the log.

    The event_hash is computed at creation time over the canonical JSON
    form and re-verified whenever the log is loaded from disk.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    ledger_sequence: int
    actor_id: str
    payload: dict[str, Any]
    event_hash: str  # SHA-256 of canonical JSON

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        ledger_sequence: int = 0,
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Build a record and hash it."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            ledger_sequence=ledger_sequence,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, ledger_sequence, actor_id, payload,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "ledger_sequence": self.ledger_sequence,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL file persistence.

    Events can only be appended, never modified or deleted. Appends are
    serialized by an internal lock so that concurrent operations on
    unrelated entities still produce a totally ordered log.

    Usage:
        log = EventLog(Path("data/events.jsonl"))
        log.subscribe(handler, EventKind.BADGE_AWARDED)
        new_events = log.read_from(cursor)
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()
        self._lock = threading.Lock()
        self._subscribers: list[tuple[Optional[EventKind], EventHandler]] = []

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        The file write happens before the in-memory append, so a failed
        write leaves the log unchanged. Raises EventLogError if event_id is
        a duplicate (replay protection) or the write fails.
        """
        with self._lock:
            self._append_locked(event)

    def record(
        self,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        ledger_sequence: int = 0,
    ) -> EventRecord:
        """Allocate an ID, create and append an event in one step.

        ID allocation and append share the lock, so log order always
        matches ID order.
        """
        with self._lock:
            event = EventRecord.create(
                event_id=f"EVT-{len(self._events) + 1:08d}",
                event_kind=event_kind,
                actor_id=actor_id,
                payload=payload,
                ledger_sequence=ledger_sequence,
            )
            self._append_locked(event)
            return event

    def _append_locked(self, event: EventRecord) -> None:
        if event.event_id in self._event_ids:
            raise EventLogError(f"Duplicate event ID: {event.event_id}")
        if self._storage_path:
            try:
                self._append_to_file(event)
            except OSError as e:
                raise EventLogError(f"Cannot write {self._storage_path}: {e}") from e
        self._events.append(event)
        self._event_ids.add(event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def read_from(self, offset: int) -> list[EventRecord]:
        """Return every event at position >= offset (pull cursor)."""
        if offset < 0:
            raise ValueError("offset must be non-negative")
        return list(self._events[offset:])

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, handler: EventHandler, kind: Optional[EventKind] = None) -> None:
        """Register a post-commit handler, optionally for a single kind."""
        self._subscribers.append((kind, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._subscribers = [(k, h) for k, h in self._subscribers if h is not handler]

    def publish(self, event: EventRecord) -> None:
        """Notify subscribers of a committed event.

        A failing handler is logged and skipped; it never affects the
        operation that produced the event or the other handlers.
        """
        for kind, handler in list(self._subscribers):
            if kind is not None and kind != event.event_kind:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler %r failed on %s (%s)",
                    handler, event.event_id, event.event_kind.value,
                )

    # ------------------------------------------------------------------
    # File persistence
    # ------------------------------------------------------------------

    def _append_to_file(self, event: EventRecord) -> None:
        """One JSON object per line."""
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Rebuild the log from JSONL, re-hashing every line.

        Raises ValueError on a hash mismatch or a repeated event ID.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                event_id = data["event_id"]
                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    data["event_id"],
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["ledger_sequence"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=data["event_id"],
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    ledger_sequence=data["ledger_sequence"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                self._events.append(event)
                self._event_ids.add(event.event_id)
        logger.info("Recovered %d events from %s", len(self._events), path)
