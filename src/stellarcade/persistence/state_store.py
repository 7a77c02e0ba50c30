"""JSON file persistence for the ledger snapshot.

One document holds every ledger entry with its TTL metadata:

    {
      "version": 1,
      "entries": [
        {"key": "badge:7", "value": {...},
         "live_until_ledger": 518401, "last_modified_ledger": 1},
        ...
      ]
    }

Values are encoded per key kind. Writes go to a sibling temp file and
are renamed into place so a crash never leaves a half-written snapshot.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

from stellarcade.models.badge import BadgeDefinition
from stellarcade.models.config import DeploymentConfig
from stellarcade.models.tournament import TournamentRecord, TournamentStatus
from stellarcade.persistence.keys import DataKey, KeyKind
from stellarcade.persistence.ledger_store import LedgerEntry

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def _encode_config(value: DeploymentConfig) -> dict[str, Any]:
    return {
        "admin": value.admin,
        "collaborators": dict(value.collaborators),
        "initialized_ledger": value.initialized_ledger,
    }


def _decode_config(raw: dict[str, Any]) -> DeploymentConfig:
    return DeploymentConfig(
        admin=raw["admin"],
        collaborators=dict(raw.get("collaborators", {})),
        initialized_ledger=raw.get("initialized_ledger", 0),
    )


def _encode_badge(value: BadgeDefinition) -> dict[str, Any]:
    return {
        "badge_id": value.badge_id,
        "criteria_hash": value.criteria_hash.hex(),
        "reward": value.reward,
    }


def _decode_badge(raw: dict[str, Any]) -> BadgeDefinition:
    return BadgeDefinition(
        badge_id=raw["badge_id"],
        criteria_hash=bytes.fromhex(raw["criteria_hash"]),
        reward=raw["reward"],
    )


def _encode_tournament(value: TournamentRecord) -> dict[str, Any]:
    return {
        "tournament_id": value.tournament_id,
        "rules_hash": value.rules_hash.hex(),
        "entry_fee": value.entry_fee,
        "status": value.status.value,
    }


def _decode_tournament(raw: dict[str, Any]) -> TournamentRecord:
    return TournamentRecord(
        tournament_id=raw["tournament_id"],
        rules_hash=bytes.fromhex(raw["rules_hash"]),
        entry_fee=raw["entry_fee"],
        status=TournamentStatus(raw["status"]),
    )


def _identity(value: Any) -> Any:
    return value


_CODECS: dict[KeyKind, tuple[Callable[[Any], Any], Callable[[Any], Any]]] = {
    KeyKind.CONFIG: (_encode_config, _decode_config),
    KeyKind.BADGE: (_encode_badge, _decode_badge),
    KeyKind.USER_BADGES: (list, tuple),
    KeyKind.TOURNAMENT: (_encode_tournament, _decode_tournament),
    KeyKind.PLAYER_JOINED: (bool, bool),
    KeyKind.PLAYER_SCORE: (int, int),
    KeyKind.AUTH_NONCE: (_identity, _identity),
}


class StateStore:
    """Save and load ledger snapshots as a single JSON document.

    Usage:
        store = StateStore(Path("data/state.json"))
        store.save_ledger(ledger.snapshot())
        ledger.restore(store.load_ledger())
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path

    @property
    def path(self) -> Path:
        return self._path

    def save_ledger(self, entries: dict[DataKey, LedgerEntry]) -> None:
        """Write the full snapshot. Raises OSError on I/O failure."""
        rows = []
        for key in sorted(entries, key=lambda k: k.encode()):
            entry = entries[key]
            encode, _ = _CODECS[key.kind]
            rows.append({
                "key": key.encode(),
                "value": encode(entry.value),
                "live_until_ledger": entry.live_until_ledger,
                "last_modified_ledger": entry.last_modified_ledger,
            })
        document = {"version": SNAPSHOT_VERSION, "entries": rows}

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(document, f, sort_keys=True, ensure_ascii=False, indent=1)
        os.replace(tmp_path, self._path)

    def load_ledger(self) -> dict[DataKey, LedgerEntry]:
        """Read the snapshot; an absent file is an empty ledger."""
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as f:
            document = json.load(f)

        version = document.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {version}")

        entries: dict[DataKey, LedgerEntry] = {}
        for row in document.get("entries", []):
            key = DataKey.decode(row["key"])
            if key in entries:
                raise ValueError(f"Duplicate key in snapshot: {row['key']}")
            _, decode = _CODECS[key.kind]
            entries[key] = LedgerEntry(
                value=decode(row["value"]),
                live_until_ledger=row["live_until_ledger"],
                last_modified_ledger=row["last_modified_ledger"],
            )
        logger.info("Loaded %d ledger entries from %s", len(entries), self._path)
        return entries
