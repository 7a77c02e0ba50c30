"""Tournament engine.

Operations and their check order:

    create_tournament    config -> admin -> entry_fee >= 0 -> id unused
    join_tournament      exists -> active -> not joined -> player signed
    record_result        config -> admin -> exists -> active -> player joined
    finalize_tournament  config -> admin -> exists -> not finalized

Joining needs no deployment configuration: the player authorizes their
own participation. Participation markers are never cleared; scores may
be overwritten by the administrator while the tournament is active.

Every operation that depends on a tournament's status locks the
tournament record alongside the keys it writes, so a join or result
cannot commit after a concurrent finalization.
"""

from __future__ import annotations

from typing import Any, Optional

from stellarcade.crypto.commitment import parse_commitment
from stellarcade.engine.lifecycle import LifecycleEngine
from stellarcade.errors import (
    AlreadyExistsError,
    AlreadyJoinedError,
    InvalidAmountError,
    NotActiveError,
    NotFoundError,
    NotJoinedError,
)
from stellarcade.identity.auth import AuthProof, normalize_address
from stellarcade.models.tournament import TournamentRecord, TournamentStatus
from stellarcade.models.types import require_i128, require_u64
from stellarcade.persistence.event_log import EventKind
from stellarcade.persistence.keys import DataKey
from stellarcade.persistence.ledger_store import LedgerTransaction
from stellarcade.tournaments.state_machine import TournamentStateMachine


class TournamentEngine(LifecycleEngine):
    """Creates tournaments, admits players, records scores, finalizes."""

    @staticmethod
    def _require_tournament(txn: LedgerTransaction, tournament_id: int) -> TournamentRecord:
        record: Optional[TournamentRecord] = txn.get(DataKey.tournament(tournament_id))
        if record is None:
            raise NotFoundError(f"Tournament {tournament_id} not found")
        return record

    def create_tournament(
        self,
        admin: str,
        tournament_id: int,
        rules_hash: Any,
        entry_fee: int,
        proof: Optional[AuthProof] = None,
    ) -> TournamentRecord:
        admin = normalize_address(admin, "admin")
        tournament_id = require_u64(tournament_id, "tournament_id")
        rules = parse_commitment(rules_hash, "rules_hash")
        entry_fee = require_i128(entry_fee, "entry_fee")

        args = {"tournament_id": tournament_id, "rules_hash": rules, "entry_fee": entry_fee}
        key = DataKey.tournament(tournament_id)
        with self._store.atomic([key, *self._auth.scope_keys(admin, proof)]) as txn:
            self._auth.require_admin(txn, admin, "create_tournament", args, proof)
            if entry_fee < 0:
                raise InvalidAmountError(f"Entry fee must be non-negative, got {entry_fee}")
            if txn.has(key):
                raise AlreadyExistsError(f"Tournament {tournament_id} already exists")

            record = TournamentRecord(
                tournament_id=tournament_id,
                rules_hash=rules,
                entry_fee=entry_fee,
            )
            self._write(txn, key, record)
            event = self._emit(txn, EventKind.TOURNAMENT_CREATED, admin, {
                "operation": "create_tournament",
                "tournament_id": tournament_id,
                "rules_hash": rules.hex(),
                "amount": entry_fee,
            })
        self._publish(event)
        return record

    def join_tournament(
        self,
        player: str,
        tournament_id: int,
        proof: Optional[AuthProof] = None,
    ) -> TournamentRecord:
        player = normalize_address(player, "player")
        tournament_id = require_u64(tournament_id, "tournament_id")

        args = {"tournament_id": tournament_id}
        joined_key = DataKey.player_joined(tournament_id, player)
        keys = [
            DataKey.tournament(tournament_id),
            joined_key,
            *self._auth.scope_keys(player, proof),
        ]
        with self._store.atomic(keys) as txn:
            record = self._require_tournament(txn, tournament_id)
            if not record.is_active:
                raise NotActiveError(f"Tournament {tournament_id} is not active")
            if txn.has(joined_key):
                raise AlreadyJoinedError(f"{player} already joined tournament {tournament_id}")
            self._auth.require_auth(txn, player, "join_tournament", args, proof)

            self._write(txn, joined_key, True)
            event = self._emit(txn, EventKind.PLAYER_JOINED, player, {
                "operation": "join_tournament",
                "tournament_id": tournament_id,
                "subject": player,
                "amount": record.entry_fee,
            })
        self._publish(event)
        return record

    def record_result(
        self,
        admin: str,
        tournament_id: int,
        player: str,
        score: int,
        proof: Optional[AuthProof] = None,
    ) -> None:
        admin = normalize_address(admin, "admin")
        tournament_id = require_u64(tournament_id, "tournament_id")
        player = normalize_address(player, "player")
        score = require_u64(score, "score")

        args = {"tournament_id": tournament_id, "player": player, "score": score}
        score_key = DataKey.player_score(tournament_id, player)
        keys = [
            DataKey.tournament(tournament_id),
            score_key,
            *self._auth.scope_keys(admin, proof),
        ]
        with self._store.atomic(keys) as txn:
            self._auth.require_admin(txn, admin, "record_result", args, proof)
            record = self._require_tournament(txn, tournament_id)
            if not record.is_active:
                raise NotActiveError(f"Tournament {tournament_id} is not active")
            if not txn.has(DataKey.player_joined(tournament_id, player)):
                raise NotJoinedError(f"{player} has not joined tournament {tournament_id}")

            self._write(txn, score_key, score)
            event = self._emit(txn, EventKind.RESULT_RECORDED, admin, {
                "operation": "record_result",
                "tournament_id": tournament_id,
                "subject": player,
                "score": score,
            })
        self._publish(event)

    def finalize_tournament(
        self,
        admin: str,
        tournament_id: int,
        proof: Optional[AuthProof] = None,
    ) -> TournamentRecord:
        admin = normalize_address(admin, "admin")
        tournament_id = require_u64(tournament_id, "tournament_id")

        args = {"tournament_id": tournament_id}
        key = DataKey.tournament(tournament_id)
        with self._store.atomic([key, *self._auth.scope_keys(admin, proof)]) as txn:
            self._auth.require_admin(txn, admin, "finalize_tournament", args, proof)
            record = self._require_tournament(txn, tournament_id)
            finalized = TournamentStateMachine.apply_transition(record, TournamentStatus.FINALIZED)
            self._write(txn, key, finalized)
            event = self._emit(txn, EventKind.TOURNAMENT_FINALIZED, admin, {
                "operation": "finalize_tournament",
                "tournament_id": tournament_id,
            })
        self._publish(event)
        return finalized

    # ------------------------------------------------------------------
    # Reads (no authorization, no initialization check)
    # ------------------------------------------------------------------

    def get_tournament(self, tournament_id: int) -> Optional[TournamentRecord]:
        tournament_id = require_u64(tournament_id, "tournament_id")
        return self._store.get(DataKey.tournament(tournament_id))

    def get_score(self, tournament_id: int, player: str) -> Optional[int]:
        tournament_id = require_u64(tournament_id, "tournament_id")
        player = normalize_address(player, "player")
        return self._store.get(DataKey.player_score(tournament_id, player))

    def is_joined(self, tournament_id: int, player: str) -> bool:
        tournament_id = require_u64(tournament_id, "tournament_id")
        player = normalize_address(player, "player")
        return bool(self._store.get(DataKey.player_joined(tournament_id, player), False))
