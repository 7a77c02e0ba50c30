"""StellarCade service: unified facade for the ledger engine.

This is the primary interface for programmatic access. It wires the
subsystems together:
- Deployment bootstrap (one-time configuration)
- Achievement badges (define, evaluate, award, query)
- Tournaments (create, join, record results, finalize, query)
- Persistence (ledger snapshot, append-only event log)

Every mutating operation returns a ServiceResult. Engine errors become
failed results carrying the error code; nothing is written and no event
is emitted for a failed operation. After a successful operation the
ledger snapshot is persisted; a persistence failure at that point never
rolls back (the audit event is already committed) and is reported as a
warning instead.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from stellarcade import __version__
from stellarcade.badges.engine import BadgeEngine
from stellarcade.compensation.payouts import PayoutDispatcher, PayoutRail
from stellarcade.engine.config_store import ConfigStore
from stellarcade.errors import ErrorCode, LedgerError
from stellarcade.identity.auth import AuthGate, AuthProof, SignatureVerifier, normalize_address
from stellarcade.models.badge import BadgeDefinition
from stellarcade.models.config import DeploymentConfig
from stellarcade.models.tournament import TournamentRecord
from stellarcade.persistence.clock import Clock, LedgerClock
from stellarcade.persistence.event_log import EventLog, EventLogError
from stellarcade.persistence.keys import DataKey, StorageTier
from stellarcade.persistence.ledger_store import LedgerStore
from stellarcade.persistence.state_store import StateStore
from stellarcade.policy.resolver import PolicyResolver
from stellarcade.tournaments.engine import TournamentEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[ErrorCode] = None


class ArcadeService:
    """Unified ledger engine facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = ArcadeService(resolver)

        service.init(admin, {"reward": reward_addr, "fee": fee_addr}, proof)
        service.define_badge(admin, 1, criteria_hash, 100, proof)
        service.award_badge(admin, user, 1, proof)
        service.badges_of(user)  # [1]

    Persistence (optional):
        service = ArcadeService(resolver, event_log=log, state_store=store)
        # The ledger snapshot is loaded on construction and saved after
        # every successful mutation.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        clock: Optional[Clock] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
        verifier: Optional[SignatureVerifier] = None,
    ) -> None:
        self._resolver = resolver
        self._clock = clock or LedgerClock()
        self._store = LedgerStore(self._clock)
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store
        if state_store is not None:
            self._store.restore(state_store.load_ledger())

        self._auth = AuthGate(resolver, verifier)
        engine_args = (self._store, self._event_log, self._auth, resolver)
        self._config = ConfigStore(*engine_args)
        self._badges = BadgeEngine(*engine_args)
        self._tournaments = TournamentEngine(*engine_args)

        self._persist_lock = threading.Lock()
        # Set when a snapshot write fails after its audit event committed.
        # In-memory state stays authoritative; the file is stale until the
        # next successful save.
        self._persistence_degraded: bool = False

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def auth_domain(self) -> str:
        return self._auth.verifier.domain

    @property
    def proof_validity_ledgers(self) -> int:
        return self._auth.validity_ledgers

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def init(
        self,
        admin: str,
        collaborators: Optional[dict[str, str]] = None,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        """Bootstrap the deployment configuration (once)."""
        def run() -> dict[str, Any]:
            config = self._config.bootstrap(admin, collaborators, proof)
            return {"admin": config.admin, "collaborators": dict(config.collaborators)}
        return self._execute("init", run)

    def is_initialized(self) -> bool:
        return self._config.is_initialized()

    def get_config(self) -> Optional[DeploymentConfig]:
        return self._store.get(DataKey.config())

    # ------------------------------------------------------------------
    # Achievement badges
    # ------------------------------------------------------------------

    def define_badge(
        self,
        admin: str,
        badge_id: int,
        criteria_hash: Any,
        reward: int,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        def run() -> dict[str, Any]:
            definition = self._badges.define_badge(admin, badge_id, criteria_hash, reward, proof)
            return {
                "badge_id": definition.badge_id,
                "criteria_hash": definition.criteria_hex,
                "reward": definition.reward,
            }
        return self._execute("define_badge", run)

    def evaluate_user(
        self,
        admin: str,
        user: str,
        badge_id: int,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        def run() -> dict[str, Any]:
            self._badges.evaluate_user(admin, user, badge_id, proof)
            return {"badge_id": badge_id, "user": normalize_address(user, "user")}
        return self._execute("evaluate_user", run)

    def award_badge(
        self,
        admin: str,
        user: str,
        badge_id: int,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        def run() -> dict[str, Any]:
            award = self._badges.award_badge(admin, user, badge_id, proof)
            return {
                "badge_id": award.badge_id,
                "user": award.user,
                "reward": award.reward,
                "badges": list(award.badges_held),
            }
        return self._execute("award_badge", run)

    def badges_of(self, user: str) -> list[int]:
        return self._badges.badges_of(user)

    def get_badge(self, badge_id: int) -> Optional[BadgeDefinition]:
        return self._badges.get_badge(badge_id)

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    def create_tournament(
        self,
        admin: str,
        tournament_id: int,
        rules_hash: Any,
        entry_fee: int,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        def run() -> dict[str, Any]:
            record = self._tournaments.create_tournament(
                admin, tournament_id, rules_hash, entry_fee, proof,
            )
            return _tournament_data(record)
        return self._execute("create_tournament", run)

    def join_tournament(
        self,
        player: str,
        tournament_id: int,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        def run() -> dict[str, Any]:
            record = self._tournaments.join_tournament(player, tournament_id, proof)
            return {
                "tournament_id": record.tournament_id,
                "player": normalize_address(player, "player"),
                "entry_fee": record.entry_fee,
            }
        return self._execute("join_tournament", run)

    def record_result(
        self,
        admin: str,
        tournament_id: int,
        player: str,
        score: int,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        def run() -> dict[str, Any]:
            self._tournaments.record_result(admin, tournament_id, player, score, proof)
            return {
                "tournament_id": tournament_id,
                "player": normalize_address(player, "player"),
                "score": score,
            }
        return self._execute("record_result", run)

    def finalize_tournament(
        self,
        admin: str,
        tournament_id: int,
        proof: Optional[AuthProof] = None,
    ) -> ServiceResult:
        def run() -> dict[str, Any]:
            record = self._tournaments.finalize_tournament(admin, tournament_id, proof)
            return _tournament_data(record)
        return self._execute("finalize_tournament", run)

    def get_tournament(self, tournament_id: int) -> Optional[TournamentRecord]:
        return self._tournaments.get_tournament(tournament_id)

    def get_score(self, tournament_id: int, player: str) -> Optional[int]:
        return self._tournaments.get_score(tournament_id, player)

    def is_joined(self, tournament_id: int, player: str) -> bool:
        return self._tournaments.is_joined(tournament_id, player)

    # ------------------------------------------------------------------
    # Collaborators and maintenance
    # ------------------------------------------------------------------

    def payout_dispatcher(self, rail: PayoutRail, cursor: int = 0) -> PayoutDispatcher:
        return PayoutDispatcher(self._event_log, self._config, self._resolver, rail, cursor)

    def evict_expired(self, tier: Optional[StorageTier] = None) -> list[DataKey]:
        """Host maintenance: drop entries whose TTL has run out."""
        evicted = self._store.evict_expired(tier)
        if evicted:
            self._safe_persist_post_audit()
        return evicted

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        config = self.get_config()
        return {
            "version": __version__,
            "initialized": config is not None,
            "admin": config.admin if config else None,
            "ledger_sequence": self._clock.sequence,
            "entries": {
                tier.value: len(self._store.keys(tier)) for tier in StorageTier
            },
            "expired_entries": len(self._store.expired_keys()),
            "events": self._event_log.count,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(self, operation: str, run: Callable[[], dict[str, Any]]) -> ServiceResult:
        """Run one engine operation and convert its outcome.

        LedgerError is a rejected operation. EventLogError means the audit
        append failed; either way the atomic unit has already discarded
        its writes. Anything else is a bug and propagates.
        """
        try:
            data = run()
        except LedgerError as e:
            logger.warning("%s rejected [%s]: %s", operation, e.code.value, e.message)
            return ServiceResult(success=False, errors=[e.message], error_code=e.code)
        except EventLogError as e:
            logger.warning("%s aborted: event log failure: %s", operation, e)
            return ServiceResult(success=False, errors=[f"Event log failure: {e}"])

        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def _persist_state(self) -> None:
        """Persist the ledger snapshot (if a state store is wired).

        Snapshot and save happen under one lock so a later save never
        writes an older snapshot.
        """
        if self._state_store is None:
            return
        with self._persist_lock:
            self._state_store.save_ledger(self._store.snapshot())

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been committed.

        Must not roll back: the audit trail is already durable. On
        failure, sets the degraded flag and returns a warning string.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.warning("Persistence degraded: %s", e)
            return f"Persistence degraded: {e}; state committed in audit trail but snapshot is stale"


def _tournament_data(record: TournamentRecord) -> dict[str, Any]:
    return {
        "tournament_id": record.tournament_id,
        "rules_hash": record.rules_hash.hex(),
        "entry_fee": record.entry_fee,
        "status": record.status.value,
    }
