"""Achievement badge engine.

Operations and their check order:

    define_badge   config -> admin -> reward >= 0 -> badge_id unused
    evaluate_user  config -> admin -> badge defined            (event only)
    award_badge    config -> admin -> badge defined -> not already held
    badges_of      no checks; [] when the user holds nothing

Definitions are immutable after creation. A user's badges are a single
ordered list entry; duplicates are rejected by scanning it, and the list
entry is locked for the whole award so two concurrent awards of the same
badge to the same user cannot both pass the scan.
"""

from __future__ import annotations

from typing import Any, Optional

from stellarcade.crypto.commitment import parse_commitment
from stellarcade.engine.lifecycle import LifecycleEngine
from stellarcade.errors import (
    AlreadyAwardedError,
    AlreadyExistsError,
    InvalidInputError,
    NotFoundError,
)
from stellarcade.identity.auth import AuthProof, normalize_address
from stellarcade.models.badge import BadgeAward, BadgeDefinition
from stellarcade.models.types import require_i128, require_u64
from stellarcade.persistence.event_log import EventKind
from stellarcade.persistence.keys import DataKey


class BadgeEngine(LifecycleEngine):
    """Defines, evaluates and awards achievement badges."""

    def define_badge(
        self,
        admin: str,
        badge_id: int,
        criteria_hash: Any,
        reward: int,
        proof: Optional[AuthProof] = None,
    ) -> BadgeDefinition:
        admin = normalize_address(admin, "admin")
        badge_id = require_u64(badge_id, "badge_id")
        criteria = parse_commitment(criteria_hash, "criteria_hash")
        reward = require_i128(reward, "reward")

        args = {"badge_id": badge_id, "criteria_hash": criteria, "reward": reward}
        key = DataKey.badge(badge_id)
        with self._store.atomic([key, *self._auth.scope_keys(admin, proof)]) as txn:
            self._auth.require_admin(txn, admin, "define_badge", args, proof)
            if reward < 0:
                raise InvalidInputError(f"Badge reward must be non-negative, got {reward}")
            if txn.has(key):
                raise AlreadyExistsError(f"Badge {badge_id} is already defined")

            definition = BadgeDefinition(badge_id=badge_id, criteria_hash=criteria, reward=reward)
            self._write(txn, key, definition)
            event = self._emit(txn, EventKind.BADGE_DEFINED, admin, {
                "operation": "define_badge",
                "badge_id": badge_id,
                "criteria_hash": criteria.hex(),
                "amount": reward,
            })
        self._publish(event)
        return definition

    def evaluate_user(
        self,
        admin: str,
        user: str,
        badge_id: int,
        proof: Optional[AuthProof] = None,
    ) -> None:
        """Record that the user was evaluated against a badge's criteria.

        Writes nothing but the audit event; the evaluation itself happens
        off-ledger.
        """
        admin = normalize_address(admin, "admin")
        user = normalize_address(user, "user")
        badge_id = require_u64(badge_id, "badge_id")

        args = {"user": user, "badge_id": badge_id}
        with self._store.atomic(self._auth.scope_keys(admin, proof)) as txn:
            self._auth.require_admin(txn, admin, "evaluate_user", args, proof)
            if not txn.has(DataKey.badge(badge_id)):
                raise NotFoundError(f"Badge {badge_id} is not defined")
            event = self._emit(txn, EventKind.USER_EVALUATED, admin, {
                "operation": "evaluate_user",
                "badge_id": badge_id,
                "subject": user,
            })
        self._publish(event)

    def award_badge(
        self,
        admin: str,
        user: str,
        badge_id: int,
        proof: Optional[AuthProof] = None,
    ) -> BadgeAward:
        admin = normalize_address(admin, "admin")
        user = normalize_address(user, "user")
        badge_id = require_u64(badge_id, "badge_id")

        args = {"user": user, "badge_id": badge_id}
        key = DataKey.user_badges(user)
        with self._store.atomic([key, *self._auth.scope_keys(admin, proof)]) as txn:
            self._auth.require_admin(txn, admin, "award_badge", args, proof)
            definition: Optional[BadgeDefinition] = txn.get(DataKey.badge(badge_id))
            if definition is None:
                raise NotFoundError(f"Badge {badge_id} is not defined")
            held: tuple[int, ...] = txn.get(key, ())
            for existing in held:
                if existing == badge_id:
                    raise AlreadyAwardedError(f"{user} already holds badge {badge_id}")

            updated = held + (badge_id,)
            self._write(txn, key, updated)
            event = self._emit(txn, EventKind.BADGE_AWARDED, admin, {
                "operation": "award_badge",
                "badge_id": badge_id,
                "subject": user,
                "amount": definition.reward,
            })
        self._publish(event)
        return BadgeAward(
            badge_id=badge_id,
            user=user,
            reward=definition.reward,
            badges_held=updated,
        )

    def badges_of(self, user: str) -> list[int]:
        user = normalize_address(user, "user")
        return list(self._store.get(DataKey.user_badges(user), ()))

    def get_badge(self, badge_id: int) -> Optional[BadgeDefinition]:
        badge_id = require_u64(badge_id, "badge_id")
        return self._store.get(DataKey.badge(badge_id))
