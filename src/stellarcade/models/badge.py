"""Achievement badge models.

A badge is defined once by the administrator with a criteria commitment
(SHA-256 of the off-chain criteria document) and an optional reward
amount. Definitions are immutable: there is no update operation, and
re-defining an existing badge_id is rejected.

Badges held by a user are an ordered, duplicate-free sequence of badge
ids stored as a single ledger entry per user.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BadgeDefinition:
    """Immutable definition of an awardable badge.

    reward is the amount the reward collaborator pays out when the badge
    is awarded. 0 means no payout.
    """
    badge_id: int
    criteria_hash: bytes  # 32 bytes
    reward: int

    @property
    def criteria_hex(self) -> str:
        return self.criteria_hash.hex()


@dataclass(frozen=True)
class BadgeAward:
    """Outcome of a successful award, as reported to the caller."""
    badge_id: int
    user: str
    reward: int
    badges_held: tuple[int, ...]
