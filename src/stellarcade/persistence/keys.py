"""Typed storage keys.

Every ledger entry is addressed by a DataKey: an entry kind plus an
optional numeric entity id and an optional subject address. The kind
fixes the storage tier:

- instance: the single deployment configuration record. One entry,
  one shared TTL.
- persistent: per-entity records (badge definitions, user badge lists,
  tournaments, participation markers, scores). Each entry has its own
  TTL, renewed on every write.
- temporary: consumed authorization nonces. Short TTL; losing them after
  expiry only reopens nonces whose signatures are long stale.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class StorageTier(str, enum.Enum):
    INSTANCE = "instance"
    PERSISTENT = "persistent"
    TEMPORARY = "temporary"


class KeyKind(str, enum.Enum):
    """Discriminant for every key the engine writes."""
    CONFIG = "config"
    BADGE = "badge"
    USER_BADGES = "user_badges"
    TOURNAMENT = "tournament"
    PLAYER_JOINED = "player_joined"
    PLAYER_SCORE = "player_score"
    AUTH_NONCE = "auth_nonce"


_TIERS: dict[KeyKind, StorageTier] = {
    KeyKind.CONFIG: StorageTier.INSTANCE,
    KeyKind.BADGE: StorageTier.PERSISTENT,
    KeyKind.USER_BADGES: StorageTier.PERSISTENT,
    KeyKind.TOURNAMENT: StorageTier.PERSISTENT,
    KeyKind.PLAYER_JOINED: StorageTier.PERSISTENT,
    KeyKind.PLAYER_SCORE: StorageTier.PERSISTENT,
    KeyKind.AUTH_NONCE: StorageTier.TEMPORARY,
}


@dataclass(frozen=True)
class DataKey:
    """Composite key: (kind), (kind, id), (kind, subject) or (kind, id, subject).

    Usage:
        DataKey.badge(7)
        DataKey.user_badges("0xAbc...")
        DataKey.player_joined(1, "0xAbc...")
    """
    kind: KeyKind
    entity_id: Optional[int] = None
    subject: Optional[str] = None

    @property
    def tier(self) -> StorageTier:
        return _TIERS[self.kind]

    @classmethod
    def config(cls) -> DataKey:
        return cls(KeyKind.CONFIG)

    @classmethod
    def badge(cls, badge_id: int) -> DataKey:
        return cls(KeyKind.BADGE, entity_id=badge_id)

    @classmethod
    def user_badges(cls, user: str) -> DataKey:
        return cls(KeyKind.USER_BADGES, subject=user)

    @classmethod
    def tournament(cls, tournament_id: int) -> DataKey:
        return cls(KeyKind.TOURNAMENT, entity_id=tournament_id)

    @classmethod
    def player_joined(cls, tournament_id: int, player: str) -> DataKey:
        return cls(KeyKind.PLAYER_JOINED, entity_id=tournament_id, subject=player)

    @classmethod
    def player_score(cls, tournament_id: int, player: str) -> DataKey:
        return cls(KeyKind.PLAYER_SCORE, entity_id=tournament_id, subject=player)

    @classmethod
    def auth_nonce(cls, address: str, nonce: int) -> DataKey:
        return cls(KeyKind.AUTH_NONCE, entity_id=nonce, subject=address)

    def encode(self) -> str:
        """Stable string form used for lock ordering and JSON snapshots."""
        parts = [self.kind.value]
        if self.entity_id is not None:
            parts.append(str(self.entity_id))
        if self.subject is not None:
            parts.append(f"@{self.subject}")
        return ":".join(parts)

    @classmethod
    def decode(cls, raw: str) -> DataKey:
        """Inverse of encode()."""
        kind_str, _, rest = raw.partition(":")
        kind = KeyKind(kind_str)
        entity_id: Optional[int] = None
        subject: Optional[str] = None
        for part in rest.split(":") if rest else []:
            if part.startswith("@"):
                subject = part[1:]
            else:
                entity_id = int(part)
        return cls(kind, entity_id=entity_id, subject=subject)

    def __str__(self) -> str:
        return self.encode()
