"""Tournament models.

Tournament lifecycle: ACTIVE → FINALIZED (one-way, terminal).

- ACTIVE: accepting joins and score submissions.
- FINALIZED: closed; no further joins or results. The record stays
  queryable forever.

Records are frozen. A status change produces a new record which the
engine writes back through the ledger transaction, so an aborted
operation can never leave a half-mutated record in storage.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace


class TournamentStatus(str, enum.Enum):
    """Lifecycle state of a tournament."""
    ACTIVE = "active"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class TournamentRecord:
    """A tournament with an immutable rules commitment and entry fee."""
    tournament_id: int
    rules_hash: bytes  # 32 bytes
    entry_fee: int
    status: TournamentStatus = TournamentStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == TournamentStatus.ACTIVE

    def with_status(self, status: TournamentStatus) -> TournamentRecord:
        return replace(self, status=status)
