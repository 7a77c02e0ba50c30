"""Tournament state machine: enforces the one-way lifecycle.

Tournament lifecycle:
    ACTIVE → FINALIZED

FINALIZED is terminal. There are no implicit transitions and no way back
to ACTIVE.
"""

from __future__ import annotations

from typing import Optional

from stellarcade.errors import AlreadyFinalizedError, ErrorCode, NotActiveError
from stellarcade.models.tournament import TournamentRecord, TournamentStatus


# Valid transitions: {from_status: {allowed_to_statuses}}
_TRANSITIONS: dict[TournamentStatus, set[TournamentStatus]] = {
    TournamentStatus.ACTIVE: {TournamentStatus.FINALIZED},
    # Terminal
    TournamentStatus.FINALIZED: set(),
}


class TournamentStateMachine:
    """Validates and applies tournament status transitions.

    Pure computation. Writing the new record and emitting the event are
    the engine's job.
    """

    @staticmethod
    def validate_transition(
        record: TournamentRecord,
        target: TournamentStatus,
    ) -> Optional[ErrorCode]:
        """Return the failure code for an invalid transition, else None."""
        if target in _TRANSITIONS.get(record.status, set()):
            return None
        if record.status == TournamentStatus.FINALIZED:
            return ErrorCode.ALREADY_FINALIZED
        return ErrorCode.NOT_ACTIVE

    @staticmethod
    def apply_transition(
        record: TournamentRecord,
        target: TournamentStatus,
    ) -> TournamentRecord:
        """Validate and return the transitioned record.

        Raises AlreadyFinalizedError when leaving a finalized tournament
        and NotActiveError for any other invalid transition.
        """
        code = TournamentStateMachine.validate_transition(record, target)
        if code is not None:
            error = AlreadyFinalizedError if code == ErrorCode.ALREADY_FINALIZED else NotActiveError
            raise error(
                f"Tournament {record.tournament_id} cannot move from "
                f"{record.status.value} to {target.value}"
            )
        return record.with_status(target)

    @staticmethod
    def is_terminal(status: TournamentStatus) -> bool:
        return not _TRANSITIONS.get(status)

    @staticmethod
    def valid_transitions(status: TournamentStatus) -> set[TournamentStatus]:
        return set(_TRANSITIONS.get(status, set()))
