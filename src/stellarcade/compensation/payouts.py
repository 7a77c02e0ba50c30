"""Payout dispatch: turns audit events into collaborator instructions.

The engine never moves value. Events that carry an amount (badge
rewards, tournament entry fees) are routed, by policy, to the
collaborator configured for that role at bootstrap:

    payouts.routes = {"badge_awarded": "reward", "player_joined": "fee"}

PayoutDispatcher reads the event log from its own cursor, builds one
PayoutInstruction per routed event with a positive amount, and hands it
to a PayoutRail. The cursor only moves past events whose instruction was
accepted, so a failing rail is retried from the same event next time.
Instruction ids are the source event ids; rails use them to drop
repeats (delivery is at-least-once).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from stellarcade.engine.config_store import ConfigStore
from stellarcade.persistence.event_log import EventLog, EventRecord
from stellarcade.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayoutInstruction:
    """One amount to be settled by a collaborator service."""
    instruction_id: str
    event_kind: str
    role: str
    collaborator: str
    subject: str
    amount: int
    ledger_sequence: int


@runtime_checkable
class PayoutRail(Protocol):
    """Settlement backend implemented by the reward or fee service.

    submit() must raise on failure. It may receive an instruction id it
    has already accepted and must treat that as success.
    """

    @property
    def rail_id(self) -> str:
        ...

    def submit(self, instruction: PayoutInstruction) -> None:
        ...


@dataclass
class DispatchReport:
    dispatched: list[PayoutInstruction] = field(default_factory=list)
    skipped: int = 0
    cursor: int = 0
    error: Optional[str] = None


class PayoutDispatcher:
    """Pull-based bridge from the event log to a payout rail.

    Usage:
        dispatcher = PayoutDispatcher(event_log, config_store, resolver, rail)
        report = dispatcher.dispatch_pending()
    """

    def __init__(
        self,
        event_log: EventLog,
        config_store: ConfigStore,
        resolver: PolicyResolver,
        rail: PayoutRail,
        cursor: int = 0,
    ) -> None:
        self._event_log = event_log
        self._config_store = config_store
        self._routes = resolver.payout_routes()
        self._rail = rail
        self._cursor = cursor

    @property
    def cursor(self) -> int:
        return self._cursor

    def instruction_for(self, event: EventRecord) -> Optional[PayoutInstruction]:
        """Build the instruction for an event, or None if it is not routed."""
        role = self._routes.get(event.event_kind.value)
        if role is None:
            return None
        amount = event.payload.get("amount", 0)
        if amount <= 0:
            return None
        collaborator = self._config_store.get().collaborator(role)
        if collaborator is None:
            raise ValueError(f"No collaborator configured for payout role: {role}")
        return PayoutInstruction(
            instruction_id=event.event_id,
            event_kind=event.event_kind.value,
            role=role,
            collaborator=collaborator,
            subject=event.payload.get("subject", ""),
            amount=amount,
            ledger_sequence=event.ledger_sequence,
        )

    def dispatch_pending(self) -> DispatchReport:
        """Hand every new routed event to the rail, in log order.

        Stops at the first failure; the failing event stays pending.
        """
        report = DispatchReport(cursor=self._cursor)
        for event in self._event_log.read_from(self._cursor):
            try:
                instruction = self.instruction_for(event)
                if instruction is not None:
                    self._rail.submit(instruction)
            except Exception as e:
                report.error = f"{event.event_id}: {e}"
                logger.warning(
                    "Payout dispatch halted at %s on rail %s: %s",
                    event.event_id, self._rail.rail_id, e,
                )
                break
            if instruction is None:
                report.skipped += 1
            else:
                report.dispatched.append(instruction)
            self._cursor += 1
            report.cursor = self._cursor

        if report.dispatched:
            logger.info(
                "Dispatched %d payout instructions to %s (cursor %d)",
                len(report.dispatched), self._rail.rail_id, self._cursor,
            )
        return report
