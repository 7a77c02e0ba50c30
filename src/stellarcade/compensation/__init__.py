"""Payout dispatch to collaborator services."""

from stellarcade.compensation.payouts import (
    DispatchReport,
    PayoutDispatcher,
    PayoutInstruction,
    PayoutRail,
)

__all__ = ["DispatchReport", "PayoutDispatcher", "PayoutInstruction", "PayoutRail"]
