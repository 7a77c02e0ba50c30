"""Ledger clocks: the host time unit that TTLs are measured in.

Expiration windows are counted in ledgers, not seconds. LedgerClock is a
manually advanced sequence (services and tests drive it explicitly);
WallClockLedger derives the sequence from wall time and the configured
ledger close interval, which is what a long-running deployment or the
CLI uses.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Anything that reports the current ledger sequence."""

    @property
    def sequence(self) -> int:
        ...


class LedgerClock:
    """Manually advanced ledger sequence.

    Usage:
        clock = LedgerClock()
        clock.advance(100)
        clock.sequence  # 101
    """

    def __init__(self, sequence: int = 1) -> None:
        if sequence < 0:
            raise ValueError("Ledger sequence must be non-negative")
        self._sequence = sequence

    @property
    def sequence(self) -> int:
        return self._sequence

    def advance(self, ledgers: int = 1) -> int:
        if ledgers < 0:
            raise ValueError("Ledger sequence cannot move backwards")
        self._sequence += ledgers
        return self._sequence


class WallClockLedger:
    """Ledger sequence computed from wall time.

    sequence = floor((now - genesis_utc) / close_seconds)
    """

    def __init__(
        self,
        close_seconds: int,
        genesis_utc: datetime,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if close_seconds <= 0:
            raise ValueError("close_seconds must be positive")
        self._close_seconds = close_seconds
        self._genesis = genesis_utc
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def sequence(self) -> int:
        elapsed = (self._now() - self._genesis).total_seconds()
        return max(0, int(elapsed // self._close_seconds))
