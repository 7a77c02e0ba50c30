"""StellarCade: ledger-backed lifecycle engine for achievement badges and tournaments."""

__version__ = "0.1.0"
