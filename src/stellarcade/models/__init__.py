"""Core data models for the StellarCade ledger engine."""

from stellarcade.models.badge import BadgeAward, BadgeDefinition
from stellarcade.models.config import DeploymentConfig
from stellarcade.models.tournament import TournamentRecord, TournamentStatus

__all__ = [
    "BadgeAward",
    "BadgeDefinition",
    "DeploymentConfig",
    "TournamentRecord",
    "TournamentStatus",
]
