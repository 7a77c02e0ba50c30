"""Tournaments."""

from stellarcade.tournaments.engine import TournamentEngine
from stellarcade.tournaments.state_machine import TournamentStateMachine

__all__ = ["TournamentEngine", "TournamentStateMachine"]
