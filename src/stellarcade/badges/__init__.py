"""Achievement badges."""

from stellarcade.badges.engine import BadgeEngine

__all__ = ["BadgeEngine"]
