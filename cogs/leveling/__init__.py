"""
Leveling Package

Awards message XP.
"""

from .events import LevelingEvents

__all__ = ["LevelingEvents"]
