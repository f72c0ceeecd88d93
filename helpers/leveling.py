"""
Level curve for the XP system.

Reaching level ``n`` from ``n - 1`` costs ``base * n`` XP, so the total XP
required for level ``n`` is ``base * n * (n + 1) / 2``.

``xp_progress`` is for rank displays built by external command handlers.
"""

import math
from typing import NamedTuple

DEFAULT_LEVEL_BASE_XP = 100


class LevelProgress(NamedTuple):
    level: int
    xp_into_level: int
    xp_for_next: int

    @property
    def ratio(self) -> float:
        if self.xp_for_next <= 0:
            return 1.0
        return min(1.0, max(0.0, self.xp_into_level / self.xp_for_next))


def xp_for_level(level: int, base: int = DEFAULT_LEVEL_BASE_XP) -> int:
    """
    Total XP needed to reach ``level``.

    Examples (base 100):
        Level 1:  100 XP
        Level 2:  300 XP
        Level 10: 5,500 XP
    """
    if level <= 0:
        return 0
    return base * level * (level + 1) // 2


def level_from_xp(xp: int, base: int = DEFAULT_LEVEL_BASE_XP) -> int:
    """Highest level whose total requirement is covered by ``xp``."""
    if xp <= 0:
        return 0
    level = (math.isqrt(8 * xp // base + 1) - 1) // 2
    # isqrt on the floored quotient can be off by one either way
    while xp_for_level(level + 1, base) <= xp:
        level += 1
    while level > 0 and xp_for_level(level, base) > xp:
        level -= 1
    return level


def xp_progress(xp: int, base: int = DEFAULT_LEVEL_BASE_XP) -> LevelProgress:
    level = level_from_xp(xp, base)
    floor = xp_for_level(level, base)
    return LevelProgress(level, xp - floor, xp_for_level(level + 1, base) - floor)
