"""Experience curve shared by skills and per-action mastery."""

from __future__ import annotations

import math
from bisect import bisect_right

MAX_LEVEL: int = 99


def _build_table() -> tuple[int, ...]:
    # table[i] is the experience required to reach level i + 1
    table = [0]
    points = 0.0
    for level in range(1, MAX_LEVEL):
        points += math.floor(level + 300.0 * 2.0 ** (level / 7.0))
        table.append(int(math.floor(points / 4.0)))
    return tuple(table)


_XP_TABLE: tuple[int, ...] = _build_table()


def start_xp_for_level(level: int) -> int:
    """Return the experience at which ``level`` begins."""
    if level < 1:
        raise ValueError("level must be >= 1")
    if level > MAX_LEVEL:
        raise ValueError(f"level must be <= {MAX_LEVEL}")
    return _XP_TABLE[level - 1]


def level_for_xp(xp: float) -> int:
    """Return the level reached with ``xp`` experience."""
    if xp <= 0:
        return 1
    return min(MAX_LEVEL, bisect_right(_XP_TABLE, xp))
