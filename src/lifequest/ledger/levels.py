"""Level computation from total XP.

Levels are linear: every ``xp_per_level`` XP is one level, starting at 1.
The frontend progress bar reads ``xp_into_level`` / ``xp_for_level``.
"""

from __future__ import annotations


def level_for_xp(total_xp: int, xp_per_level: int = 100) -> int:
    return max(total_xp, 0) // xp_per_level + 1


def compute_level(total_xp: int, xp_per_level: int = 100) -> dict:
    """Compute level info from total XP."""
    level = level_for_xp(total_xp, xp_per_level)
    xp_into_level = max(total_xp, 0) - (level - 1) * xp_per_level
    return {
        "level": level,
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_per_level,
        "next_level": level + 1,
        "percentage": round(xp_into_level * 100 / xp_per_level),
    }
