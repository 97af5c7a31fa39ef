"""Farmer level thresholds and computation.

Levels are driven by cumulative XP. These values must match the app's
level badge strip.
"""

from __future__ import annotations

LEVEL_THRESHOLDS: list[dict] = [
    {"level": 1, "title": "Seedling", "cumulative": 0},
    {"level": 2, "title": "Sprout", "cumulative": 100},
    {"level": 3, "title": "Growing", "cumulative": 250},
    {"level": 4, "title": "Flourishing", "cumulative": 500},
    {"level": 5, "title": "Harvester", "cumulative": 1000},
    {"level": 6, "title": "Expert Farmer", "cumulative": 2000},
    {"level": 7, "title": "Master Grower", "cumulative": 3500},
    {"level": 8, "title": "Agricultural Sage", "cumulative": 5500},
    {"level": 9, "title": "Farming Legend", "cumulative": 8000},
    {"level": 10, "title": "AgroAfrica Champion", "cumulative": 12000},
]


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP.

    XP beyond the last threshold keeps the user at the top level with a
    full progress bar.
    """
    index = 0
    for i, entry in enumerate(LEVEL_THRESHOLDS):
        if total_xp >= entry["cumulative"]:
            index = i

    current = LEVEL_THRESHOLDS[index]
    is_max_level = index == len(LEVEL_THRESHOLDS) - 1
    next_level = current if is_max_level else LEVEL_THRESHOLDS[index + 1]

    xp_into_level = total_xp - current["cumulative"]
    xp_for_level = max(next_level["cumulative"] - current["cumulative"], 1)

    return {
        "level": current["level"],
        "title": current["title"],
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_level,
        "next_level": next_level["level"],
        "next_title": next_level["title"],
        "is_max_level": is_max_level,
    }
