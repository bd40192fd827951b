# services/adventure_service/progression.py
"""
Experience, levels and titles for the player profile.

Title Progression:
- 蛋寶寶 Egg Baby (0 EXP)
- 小蛋仔 Little Egg (200 EXP)
- 勇敢蛋仔 Brave Egg (800 EXP)
- 智慧蛋仔 Wise Egg (1,800 EXP)
- 蛋仔勇者 Egg Hero (5,000 EXP)
"""

from __future__ import annotations
from typing import Dict, Any
import math

# ============================================================================
# Configuration
# ============================================================================

TITLES = [
    {"name": "蛋寶寶", "threshold": 0},
    {"name": "小蛋仔", "threshold": 200},
    {"name": "勇敢蛋仔", "threshold": 800},
    {"name": "智慧蛋仔", "threshold": 1800},
    {"name": "蛋仔勇者", "threshold": 5000},
]

MAX_LEVEL = 100

# ============================================================================
# Level Calculation
# ============================================================================

def calculate_level(exp: int) -> int:
    """
    Level from EXP using square root progression:

    - Level 10 = 200 EXP  (20 correct answers)
    - Level 20 = 800 EXP
    - Level 50 = 5,000 EXP

    Formula: level = sqrt(exp / 2)
    Inverse: exp_needed = level^2 * 2
    """
    if exp <= 0:
        return 1

    level = int(math.sqrt(exp / 2))
    return min(max(1, level), MAX_LEVEL)


def exp_for_level(level: int) -> int:
    """EXP needed to reach a specific level"""
    if level <= 1:
        return 0
    return level * level * 2


def exp_for_next_level(current_level: int) -> int:
    if current_level >= MAX_LEVEL:
        return 0
    return exp_for_level(current_level + 1)

# ============================================================================
# Titles
# ============================================================================

def calculate_title(exp: int) -> Dict[str, Any]:
    """Current title and the EXP still needed for the next one."""
    current = TITLES[0]
    next_title = None
    for i, title in enumerate(TITLES):
        if exp >= title["threshold"]:
            current = title
            next_title = TITLES[i + 1] if i + 1 < len(TITLES) else None
        else:
            break

    return {
        "name": current["name"],
        "next": next_title["name"] if next_title else None,
        "exp_needed": (next_title["threshold"] - exp) if next_title else 0,
    }


def summarize(exp: int, level: int) -> Dict[str, Any]:
    """Progress block for the player view."""
    next_exp = exp_for_next_level(level)
    return {
        "exp": exp,
        "level": level,
        "title": calculate_title(exp),
        "next_level": {
            "level": level + 1,
            "exp_needed": max(0, next_exp - exp),
        } if level < MAX_LEVEL else None,
    }
