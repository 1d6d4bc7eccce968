from __future__ import annotations

from typing import Optional

from ..core.constants import POSITION_HIERARCHY


def _level(position: str) -> Optional[int]:
    try:
        return POSITION_HIERARCHY.index((position or "").strip().lower())
    except ValueError:
        return None


def demotion_target(position: str) -> Optional[str]:
    """One level down the hierarchy; None at the bottom or for unknown positions."""
    level = _level(position)
    if level is None or level + 1 >= len(POSITION_HIERARCHY):
        return None
    return POSITION_HIERARCHY[level + 1]


def promotion_target(position: str) -> Optional[str]:
    """One level up the hierarchy; None at the top or for unknown positions."""
    level = _level(position)
    if level is None or level == 0:
        return None
    return POSITION_HIERARCHY[level - 1]
