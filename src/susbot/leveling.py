"""XP awards and the leveling transition applied on every inbound message."""

from __future__ import annotations

from .model import UserProfile

XP_PER_MESSAGE = 10
BASE_REQUIRED_XP = 100
REQUIRED_XP_STEP = 50


def required_xp_for(level: int) -> int:
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return BASE_REQUIRED_XP + (level - 1) * REQUIRED_XP_STEP


def settle_levels(profile: UserProfile) -> bool:
    """Convert banked progress into levels until it drops below the threshold.

    The threshold is always re-derived from the level so a stored value can
    never drift from the formula. A stored level below 1 is repaired to 1.
    Returns True when at least one level was gained.
    """
    if profile.level < 1:
        profile.level = 1
    profile.required_xp = required_xp_for(profile.level)
    if profile.current_xp < 0:
        profile.current_xp = 0
    leveled_up = False
    while profile.current_xp >= profile.required_xp:
        profile.current_xp -= profile.required_xp
        profile.level += 1
        profile.required_xp = required_xp_for(profile.level)
        leveled_up = True
    return leveled_up


def award_xp(profile: UserProfile, amount: int = XP_PER_MESSAGE) -> bool:
    if amount < 0:
        raise ValueError(f"xp award must be >= 0, got {amount}")
    profile.xp += amount
    profile.current_xp += amount
    return settle_levels(profile)
