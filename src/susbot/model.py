"""Persistent profile records.

Timestamps are epoch milliseconds. The JSON blob fields (achievements,
inventory, referrals, settings, cooldowns) belong to the economy and game
commands; dispatch never looks inside them.
"""

from __future__ import annotations

import time
from typing import Any

import msgspec

DEFAULT_REQUIRED_XP = 100


def now_ms() -> int:
    return int(time.time() * 1000)


class UserProfile(msgspec.Struct, kw_only=True):
    telegram_id: str
    id: int | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    created_at: int = msgspec.field(default_factory=now_ms)
    last_interaction: int = msgspec.field(default_factory=now_ms)
    command_count: int = 0
    wallet: int = 0
    bank: int = 0
    loan: int = 0
    last_daily_work: int | None = None
    xp: int = 0
    current_xp: int = 0
    required_xp: int = DEFAULT_REQUIRED_XP
    level: int = 1
    rank: int = 0
    achievements: list[Any] = msgspec.field(default_factory=list)
    inventory: list[Any] = msgspec.field(default_factory=list)
    is_premium: bool = False
    premium_expires: int | None = None
    ban: bool = False
    ban_reason: str | None = None
    language: str = "en"
    referrer: str | None = None
    referrals: list[Any] = msgspec.field(default_factory=list)
    settings: dict[str, Any] = msgspec.field(default_factory=dict)
    cooldowns: dict[str, Any] = msgspec.field(default_factory=dict)
    last_active_group: str | None = None

    @classmethod
    def new(
        cls,
        telegram_id: int | str,
        *,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserProfile:
        return cls(
            telegram_id=str(telegram_id),
            username=username,
            first_name=first_name,
            last_name=last_name,
        )

    @property
    def display_name(self) -> str:
        return self.username or self.first_name or "User"


class GroupProfile(msgspec.Struct, kw_only=True):
    group_id: str
    id: int | None = None
    prefix: str | None = None
    created_at: int = msgspec.field(default_factory=now_ms)
