from __future__ import annotations

import math
import time
from collections.abc import Callable


class CooldownTracker:
    """Last-use timestamps per (user, command), kept for the process lifetime.

    Entries are never evicted, so the table grows with the number of distinct
    users that ran a command with a cooldown.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._last_used: dict[tuple[str, str], float] = {}

    def __len__(self) -> int:
        return len(self._last_used)

    @staticmethod
    def _key(user_id: int | str, command: str) -> tuple[str, str]:
        return str(user_id), command

    def is_on_cooldown(
        self, user_id: int | str, command: str, duration_s: float
    ) -> tuple[bool, int]:
        if duration_s <= 0:
            return False, 0
        last = self._last_used.get(self._key(user_id, command))
        if last is None:
            return False, 0
        elapsed_ms = (self._clock() - last) * 1000
        window_ms = duration_s * 1000
        if elapsed_ms >= window_ms:
            return False, 0
        return True, math.ceil((window_ms - elapsed_ms) / 1000)

    def mark(self, user_id: int | str, command: str) -> None:
        self._last_used[self._key(user_id, command)] = self._clock()

    def clear(self) -> None:
        self._last_used.clear()
