"""Rate limit for notification sounds and toasts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationCooldown:
    """
    Let a notification fire at most once per cooldown window and key.

    The clock is injected so the window can be driven in tests; the last-fired
    timestamps live on the instance rather than in any ambient storage.
    """

    def __init__(self, cooldown_seconds: float = 3.0, clock: Clock | None = None) -> None:
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must not be negative")
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.clock = clock or _utc_now
        self._last_fired: dict[str, datetime] = {}

    def ready(self, key: str = "default") -> bool:
        last = self._last_fired.get(key)
        return last is None or self.clock() - last >= self.cooldown

    def try_fire(self, key: str = "default") -> bool:
        """Record a firing and return True when the window has elapsed."""
        if not self.ready(key):
            return False
        self._last_fired[key] = self.clock()
        return True

    def last_fired(self, key: str = "default") -> datetime | None:
        return self._last_fired.get(key)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._last_fired.clear()
        else:
            self._last_fired.pop(key, None)
