"""
Rate Limiting

Hourly and daily message counters for the configured tier.

Windows reset lazily: a window whose reset time has passed is started
afresh the next time it is checked. Only successful provider dispatches
are recorded.
"""

import math
import time
from typing import Callable, Optional

from src.config.settings import TierLimits


HOUR_SECONDS = 60 * 60
DAY_SECONDS = 24 * HOUR_SECONDS


class _Window:
    def __init__(self, length: float, now: float):
        self.length = length
        self.count = 0
        self.reset_at = now + length

    def roll(self, now: float) -> None:
        if now >= self.reset_at:
            self.count = 0
            self.reset_at = now + self.length


class RateLimiter:
    """Per-tier message limits. Unlimited in testing mode."""

    def __init__(
        self,
        limits: TierLimits,
        unlimited: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._limits = limits
        self._unlimited = unlimited
        self._clock = clock or time.time
        now = self._clock()
        self._hourly = _Window(HOUR_SECONDS, now)
        self._daily = _Window(DAY_SECONDS, now)

    def check(self) -> Optional[str]:
        """Return the user-facing message when a limit is exhausted."""
        if self._unlimited:
            return None

        now = self._roll()
        if self._hourly.count >= self._limits.messages_per_hour:
            minutes = math.ceil((self._hourly.reset_at - now) / 60)
            return (
                f"You've reached your hourly limit of {self._limits.messages_per_hour} "
                f"messages. Try again in {minutes} minutes."
            )
        if self._daily.count >= self._limits.messages_per_day:
            hours = math.ceil((self._daily.reset_at - now) / HOUR_SECONDS)
            return (
                f"You've reached your daily limit of {self._limits.messages_per_day} "
                f"messages. Try again in {hours} hours."
            )
        return None

    def record(self) -> None:
        self._roll()
        self._hourly.count += 1
        self._daily.count += 1

    def status(self) -> dict:
        """Usage per window. reset_in is in seconds."""
        now = self._roll()
        return {
            "unlimited": self._unlimited,
            "hourly": {
                "used": self._hourly.count,
                "limit": self._limits.messages_per_hour,
                "reset_in": max(0.0, self._hourly.reset_at - now),
            },
            "daily": {
                "used": self._daily.count,
                "limit": self._limits.messages_per_day,
                "reset_in": max(0.0, self._daily.reset_at - now),
            },
        }

    def _roll(self) -> float:
        now = self._clock()
        self._hourly.roll(now)
        self._daily.roll(now)
        return now
