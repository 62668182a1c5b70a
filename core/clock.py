# ============================================================================
# CLOCK
# ============================================================================
# STATUS: Foundation - Injectable time source
# PURPOSE: All "now" comparisons go through a Clock so tests can fake time
# ============================================================================
"""
Clock

The scheduler (execute_after eligibility), the closer (state stamps) and the
retry schedulers (next retry time) never call datetime.now() directly. They
take a Clock at construction.

Usage:
    clock = SystemClock()
    clock.now()

    clock = FrozenClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
    clock.advance(seconds=30)
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return utc_now()


class FrozenClock(Clock):
    """
    Simulated time that only moves when told to.

    Used by tests to check execute_after eligibility and retry backoff
    without sleeping.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or utc_now()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        """Move time forward by a timedelta built from kwargs (seconds=..., minutes=...)."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


__all__ = ["Clock", "SystemClock", "FrozenClock", "utc_now"]
