"""
Injected sources of time and device telemetry.

Scoring code never reads the wall clock or the battery directly so tests can
swap these for deterministic doubles.
"""

import time
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""
        ...

    def monotonic(self) -> float:
        """Seconds from an arbitrary origin, never going backwards."""
        ...


class BatteryProvider(Protocol):
    def level(self) -> float:
        """Battery charge in [0, 1]."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()


class StaticBattery:
    """Battery source for hosts without telemetry; reports a fixed level."""

    def __init__(self, level: float = 1.0):
        if not 0.0 <= level <= 1.0:
            raise ValueError("battery level must be within [0, 1]")
        self._level = level

    def level(self) -> float:
        return self._level
