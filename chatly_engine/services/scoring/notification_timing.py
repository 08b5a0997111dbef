"""
Smart notification timing.

Defers notifications out of quiet hours and batches them on low battery.
`predict_delay` is pure; `NotificationTimingPredictor` wires in the injected
clock, battery and activity sources.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from chatly_engine.config import NotificationSettings
from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.infrastructure.providers import BatteryProvider, Clock, SystemClock
from chatly_engine.models.documents import UserProfile

logger = get_logger(__name__)


@dataclass(slots=True)
class NotificationPreferences:
    smart_timing_enabled: bool = True
    active_during_work_hours: bool = True
    timezone: str = "UTC"


class ActivityProvider(Protocol):
    def is_active_during_work_hours(self, profile: UserProfile) -> bool:
        ...


class ProfileActivityProvider:
    """Reads the work-hours activity flag kept on the profile document."""

    def is_active_during_work_hours(self, profile: UserProfile) -> bool:
        if profile.work_hours_active is not None:
            return profile.work_hours_active
        # Pro accounts are treated as business users until history says otherwise
        return profile.tier == "pro"


def _local_time(now: datetime, timezone: str) -> datetime:
    try:
        return now.astimezone(ZoneInfo(timezone))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone, falling back to UTC", timezone=timezone)
        return now.astimezone(UTC)


def predict_delay(
    preferences: NotificationPreferences,
    now: datetime,
    battery_level: float,
    settings: NotificationSettings | None = None,
) -> timedelta:
    """
    Delay before a notification should be shown.

    Args:
        preferences: Recipient notification preferences
        now: Current time (timezone-aware)
        battery_level: Device battery charge in [0, 1]
        settings: Window delays and battery policy

    Returns:
        timedelta: zero for immediate delivery
    """
    if not 0.0 <= battery_level <= 1.0:
        raise ValueError("battery_level must be within [0, 1]")
    settings = settings or NotificationSettings()

    if not preferences.smart_timing_enabled:
        return timedelta(0)

    local = _local_time(now, preferences.timezone)
    hour = local.hour
    minutes = 0

    if hour >= 22 or hour < 6:
        weekend = local.weekday() >= 5
        minutes = (
            settings.night_weekend_delay_minutes
            if weekend
            else settings.night_weekday_delay_minutes
        )
    elif hour >= 18:
        minutes = settings.evening_delay_minutes
    elif hour >= 9:
        if not preferences.active_during_work_hours:
            minutes = settings.work_hours_delay_minutes

    # Batch notifications when the battery is low
    if (
        battery_level < settings.low_battery_threshold
        and minutes < settings.low_battery_min_delay_minutes
    ):
        minutes = settings.low_battery_min_delay_minutes

    return timedelta(minutes=minutes)


class NotificationTimingPredictor:
    def __init__(
        self,
        battery: BatteryProvider,
        activity: ActivityProvider | None = None,
        clock: Clock | None = None,
        settings: NotificationSettings | None = None,
    ):
        self._battery = battery
        self._activity = activity or ProfileActivityProvider()
        self._clock = clock or SystemClock()
        self._settings = settings or NotificationSettings()

    def preferences_for(self, profile: UserProfile) -> NotificationPreferences:
        return NotificationPreferences(
            smart_timing_enabled=profile.smart_notifications,
            active_during_work_hours=self._activity.is_active_during_work_hours(profile),
            timezone=profile.timezone,
        )

    def predict(self, preferences: NotificationPreferences) -> datetime:
        now = self._clock.now()
        return now + predict_delay(preferences, now, self._battery.level(), self._settings)

    def predict_for(self, profile: UserProfile) -> datetime:
        return self.predict(self.preferences_for(profile))
