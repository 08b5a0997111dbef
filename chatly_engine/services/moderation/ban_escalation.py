"""Ban decision table over rolling report counts. Higher rows win."""

from datetime import timedelta

from chatly_engine.config import BanThresholds
from chatly_engine.models.scoring import BanDecision

NO_BAN = BanDecision(should_ban=False, duration=timedelta(0), reason="No ban required")


def decide_ban(
    reports_24h: int, reports_30d: int, thresholds: BanThresholds | None = None
) -> BanDecision:
    if reports_24h < 0 or reports_30d < 0:
        raise ValueError("report counts cannot be negative")

    t = thresholds or BanThresholds()

    if reports_30d >= t.permanent_30d:
        return BanDecision(
            should_ban=True,
            duration=None,
            reason=f"Excessive reports ({t.permanent_30d}+ in 30 days)",
            is_permanent=True,
        )
    if reports_30d >= t.week_30d:
        return BanDecision(
            should_ban=True,
            duration=timedelta(days=7),
            reason=f"Multiple reports ({t.week_30d}-{t.permanent_30d - 1} in 30 days)",
        )
    if reports_24h >= t.week_24h:
        return BanDecision(
            should_ban=True,
            duration=timedelta(days=7),
            reason=f"High volume reports ({t.week_24h}+ in 24 hours)",
        )
    if reports_24h >= t.three_day_24h:
        return BanDecision(
            should_ban=True,
            duration=timedelta(days=3),
            reason=f"Moderate reports ({t.three_day_24h}-{t.week_24h - 1} in 24 hours)",
        )
    if reports_24h >= t.one_day_24h:
        return BanDecision(
            should_ban=True,
            duration=timedelta(days=1),
            reason=f"Initial reports ({t.one_day_24h}-{t.three_day_24h - 1} in 24 hours)",
        )
    return NO_BAN
