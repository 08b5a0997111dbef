"""
Value types produced by the scoring and moderation services.

Plain dataclasses: they are computed on demand and never persisted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta


@dataclass(slots=True)
class EngagementSample:
    """Per-conversation engagement inputs for contact ranking."""

    chat_id: str
    other_user_id: str
    message_count: int
    recent_message_count: int  # last 24h
    avg_responder_latency_minutes: float | None
    sentiment_score: float | None = None  # premium only
    engagement_pattern_score: float | None = None  # premium only


@dataclass(slots=True)
class RankedContact:
    user_id: str
    score: float
    chat_count: int = 0


@dataclass(slots=True)
class HealthScore:
    group_id: str
    participation_balance: float
    response_time_score: float
    positivity_score: float
    engagement_consistency: float
    composite: float


@dataclass(slots=True)
class MatchCandidate:
    profile_id: str
    topic_score: float
    content_score: float
    total: float
    reason: str


@dataclass(slots=True)
class ReportRecord:
    reporter_id: str
    reported_user_id: str
    day_bucket: date
    reported_at: datetime
    reason: str = ""
    message_id: str | None = None


@dataclass(slots=True)
class BanDecision:
    should_ban: bool
    duration: timedelta | None  # None with should_ban means permanent
    reason: str
    is_permanent: bool = False

    @property
    def severity(self) -> int:
        """Orderable severity: 0 none, then ban length in days, permanent highest."""
        if not self.should_ban:
            return 0
        if self.is_permanent or self.duration is None:
            return 10**6
        return max(1, self.duration.days)


@dataclass(slots=True)
class ScreeningResult:
    text: str
    toxicity_score: float
    toxicity_source: str  # "classifier", "heuristic" or "skipped"
    flags: list[str] = field(default_factory=list)
