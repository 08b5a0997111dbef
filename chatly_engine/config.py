from pathlib import Path
from typing import Literal

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class CacheSettings(BaseModel):
    ttl_seconds: float = 300.0  # 5 minutes
    max_entries: int = 500
    eviction_interval: int = 10  # sweep on every Nth insert
    eviction_fraction: float = 0.2
    request_timeout_seconds: float = 10.0

    @field_validator("ttl_seconds", "request_timeout_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("eviction_fraction")
    @classmethod
    def _fraction(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("eviction_fraction must be in (0, 1]")
        return value

    @field_validator("max_entries", "eviction_interval")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value


class AdmissionSettings(BaseModel):
    capacity: int = 5
    overflow: Literal["block", "fail_fast"] = "block"
    max_queue_depth: int = 100  # only consulted when overflow == "fail_fast"

    @field_validator("capacity", "max_queue_depth")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value


class ScoringSettings(BaseModel):
    health_threshold: float = 0.5
    neutral_response_score: float = 0.5
    neutral_positivity_score: float = 0.5
    response_window_minutes: float = 60.0
    max_matches: int = 5
    match_threshold: float = 0.3
    max_icebreakers: int = 3

    @field_validator(
        "health_threshold", "neutral_response_score", "neutral_positivity_score", "match_threshold"
    )
    @classmethod
    def _unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("must be within [0, 1]")
        return value


class NotificationSettings(BaseModel):
    night_weekend_delay_minutes: int = 120
    night_weekday_delay_minutes: int = 480  # defers to ~09:00
    evening_delay_minutes: int = 30
    work_hours_delay_minutes: int = 60
    low_battery_threshold: float = 0.2
    low_battery_min_delay_minutes: int = 60


class ModerationSettings(BaseModel):
    toxicity_threshold: float = 0.8
    min_classifier_length: int = 3
    banned_terms: list[str] = [
        "fuck",
        "shit",
        "bitch",
        "asshole",
        "cunt",
        "whore",
        "slut",
        "retard",
        "kill yourself",
        "bomb",
        "weapon",
        "drugs",
    ]
    perspective_api_url: str = "https://commentanalyzer.googleapis.com/v1alpha1/comments:analyze"
    perspective_api_key: str | None = None
    classifier_timeout_seconds: float = 5.0

    @field_validator("toxicity_threshold")
    @classmethod
    def _unit_interval(cls, value: float) -> float:
        if not 0.0 < value <= 1.0:
            raise ValueError("toxicity_threshold must be within (0, 1]")
        return value

    @field_validator("banned_terms")
    @classmethod
    def _normalize_terms(cls, value: list[str]) -> list[str]:
        return [term.strip().lower() for term in value if term.strip()]


class BanThresholds(BaseModel):
    permanent_30d: int = 26
    week_30d: int = 10
    week_24h: int = 10
    three_day_24h: int = 5
    one_day_24h: int = 2

    @model_validator(mode="after")
    def _check_ordering(self) -> "BanThresholds":
        if not self.permanent_30d > self.week_30d >= 1:
            raise ValueError("permanent_30d must exceed week_30d")
        if not self.week_24h > self.three_day_24h > self.one_day_24h >= 1:
            raise ValueError("24h thresholds must be strictly decreasing")
        return self


class MessagingSettings(BaseModel):
    max_message_length: int = 500
    max_group_mentions: int = 5
    default_retention_days: int = 7
    recent_message_limit: int = 50
    daily_message_limits: dict[str, int] = {"free": 200, "plus": 500, "pro": 1000}

    def message_limit_for(self, tier: str) -> int:
        return self.daily_message_limits.get(tier, self.daily_message_limits["free"])

    @field_validator("daily_message_limits")
    @classmethod
    def _has_free_tier(cls, value: dict[str, int]) -> dict[str, int]:
        if "free" not in value:
            raise ValueError("daily_message_limits must define the free tier")
        return value


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    log_level: str = "INFO"

    cache: CacheSettings = CacheSettings()
    admission: AdmissionSettings = AdmissionSettings()
    scoring: ScoringSettings = ScoringSettings()
    notifications: NotificationSettings = NotificationSettings()
    moderation: ModerationSettings = ModerationSettings()
    bans: BanThresholds = BanThresholds()
    messaging: MessagingSettings = MessagingSettings()

    model_config = SettingsConfigDict(
        env_prefix="CHATLY_",
        env_nested_delimiter="__",
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, applying explicit overrides on top."""
    return Settings(**overrides)
