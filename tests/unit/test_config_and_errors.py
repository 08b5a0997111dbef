import pytest
from pydantic import ValidationError

from chatly_engine.config import (
    AdmissionSettings,
    CacheSettings,
    MessagingSettings,
    ModerationSettings,
    ScoringSettings,
    Settings,
)
from chatly_engine.errors import (
    ConflictError,
    InputValidationError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    RequestTimeoutError,
    StoreError,
    UnavailableError,
    translate_store_error,
)


def test_defaults(settings):
    assert settings.cache.ttl_seconds == 300
    assert settings.admission.capacity == 5
    assert settings.admission.overflow == "block"
    assert settings.moderation.toxicity_threshold == 0.8
    assert settings.messaging.message_limit_for("plus") == 500
    assert settings.messaging.message_limit_for("unknown") == 200


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("CHATLY_ADMISSION__CAPACITY", "2")
    monkeypatch.setenv("CHATLY_ADMISSION__OVERFLOW", "fail_fast")
    monkeypatch.setenv("CHATLY_CACHE__TTL_SECONDS", "60")

    settings = Settings(_env_file=None)

    assert settings.admission.capacity == 2
    assert settings.admission.overflow == "fail_fast"
    assert settings.cache.ttl_seconds == 60


@pytest.mark.parametrize(
    ("model", "kwargs"),
    [
        (CacheSettings, {"ttl_seconds": 0}),
        (CacheSettings, {"eviction_fraction": 1.5}),
        (AdmissionSettings, {"capacity": 0}),
        (AdmissionSettings, {"overflow": "drop"}),
        (ScoringSettings, {"health_threshold": 1.2}),
        (ModerationSettings, {"toxicity_threshold": 0}),
        (MessagingSettings, {"daily_message_limits": {"pro": 1000}}),
    ],
)
def test_invalid_settings_rejected(model, kwargs):
    with pytest.raises(ValidationError):
        model(**kwargs)


def test_banned_terms_normalized():
    settings = ModerationSettings(banned_terms=["  Spam ", "", "SCAM"])

    assert settings.banned_terms == ["spam", "scam"]


@pytest.mark.parametrize(
    ("code", "expected", "recoverable"),
    [
        ("not-found", NotFoundError, False),
        ("permission-denied", PermissionDeniedError, False),
        ("unavailable", UnavailableError, True),
        ("deadline-exceeded", RequestTimeoutError, True),
        ("resource-exhausted", RateLimitedError, True),
        ("invalid-argument", InputValidationError, False),
        ("already-exists", ConflictError, False),
        ("aborted", InternalError, False),
    ],
)
def test_store_error_translation(code, expected, recoverable):
    error = translate_store_error(StoreError(code), "load chat")

    assert type(error) is expected
    assert error.recoverable is recoverable
