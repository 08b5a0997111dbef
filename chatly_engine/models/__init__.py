"""
Domain models: pydantic store documents and computed scoring values.
"""

from .documents import AnonymousProfile, Chat, Message, UserProfile
from .scoring import (
    BanDecision,
    EngagementSample,
    HealthScore,
    MatchCandidate,
    RankedContact,
    ReportRecord,
    ScreeningResult,
)

__all__ = [
    "AnonymousProfile",
    "BanDecision",
    "Chat",
    "EngagementSample",
    "HealthScore",
    "MatchCandidate",
    "Message",
    "RankedContact",
    "ReportRecord",
    "ScreeningResult",
    "UserProfile",
]
