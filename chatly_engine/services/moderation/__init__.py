"""
Content moderation and ban escalation.
"""

from .ban_escalation import decide_ban
from .reports import ReportLedger
from .screening import ModerationService, is_age_appropriate, sanitized_preview
from .toxicity_client import PerspectiveToxicityClient, ToxicityClassifierError

__all__ = [
    "ModerationService",
    "PerspectiveToxicityClient",
    "ReportLedger",
    "ToxicityClassifierError",
    "decide_ban",
    "is_age_appropriate",
    "sanitized_preview",
]
