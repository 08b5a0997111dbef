"""
Scoring package.

Heuristic scores computed on demand from chat history: contact ranking,
notification timing, group conversation health with icebreakers, and
anonymous interest matching.
"""

from .anonymous_matching import find_matches
from .contact_ranking import ContactRankingService, rank
from .conversation_health import ConversationHealthScorer
from .icebreakers import suggest_icebreakers
from .notification_timing import NotificationTimingPredictor, predict_delay

__all__ = [
    "ContactRankingService",
    "ConversationHealthScorer",
    "NotificationTimingPredictor",
    "find_matches",
    "predict_delay",
    "rank",
    "suggest_icebreakers",
]
