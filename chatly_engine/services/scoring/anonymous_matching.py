"""
Interest-based matching for the anonymous feed.

total = 0.6 * topic overlap + 0.4 * interest keywords found in the message.
"""

from __future__ import annotations

from collections.abc import Sequence

from chatly_engine.config import ScoringSettings
from chatly_engine.models.documents import AnonymousProfile
from chatly_engine.models.scoring import MatchCandidate

TOPIC_WEIGHT = 0.6
CONTENT_WEIGHT = 0.4


def topic_score(self_topics: Sequence[str], profile_topics: Sequence[str]) -> float:
    if not self_topics or not profile_topics:
        return 0.0
    shared = set(self_topics) & set(profile_topics)
    return len(shared) / max(len(set(self_topics)), len(set(profile_topics)))


def content_score(message_text: str, interests: Sequence[str]) -> float:
    if not interests:
        return 0.0
    text = message_text.lower()
    found = sum(1 for interest in interests if interest.lower() in text)
    return found / len(interests)


def match_reason(topic: float, content: float) -> str:
    if topic > 0.7 and content > 0.5:
        return "Strong topic and interest match"
    if topic > 0.7:
        return "Perfect topic match"
    if content > 0.7:
        return "Shared interests detected"
    return "Similar conversation topics"


def find_matches(
    self_id: str,
    message_text: str,
    self_topics: Sequence[str],
    candidate_profiles: Sequence[AnonymousProfile],
    settings: ScoringSettings | None = None,
) -> list[MatchCandidate]:
    """Best matches first, at most `settings.max_matches`, all above the threshold."""
    settings = settings or ScoringSettings()
    matches: list[MatchCandidate] = []

    for profile in candidate_profiles:
        if profile.user_id == self_id:
            continue

        topic = topic_score(self_topics, profile.preferred_topics)
        content = content_score(message_text, profile.interests)
        total = TOPIC_WEIGHT * topic + CONTENT_WEIGHT * content
        if total <= settings.match_threshold:
            continue

        matches.append(
            MatchCandidate(
                profile_id=profile.user_id,
                topic_score=topic,
                content_score=content,
                total=total,
                reason=match_reason(topic, content),
            )
        )

    matches.sort(key=lambda match: match.total, reverse=True)
    return matches[: settings.max_matches]
