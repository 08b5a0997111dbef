"""
Conversation health scoring for group chats.

composite = 0.4 * participation balance
          + 0.3 * response time
          + 0.2 * positivity
          + 0.1 * engagement consistency

Every component is in [0, 1], so the composite is too. Chats that are not
groups of at least three people score 1.0 across the board.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from chatly_engine.config import ScoringSettings
from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.models.documents import Chat, Message
from chatly_engine.models.scoring import HealthScore

from .icebreakers import suggest_icebreakers
from .lexicon import TONE_NEGATIVE, TONE_POSITIVE, clamp, count_hits, mean_and_stddev

logger = get_logger(__name__)

PARTICIPATION_WEIGHT = 0.4
RESPONSE_WEIGHT = 0.3
POSITIVITY_WEIGHT = 0.2
CONSISTENCY_WEIGHT = 0.1
MIN_GROUP_SIZE = 3
POSITIVITY_STEP = 0.1


def participation_balance(messages: Sequence[Message], participant_ids: Sequence[str]) -> float:
    """1 - min(stddev / mean, 1) over per-participant message counts."""
    if len(participant_ids) < 2 or not messages:
        return 1.0

    members = set(participant_ids)
    counts = Counter(m.sender_id for m in messages if m.sender_id in members)
    per_participant = [counts.get(uid, 0) for uid in participant_ids]
    mean, stddev = mean_and_stddev(per_participant)
    if mean == 0:
        return 1.0
    return 1.0 - min(stddev / mean, 1.0)


def response_time_score(
    messages: Sequence[Message],
    window_minutes: float = 60.0,
    neutral: float = 0.5,
) -> float:
    """Average turn-taking latency mapped to [0, 1]; `neutral` when nobody answered in time."""
    if len(messages) < 2:
        return 1.0

    ordered = sorted(messages, key=lambda m: m.timestamp)
    gaps = []
    for previous, current in zip(ordered, ordered[1:]):
        if current.sender_id == previous.sender_id:
            continue
        minutes = (current.timestamp - previous.timestamp).total_seconds() / 60
        if minutes < window_minutes:
            gaps.append(minutes)

    if not gaps:
        return neutral
    average = sum(gaps) / len(gaps)
    return max(0.0, 1.0 - average / window_minutes)


def positivity_score(messages: Sequence[Message], neutral: float = 0.5) -> float:
    score = neutral
    for message in messages:
        net = count_hits(message.text, TONE_POSITIVE) - count_hits(message.text, TONE_NEGATIVE)
        score += net * POSITIVITY_STEP
    return clamp(score)


def engagement_consistency(messages: Sequence[Message]) -> float:
    """1 - min(coefficient of variation of daily counts, 1) across active days."""
    daily = Counter(m.timestamp.date() for m in messages)
    if len(daily) < 2:
        return 1.0
    mean, stddev = mean_and_stddev(list(daily.values()))
    return 1.0 - min(stddev / mean, 1.0)


class ConversationHealthScorer:
    def __init__(self, settings: ScoringSettings | None = None):
        self._settings = settings or ScoringSettings()

    def score(self, chat: Chat, messages: Sequence[Message]) -> HealthScore:
        if not chat.is_group or len(chat.participant_ids) < MIN_GROUP_SIZE:
            return HealthScore(
                group_id=chat.chat_id,
                participation_balance=1.0,
                response_time_score=1.0,
                positivity_score=1.0,
                engagement_consistency=1.0,
                composite=1.0,
            )

        participation = participation_balance(messages, chat.participant_ids)
        response = response_time_score(
            messages,
            window_minutes=self._settings.response_window_minutes,
            neutral=self._settings.neutral_response_score,
        )
        positivity = positivity_score(messages, neutral=self._settings.neutral_positivity_score)
        consistency = engagement_consistency(messages)

        composite = clamp(
            PARTICIPATION_WEIGHT * participation
            + RESPONSE_WEIGHT * response
            + POSITIVITY_WEIGHT * positivity
            + CONSISTENCY_WEIGHT * consistency
        )

        logger.debug(
            "Conversation health scored",
            chat_id=chat.chat_id,
            participants=len(chat.participant_ids),
            messages=len(messages),
            composite=round(composite, 3),
        )
        return HealthScore(
            group_id=chat.chat_id,
            participation_balance=participation,
            response_time_score=response,
            positivity_score=positivity,
            engagement_consistency=consistency,
            composite=composite,
        )

    def icebreakers_for(self, chat: Chat, health: HealthScore) -> list[str]:
        return suggest_icebreakers(
            health.composite,
            chat.topic_tags,
            len(chat.participant_ids),
            threshold=self._settings.health_threshold,
            limit=self._settings.max_icebreakers,
        )
