"""
Contact ranking - orders a user's contacts by how actively they chat.

Score per 1:1 chat:
    min(message_count * 0.1, 2.0)          volume, diminishing returns
    + 0.5 per message in the last 24h      recency
    + 1.0 / 0.5 responder latency bonus     (< 60 / < 180 minutes)
    + 0.5 * sentiment + 0.3 * pattern      premium tiers only
A contact's score is the sum over all 1:1 chats with them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta

from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.infrastructure.providers import Clock, SystemClock
from chatly_engine.models.documents import Chat, Message
from chatly_engine.models.scoring import EngagementSample, RankedContact
from chatly_engine.repositories.chat_repository import ChatRepository

from .lexicon import SENTIMENT_NEGATIVE, SENTIMENT_POSITIVE, count_hits

logger = get_logger(__name__)

VOLUME_WEIGHT = 0.1
VOLUME_CAP = 2.0
RECENT_WEIGHT = 0.5
RECENT_WINDOW = timedelta(hours=24)
FAST_RESPONSE_MINUTES = 60
SLOW_RESPONSE_MINUTES = 180
MAX_RESPONSE_GAP = timedelta(hours=24)
SENTIMENT_WEIGHT = 0.5
PATTERN_WEIGHT = 0.3


def average_responder_latency(messages: Sequence[Message], current_user_id: str) -> float | None:
    """
    Mean minutes the other side took to answer the current user.

    Only counts a message from the current user directly followed by one from
    someone else, within 24 hours. None when there is no such pair.
    """
    ordered = sorted(messages, key=lambda m: m.timestamp)
    gaps: list[float] = []
    for current, nxt in zip(ordered, ordered[1:]):
        if current.sender_id == current_user_id and nxt.sender_id != current_user_id:
            gap = nxt.timestamp - current.timestamp
            if gap < MAX_RESPONSE_GAP:
                gaps.append(gap.total_seconds() / 60)
    if not gaps:
        return None
    return sum(gaps) / len(gaps)


def sentiment_score(messages: Sequence[Message]) -> float:
    positive = sum(count_hits(m.text, SENTIMENT_POSITIVE) for m in messages)
    negative = sum(count_hits(m.text, SENTIMENT_NEGATIVE) for m in messages)
    if positive + negative == 0:
        return 0.5
    return positive / (positive + negative)


def engagement_pattern_score(messages: Sequence[Message]) -> float:
    """How smoothly activity is spread across the 24 hours of the day."""
    if not messages:
        return 0.0
    buckets = [0] * 24
    for message in messages:
        buckets[message.timestamp.hour] += 1
    peak = max(buckets)
    smoothness = sum(1.0 - abs(a - b) / peak for a, b in zip(buckets, buckets[1:]))
    return smoothness / 23


def build_engagement_sample(
    chat: Chat,
    messages: Sequence[Message],
    current_user_id: str,
    now: datetime,
    is_premium: bool = False,
) -> EngagementSample:
    others = chat.other_participants(current_user_id)
    cutoff = now - RECENT_WINDOW
    return EngagementSample(
        chat_id=chat.chat_id,
        other_user_id=others[0] if others else "",
        message_count=len(messages),
        recent_message_count=sum(1 for m in messages if m.timestamp > cutoff),
        avg_responder_latency_minutes=average_responder_latency(messages, current_user_id),
        sentiment_score=sentiment_score(messages) if is_premium else None,
        engagement_pattern_score=engagement_pattern_score(messages) if is_premium else None,
    )


def score_sample(sample: EngagementSample, is_premium: bool = False) -> float:
    score = min(sample.message_count * VOLUME_WEIGHT, VOLUME_CAP)
    score += sample.recent_message_count * RECENT_WEIGHT

    latency = sample.avg_responder_latency_minutes
    if latency is not None:
        if latency < FAST_RESPONSE_MINUTES:
            score += 1.0
        elif latency < SLOW_RESPONSE_MINUTES:
            score += 0.5

    if is_premium:
        score += SENTIMENT_WEIGHT * (sample.sentiment_score or 0.0)
        score += PATTERN_WEIGHT * (sample.engagement_pattern_score or 0.0)

    return score


def rank(
    candidates: Sequence[str],
    chats_by_candidate: Mapping[str, Sequence[Chat]],
    messages_by_chat: Mapping[str, Sequence[Message]],
    current_user_id: str,
    is_premium: bool = False,
    now: datetime | None = None,
) -> list[RankedContact]:
    """
    Rank candidate contacts by summed per-chat engagement, highest first.

    Ties keep the input order.
    """
    now = now or SystemClock().now()
    ranked: list[RankedContact] = []

    for candidate in candidates:
        total = 0.0
        chat_count = 0
        for chat in chats_by_candidate.get(candidate, ()):
            if chat.is_group:
                continue
            sample = build_engagement_sample(
                chat,
                messages_by_chat.get(chat.chat_id, ()),
                current_user_id,
                now,
                is_premium,
            )
            total += score_sample(sample, is_premium)
            chat_count += 1
        ranked.append(RankedContact(user_id=candidate, score=total, chat_count=chat_count))

    # list.sort is stable, so equal scores keep input order
    ranked.sort(key=lambda contact: contact.score, reverse=True)
    return ranked


class ContactRankingService:
    """Loads a user's 1:1 conversations through the gateway and ranks the contacts."""

    def __init__(
        self,
        repository: ChatRepository,
        clock: Clock | None = None,
        message_limit: int = 50,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._message_limit = message_limit

    async def rank_for_user(
        self,
        user_id: str,
        is_premium: bool,
        contact_ids: Sequence[str] | None = None,
    ) -> list[RankedContact]:
        chats = [
            chat
            for chat in await self._repository.get_chats_for_user(user_id)
            if not chat.is_group and not chat.is_anonymous
        ]

        chats_by_candidate: dict[str, list[Chat]] = {}
        for chat in chats:
            for other in chat.other_participants(user_id):
                chats_by_candidate.setdefault(other, []).append(chat)

        histories = await asyncio.gather(
            *(
                self._repository.get_recent_messages(chat.chat_id, limit=self._message_limit)
                for chat in chats
            )
        )
        messages_by_chat = {chat.chat_id: history for chat, history in zip(chats, histories)}

        candidates = list(contact_ids) if contact_ids is not None else list(chats_by_candidate)
        ranked = rank(
            candidates,
            chats_by_candidate,
            messages_by_chat,
            user_id,
            is_premium=is_premium,
            now=self._clock.now(),
        )

        logger.info(
            "Contacts ranked",
            user_id=user_id,
            candidates=len(candidates),
            chats=len(chats),
            premium=is_premium,
        )
        return ranked
