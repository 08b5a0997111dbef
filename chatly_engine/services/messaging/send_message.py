"""
Send-message pipeline.

Gates an outbound message (tier limit, membership, validation, moderation),
persists it in one batch write, then runs best-effort side paths: counters,
last-seen, conversation health, contact ranking and notification timing.
Failures on the side paths are logged and never undo a delivered message.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from chatly_engine.config import MessagingSettings
from chatly_engine.errors import (
    EncryptionError,
    InputValidationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
)
from chatly_engine.infrastructure.observability.logging import (
    get_logger,
    log_side_effect_failure,
    message_context,
)
from chatly_engine.infrastructure.providers import Clock, SystemClock
from chatly_engine.models.documents import Chat, Message, UserProfile
from chatly_engine.models.scoring import HealthScore, RankedContact
from chatly_engine.repositories.chat_repository import ChatRepository
from chatly_engine.services.encryption.envelope import EnvelopeEncryptor
from chatly_engine.services.moderation.screening import ModerationService
from chatly_engine.services.scoring.contact_ranking import ContactRankingService
from chatly_engine.services.scoring.conversation_health import ConversationHealthScorer
from chatly_engine.services.scoring.notification_timing import NotificationTimingPredictor

logger = get_logger(__name__)

HEALTH_MIN_PARTICIPANTS = 3


@dataclass(slots=True)
class SendResult:
    message: Message
    health: HealthScore | None = None
    icebreakers: list[str] = field(default_factory=list)
    ranking: list[RankedContact] | None = None
    notify_at: dict[str, datetime] = field(default_factory=dict)


class SendMessagePipeline:
    def __init__(
        self,
        repository: ChatRepository,
        moderation: ModerationService,
        health_scorer: ConversationHealthScorer,
        ranking: ContactRankingService,
        notifications: NotificationTimingPredictor,
        encryptor: EnvelopeEncryptor | None = None,
        clock: Clock | None = None,
        settings: MessagingSettings | None = None,
    ):
        self._repository = repository
        self._moderation = moderation
        self._health_scorer = health_scorer
        self._ranking = ranking
        self._notifications = notifications
        self._encryptor = encryptor
        self._clock = clock or SystemClock()
        self._settings = settings or MessagingSettings()
        self._sender_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    async def execute(
        self,
        sender_id: str,
        chat_id: str,
        text: str,
        reply_to_message_id: str | None = None,
        forwarded_from: str | None = None,
    ) -> SendResult:
        """
        Validate, screen, persist and score one message.

        Raises:
            NotFoundError: unknown sender or chat
            RateLimitedError: daily tier limit reached
            PermissionDeniedError: sender cannot post in the chat
            InputValidationError: empty, too long, or too many mentions
            ModerationRejectedError: banned term or toxic content
            EncryptionError: encrypted chat could not be sealed
        """
        with message_context(chat_id=chat_id, sender_id=sender_id):
            return await self._send(
                sender_id, chat_id, text, reply_to_message_id, forwarded_from
            )

    async def _send(
        self,
        sender_id: str,
        chat_id: str,
        text: str,
        reply_to_message_id: str | None,
        forwarded_from: str | None,
    ) -> SendResult:
        # The limit check and the counter bump for one sender never interleave.
        async with self._sender_turn(sender_id):
            now = self._clock.now()

            sender = await self._repository.get_user(sender_id)
            self._check_daily_limit(sender, now)

            chat = await self._resolve_chat(chat_id, sender_id)
            cleaned = await self._validate_content(text, chat)

            message = Message(
                chat_id=chat.chat_id,
                sender_id=sender_id,
                text=cleaned,
                timestamp=now,
                expires_at=now
                + timedelta(days=chat.retention_days or self._settings.default_retention_days),
                read_by=[sender_id],
                is_encrypted=chat.is_encrypted,
                reply_to_message_id=reply_to_message_id,
                forwarded_from=forwarded_from,
                is_anonymous=chat.is_anonymous,
            )
            if chat.is_encrypted:
                message = self._encrypt(message, chat)

            await self._repository.save_message(message, chat)
            logger.info(
                "Message sent",
                message_id=message.message_id,
                is_group=chat.is_group,
                is_encrypted=message.is_encrypted,
            )

            await self._update_sender(sender, now)

        result = SendResult(message=message)
        await self._score_after_send(result, chat, sender)
        await self._schedule_notifications(result, chat, sender_id)
        return result

    @asynccontextmanager
    async def _sender_turn(self, sender_id: str) -> AsyncIterator[None]:
        lock, holders = self._sender_locks.get(sender_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._sender_locks[sender_id] = (lock, holders + 1)
        try:
            async with lock:
                yield
        finally:
            lock, holders = self._sender_locks[sender_id]
            if holders == 1:
                del self._sender_locks[sender_id]
            else:
                self._sender_locks[sender_id] = (lock, holders - 1)

    def _check_daily_limit(self, sender: UserProfile, now: datetime) -> None:
        limit = self._settings.message_limit_for(sender.tier)
        sent = sender.messages_sent_on(now.date())
        if sent >= limit:
            logger.info(
                "Daily message limit reached",
                user_id=sender.user_id,
                tier=sender.tier,
                limit=limit,
            )
            raise RateLimitedError(
                "Daily message limit exceeded for your tier",
                key=f"daily_messages:{sender.user_id}",
                capacity=limit,
                code="DAILY_LIMIT",
            )

    async def _resolve_chat(self, chat_id: str, sender_id: str) -> Chat:
        chat = await self._repository.get_chat(chat_id)
        if chat is None:
            raise NotFoundError(f"Chat not found: {chat_id}")

        if sender_id in chat.participant_ids:
            return chat

        if chat.is_anonymous and not chat.is_full:
            return await self._repository.add_participant(chat, sender_id)

        raise PermissionDeniedError("User is not a participant in this chat")

    async def _validate_content(self, text: str, chat: Chat) -> str:
        trimmed = text.strip()
        if not trimmed:
            raise InputValidationError("Message cannot be empty")
        if len(trimmed) > self._settings.max_message_length:
            raise InputValidationError(
                f"Message exceeds maximum length of {self._settings.max_message_length} characters"
            )

        screened = await self._moderation.screen(trimmed)
        if not screened.text:
            raise InputValidationError("Message is empty after sanitization")

        if chat.is_group and screened.text.count("@") > self._settings.max_group_mentions:
            raise InputValidationError("Too many @ mentions in group message")

        return screened.text

    def _encrypt(self, message: Message, chat: Chat) -> Message:
        if self._encryptor is None:
            raise EncryptionError("Chat is encrypted but no encryptor is configured")

        recipients = chat.other_participants(message.sender_id)
        envelope = self._encryptor.encrypt(message.text, recipients)
        return message.model_copy(update={"envelope": envelope.to_document()})

    async def _update_sender(self, sender: UserProfile, now: datetime) -> None:
        try:
            await self._repository.record_message_sent(sender, now.date())
        except Exception as e:
            log_side_effect_failure("update message count", e, user_id=sender.user_id)

        try:
            await self._repository.touch_last_seen(sender.user_id, now)
        except Exception as e:
            log_side_effect_failure("update last seen", e, user_id=sender.user_id)

    async def _score_after_send(self, result: SendResult, chat: Chat, sender: UserProfile) -> None:
        if chat.is_group and len(chat.participant_ids) >= HEALTH_MIN_PARTICIPANTS:
            try:
                messages = await self._repository.get_recent_messages(
                    chat.chat_id, limit=self._settings.recent_message_limit
                )
                result.health = self._health_scorer.score(chat, messages)
                result.icebreakers = self._health_scorer.icebreakers_for(chat, result.health)
                if result.icebreakers:
                    logger.info(
                        "Icebreakers suggested",
                        chat_id=chat.chat_id,
                        composite=round(result.health.composite, 3),
                        suggestions=len(result.icebreakers),
                    )
            except Exception as e:
                log_side_effect_failure("conversation health", e, chat_id=chat.chat_id)

        elif not chat.is_group and not chat.is_anonymous:
            try:
                result.ranking = await self._ranking.rank_for_user(
                    sender.user_id, sender.is_premium
                )
            except Exception as e:
                log_side_effect_failure("contact ranking", e, user_id=sender.user_id)

    async def _schedule_notifications(self, result: SendResult, chat: Chat, sender_id: str) -> None:
        recipient_ids = chat.other_participants(sender_id)
        if not recipient_ids:
            return

        try:
            recipients = await self._repository.get_users(recipient_ids)
        except Exception as e:
            log_side_effect_failure("notification timing", e, chat_id=chat.chat_id)
            return

        for recipient in recipients:
            try:
                result.notify_at[recipient.user_id] = self._notifications.predict_for(recipient)
            except Exception as e:
                log_side_effect_failure(
                    "notification timing", e, chat_id=chat.chat_id, recipient_id=recipient.user_id
                )
