"""
Chat persistence helpers on top of the cache gateway.

Every read and write goes through `CacheGateway`, so lookups are memoized and
deduplicated and all outbound calls share the same admission bound.

Collections:
    users/<user_id>              UserProfile
    chats/<chat_id>              Chat
    messages/<message_id>        Message
    chat_messages/<chat_id>      {"messages": [Message, ...]} recent message index
    user_chats/<user_id>         {"chat_ids": [...]}
    anonymous_profiles/<user_id> AnonymousProfile
"""

import asyncio
from datetime import date, datetime

from pydantic import ValidationError

from chatly_engine.errors import InternalError, NotFoundError
from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.infrastructure.store.protocol import WriteOp
from chatly_engine.models.documents import AnonymousProfile, Chat, Message, UserProfile
from chatly_engine.services.gateway.cache_gateway import CacheGateway, document_key

logger = get_logger(__name__)

USERS = "users"
CHATS = "chats"
MESSAGES = "messages"
CHAT_MESSAGES = "chat_messages"
USER_CHATS = "user_chats"
ANONYMOUS_PROFILES = "anonymous_profiles"


class ChatRepository:
    def __init__(self, gateway: CacheGateway):
        self._gateway = gateway

    async def get_user(self, user_id: str) -> UserProfile:
        data = await self._gateway.fetch(document_key(USERS, user_id))
        if data is None:
            raise NotFoundError(f"User not found: {user_id}")
        return self._parse(UserProfile, {"user_id": user_id, **data}, "user")

    async def get_users(self, user_ids: list[str]) -> list[UserProfile]:
        """Fetch several profiles concurrently, skipping users that do not exist."""
        results = await asyncio.gather(
            *(self._gateway.fetch(document_key(USERS, uid)) for uid in user_ids)
        )
        return [
            self._parse(UserProfile, {"user_id": uid, **data}, "user")
            for uid, data in zip(user_ids, results)
            if data is not None
        ]

    async def get_chat(self, chat_id: str) -> Chat | None:
        data = await self._gateway.fetch(document_key(CHATS, chat_id))
        if data is None:
            return None
        return self._parse(Chat, {"chat_id": chat_id, **data}, "chat")

    async def get_chats_for_user(self, user_id: str) -> list[Chat]:
        index = await self._gateway.fetch(document_key(USER_CHATS, user_id))
        chat_ids = (index or {}).get("chat_ids", [])
        chats = await asyncio.gather(*(self.get_chat(chat_id) for chat_id in chat_ids))
        return [chat for chat in chats if chat is not None]

    async def get_recent_messages(self, chat_id: str, limit: int = 50) -> list[Message]:
        index = await self._gateway.fetch(document_key(CHAT_MESSAGES, chat_id))
        raw = (index or {}).get("messages", [])
        return [self._parse(Message, item, "message") for item in raw[-limit:]]

    async def get_anonymous_profiles(self, user_ids: list[str]) -> list[AnonymousProfile]:
        results = await asyncio.gather(
            *(self._gateway.fetch(document_key(ANONYMOUS_PROFILES, uid)) for uid in user_ids)
        )
        return [
            self._parse(AnonymousProfile, {"user_id": uid, **data}, "anonymous profile")
            for uid, data in zip(user_ids, results)
            if data is not None
        ]

    async def add_participant(self, chat: Chat, user_id: str) -> Chat:
        await self._gateway.write(
            [
                WriteOp(
                    "append",
                    CHATS,
                    chat.chat_id,
                    {"values": [user_id]},
                    target_field="participant_ids",
                ),
                WriteOp(
                    "append",
                    USER_CHATS,
                    user_id,
                    {"values": [chat.chat_id]},
                    target_field="chat_ids",
                ),
            ],
            operation="add participant",
        )
        logger.info("Participant joined chat", chat_id=chat.chat_id, user_id=user_id)
        return chat.model_copy(update={"participant_ids": [*chat.participant_ids, user_id]})

    async def save_message(self, message: Message, chat: Chat) -> None:
        """Persist the message, the chat's last-message fields and the index in one batch."""
        document = message.to_document()
        await self._gateway.write(
            [
                WriteOp("set", MESSAGES, message.message_id, document),
                WriteOp(
                    "update",
                    CHATS,
                    chat.chat_id,
                    {
                        "last_message_at": message.timestamp.isoformat(),
                        "last_message_sender_id": message.sender_id,
                    },
                ),
                WriteOp(
                    "append",
                    CHAT_MESSAGES,
                    chat.chat_id,
                    {"values": [document]},
                    target_field="messages",
                ),
            ],
            operation="save message",
        )

    async def record_message_sent(self, profile: UserProfile, day: date) -> None:
        count = profile.messages_sent_on(day) + 1
        await self._gateway.write(
            [
                WriteOp(
                    "update",
                    USERS,
                    profile.user_id,
                    {"messages_today": count, "messages_day": day.isoformat()},
                )
            ],
            operation="update message count",
        )

    async def touch_last_seen(self, user_id: str, now: datetime) -> None:
        await self._gateway.write(
            [WriteOp("update", USERS, user_id, {"last_seen": now.isoformat()})],
            operation="update last seen",
        )

    @staticmethod
    def _parse(model, data: dict, label: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error("Malformed document in store", document_type=label, error=str(e))
            raise InternalError(f"Malformed {label} document") from e
