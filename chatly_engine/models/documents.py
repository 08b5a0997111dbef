"""
Store document models.

These mirror the documents the messaging client keeps in the remote store.
Unknown fields are tolerated so older and newer clients can share documents.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Tier = Literal["free", "plus", "pro"]


class UserProfile(BaseModel):
    """User document (users/<user_id>)."""

    model_config = ConfigDict(extra="allow")

    user_id: str
    username: str = ""
    tier: Tier = "free"
    timezone: str = "UTC"
    smart_notifications: bool = True
    messages_today: int = 0
    messages_day: date | None = None
    work_hours_active: bool | None = None
    last_seen: datetime | None = None

    @property
    def is_premium(self) -> bool:
        return self.tier != "free"

    def messages_sent_on(self, day: date) -> int:
        """Daily counter value, treating a counter from a previous day as zero."""
        if self.messages_day != day:
            return 0
        return self.messages_today


class Chat(BaseModel):
    """Chat document (chats/<chat_id>)."""

    model_config = ConfigDict(extra="allow")

    chat_id: str
    participant_ids: list[str] = Field(default_factory=list)
    chat_name: str = ""
    is_group: bool = False
    is_anonymous: bool = False
    is_encrypted: bool = False
    max_participants: int = 25
    topic_tags: list[str] = Field(default_factory=list)
    retention_days: int | None = None
    last_message_at: datetime | None = None
    last_message_sender_id: str | None = None

    @property
    def is_full(self) -> bool:
        return len(self.participant_ids) >= self.max_participants

    def other_participants(self, user_id: str) -> list[str]:
        return [uid for uid in self.participant_ids if uid != user_id]


class Message(BaseModel):
    """Message document (messages/<message_id>)."""

    model_config = ConfigDict(extra="allow")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    chat_id: str
    sender_id: str
    text: str = ""
    timestamp: datetime
    expires_at: datetime | None = None
    read_by: list[str] = Field(default_factory=list)
    is_encrypted: bool = False
    envelope: dict[str, Any] | None = None
    reply_to_message_id: str | None = None
    forwarded_from: str | None = None
    is_anonymous: bool = False

    def to_document(self) -> dict[str, Any]:
        """Serialized form written to the store; ciphertext replaces text when encrypted."""
        data = self.model_dump(mode="json")
        if self.is_encrypted:
            data["text"] = ""
        return data


class AnonymousProfile(BaseModel):
    """Anonymous-feed profile used for interest matching."""

    user_id: str
    preferred_topics: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    last_active: datetime | None = None
