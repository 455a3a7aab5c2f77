# src/clearlot_relay/models/message.py
"""Models describing messages exchanged inside a conversation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clearlot_relay.db.ids import new_id
from clearlot_relay.db.session import Base
from clearlot_relay.db.time import UTCDateTime


class MessageType(str, Enum):
    """Kinds of message payload."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class Message(Base):
    """One entry of a conversation's append-only log.

    `timestamp` is the sole ordering key and strictly increases per conversation.
    """

    __tablename__ = "message"
    __table_args__ = (
        Index("ix_message_conversation_timestamp", "conversation_id", "timestamp"),
        Index("ix_message_unread", "conversation_id", "receiver_id", "is_read"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("conversation.id"), nullable=False
    )
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=MessageType.TEXT.value)

    # Attachment metadata; the bytes live in the blob store.
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reply_to: Mapped[str | None] = mapped_column(String(32), nullable=True)

    def summary(self) -> dict[str, Any]:
        """Return the denormalized copy stored on the parent conversation."""
        payload: dict[str, Any] = {
            "id": self.id,
            "conversationId": self.conversation_id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "content": self.content,
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "isRead": self.is_read,
            "isEdited": self.is_edited,
        }
        if self.edited_at is not None:
            payload["editedAt"] = self.edited_at.isoformat()
        for key, value in (
            ("fileUrl", self.file_url),
            ("fileName", self.file_name),
            ("fileSize", self.file_size),
            ("replyTo", self.reply_to),
        ):
            if value:
                payload[key] = value
        return payload
