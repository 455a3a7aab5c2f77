# src/clearlot_relay/models/conversation.py
"""Models describing two-party conversations and their unread counters."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clearlot_relay.db.ids import new_id
from clearlot_relay.db.session import Base
from clearlot_relay.db.time import UTCDateTime, utcnow


def pair_key_for(user_a: str, user_b: str) -> str:
    """Return the order-independent key for a participant pair."""
    first, second = sorted((user_a, user_b))
    return f"{first}|{second}"


class Conversation(Base):
    """Durable record pairing exactly two users.

    `last_message` is a denormalized copy of the newest Message so list views
    never need to touch the message log.
    """

    __tablename__ = "conversation"
    __table_args__ = (
        # One active conversation per unordered pair.
        Index(
            "uq_conversation_active_pair",
            "pair_key",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_conversation_participant_a", "participant_a"),
        Index("ix_conversation_participant_b", "participant_b"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    participant_a: Mapped[str] = mapped_column(String(128), nullable=False)
    participant_b: Mapped[str] = mapped_column(String(128), nullable=False)
    pair_key: Mapped[str] = mapped_column(String(257), nullable=False)

    last_message: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    last_message_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    unread_rows: Mapped[list[ConversationUnread]] = relationship(
        "ConversationUnread",
        back_populates="conversation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def participants(self) -> list[str]:
        """Both participant ids."""
        return [self.participant_a, self.participant_b]

    @property
    def unread_count(self) -> dict[str, int]:
        """Map of participant id to unread message count."""
        return {row.user_id: row.unread_count for row in self.unread_rows}

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.participant_a, self.participant_b)

    def counterpart(self, user_id: str) -> str:
        """Return the participant that is not `user_id`."""
        return self.participant_b if user_id == self.participant_a else self.participant_a


class ConversationUnread(Base):
    """Per-participant unread counter embedded in a conversation.

    Kept as its own row so increments are a single-row atomic update.
    """

    __tablename__ = "conversation_unread"

    conversation_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    conversation: Mapped[Conversation] = relationship("Conversation", back_populates="unread_rows")
