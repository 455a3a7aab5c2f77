# src/clearlot_relay/schemas/conversation.py
"""Conversation-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConversationCreate(BaseModel):
    """Schema for opening (or reopening) a conversation with another user."""

    other_user_id: str = Field(..., min_length=1, description="Id of the other participant")


class ParticipantProfile(BaseModel):
    """Public profile of the other side of a conversation."""

    id: str
    name: str
    company: str = ""
    avatar: str | None = None
    is_online: bool = False


class ConversationView(BaseModel):
    """Conversation joined with the other participant's profile."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    participants: list[str]
    last_message: dict[str, Any] | None = None
    last_message_at: datetime
    unread_count: dict[str, int]
    is_active: bool
    created_at: datetime
    updated_at: datetime
    other_participant: ParticipantProfile | None = None
