# src/clearlot_relay/schemas/message.py
"""Message-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from clearlot_relay.models.message import MessageType


class MessageCreate(BaseModel):
    """Schema for sending a message into a conversation."""

    receiver_id: str = Field(..., min_length=1)
    content: str = ""
    type: MessageType = MessageType.TEXT
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    reply_to: str | None = None


class MessageEdit(BaseModel):
    """Schema for replacing a message body."""

    content: str


class ReadReceipt(BaseModel):
    """Result of acknowledging a conversation as read."""

    conversation_id: str
    marked: int


class MessageResponse(BaseModel):
    """Schema for message information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    type: str
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    timestamp: datetime
    is_read: bool
    is_edited: bool
    edited_at: datetime | None = None
    reply_to: str | None = None
