# src/clearlot_relay/schemas/notification.py
"""Notification-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clearlot_relay.models.notification import NotificationPriority, NotificationType


class NotificationDraft(BaseModel):
    """A notification about to be persisted for one recipient."""

    user_id: str = Field(..., min_length=1)
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.MEDIUM


class NotificationResponse(BaseModel):
    """Schema for notification information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime
    data: dict[str, Any]
    priority: str
