# src/clearlot_relay/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    conversations_router,
    events_router,
    messages_router,
    notifications_router,
    reminders_router,
    streams_router,
)

__all__ = [
    "conversations_router",
    "messages_router",
    "notifications_router",
    "events_router",
    "reminders_router",
    "streams_router",
]
