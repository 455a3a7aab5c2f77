# src/clearlot_relay/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .conversations import messages_router
from .conversations import router as conversations_router
from .events import router as events_router
from .notifications import router as notifications_router
from .reminders import router as reminders_router
from .streams import router as streams_router

__all__ = [
    "conversations_router",
    "messages_router",
    "notifications_router",
    "events_router",
    "reminders_router",
    "streams_router",
]
