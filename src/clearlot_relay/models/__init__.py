# src/clearlot_relay/models/__init__.py
"""SQLAlchemy models for the relay service."""

from .conversation import Conversation, ConversationUnread, pair_key_for
from .marketplace import PURCHASE_STATUSES, Offer, Purchase, UserProfile, WatchlistEntry
from .message import Message, MessageType
from .notification import AdminAlert, Notification, NotificationPriority, NotificationType
from .processed_event import ProcessedEvent

__all__ = [
    "Conversation", "ConversationUnread", "pair_key_for",
    "Message", "MessageType",
    "Notification", "NotificationPriority", "NotificationType", "AdminAlert",
    "Offer", "Purchase", "PURCHASE_STATUSES", "UserProfile", "WatchlistEntry",
    "ProcessedEvent",
]
