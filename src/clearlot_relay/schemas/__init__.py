# src/clearlot_relay/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .conversation import ConversationCreate, ConversationView, ParticipantProfile
from .events import AccountStatusEvent, PriceChangeEvent, StatusChangeEvent, VerificationEvent
from .message import MessageCreate, MessageEdit, MessageResponse, ReadReceipt
from .notification import NotificationDraft, NotificationResponse

__all__ = [
    "ConversationCreate", "ConversationView", "ParticipantProfile",
    "MessageCreate", "MessageEdit", "MessageResponse", "ReadReceipt",
    "NotificationDraft", "NotificationResponse",
    "AccountStatusEvent", "PriceChangeEvent", "StatusChangeEvent", "VerificationEvent",
]
