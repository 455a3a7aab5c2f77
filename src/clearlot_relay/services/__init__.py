# src/clearlot_relay/services/__init__.py
"""Business logic services for the relay."""

from .conversations import ConversationDirectory
from .dedup import DedupStore, RedisDedupStore, SqlDedupStore
from .fanout import NotificationFanOut
from .messaging import MessageStore
from .notification_bus import NotificationBus
from .notifications import NotificationStore
from .order_events import OrderEventMonitor
from .reminders import ReminderScheduler
from .runtime import RelayServices, build_services, get_services
from .subscriptions import SubscriptionBroker

__all__ = [
    "ConversationDirectory",
    "DedupStore", "RedisDedupStore", "SqlDedupStore",
    "MessageStore",
    "NotificationBus", "NotificationFanOut", "NotificationStore",
    "OrderEventMonitor",
    "ReminderScheduler",
    "RelayServices", "build_services", "get_services",
    "SubscriptionBroker",
]
