"""Live broadcast of freshly persisted notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

from clearlot_relay.schemas.notification import NotificationResponse

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[NotificationResponse], None]


class NotificationBus:
    """Per-user broadcast channel for in-app toasts and popups.

    Publishing is fire-and-forget: a failing handler is logged and the other
    handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[NotificationHandler]] = defaultdict(list)

    def subscribe(self, user_id: str, on_notification: NotificationHandler) -> Callable[[], None]:
        """Register a handler and return an idempotent unsubscribe callable."""
        self._handlers[user_id].append(on_notification)

        def unsubscribe() -> None:
            handlers = self._handlers.get(user_id)
            if handlers is None or on_notification not in handlers:
                return
            handlers.remove(on_notification)
            if not handlers:
                del self._handlers[user_id]

        return unsubscribe

    def publish(self, notification: NotificationResponse) -> int:
        """Deliver to every handler of the recipient; return how many succeeded."""
        delivered = 0
        for handler in list(self._handlers.get(notification.user_id, ())):
            try:
                handler(notification)
            except Exception:
                logger.exception(
                    "Notification handler failed for user %s (notification %s)",
                    notification.user_id,
                    notification.id,
                )
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, user_id: str) -> int:
        return len(self._handlers.get(user_id, ()))
