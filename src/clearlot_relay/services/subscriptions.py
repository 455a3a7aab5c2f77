"""Live, ordered push streams built on the change feed.

Each subscription owns one change-feed listener and one task. The task emits
the current snapshot immediately, then re-reads and emits again whenever any
of its topics is published. Several writes landing while a snapshot is being
read collapse into one follow-up emission.

A failed read never stalls a stream: the subscriber receives an empty list
and the task retries after `retry_seconds`, or sooner if a write arrives.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Session

from clearlot_relay.core.errors import TransientStoreError, store_errors
from clearlot_relay.core.settings import settings
from clearlot_relay.models import Conversation
from clearlot_relay.schemas.message import MessageResponse
from clearlot_relay.schemas.notification import NotificationResponse
from clearlot_relay.services.change_feed import (
    ChangeFeed,
    FeedListener,
    Topic,
    conversations_topic,
    messages_topic,
    notifications_topic,
)
from clearlot_relay.services.conversations import conversation_views
from clearlot_relay.services.messaging import query_conversation_messages
from clearlot_relay.services.notifications import query_notifications

logger = logging.getLogger(__name__)

Snapshot = Sequence[BaseModel]
UpdateCallback = Callable[[list[Any]], Awaitable[None] | None]
Unsubscribe = Callable[[], None]
Loader = Callable[[Session], Snapshot]
T = TypeVar("T")


def _noop() -> None:
    return None


def _excludes(db: Session, conversation_id: str, requester_id: str) -> bool:
    conversation = db.get(Conversation, conversation_id)
    return conversation is not None and not conversation.has_participant(requester_id)


class SubscriptionBroker:
    """Factory and owner of every live subscription."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        feed: ChangeFeed,
        *,
        retry_seconds: float | None = None,
        notification_limit: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed
        self.retry_seconds = (
            settings.subscription_retry_seconds if retry_seconds is None else retry_seconds
        )
        self.notification_limit = notification_limit or settings.notification_list_limit
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def active_subscriptions(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def subscribe_to_conversation_list(
        self, requester_id: str, user_id: str, on_update: UpdateCallback
    ) -> Unsubscribe:
        """Stream the user's active conversations, newest activity first."""
        if requester_id != user_id:
            logger.warning(
                "User %s attempted to subscribe to conversations of %s", requester_id, user_id
            )
            return _noop

        def load(db: Session) -> Snapshot:
            return conversation_views(db, user_id)

        return self._start(f"conversations:{user_id}", [conversations_topic(user_id)], load, on_update)

    def subscribe_to_conversation_messages(
        self, requester_id: str, conversation_id: str, on_update: UpdateCallback
    ) -> Unsubscribe:
        """Stream a conversation's messages in ascending timestamp order.

        An outsider to an existing conversation gets a no-op subscription; a
        conversation that does not exist streams empty updates.
        """
        try:
            outsider = self._read(
                f"messages:{conversation_id}",
                lambda db: _excludes(db, conversation_id, requester_id),
            )
        except TransientStoreError:
            # Re-checked on every read below.
            outsider = False
        if outsider:
            logger.warning(
                "User %s is not a participant of conversation %s", requester_id, conversation_id
            )
            return _noop

        def load(db: Session) -> Snapshot:
            if _excludes(db, conversation_id, requester_id):
                return []
            return [
                MessageResponse.model_validate(message)
                for message in query_conversation_messages(db, conversation_id)
            ]

        return self._start(
            f"messages:{conversation_id}", [messages_topic(conversation_id)], load, on_update
        )

    def subscribe_to_notifications(
        self, requester_id: str, user_id: str, on_update: UpdateCallback
    ) -> Unsubscribe:
        """Stream the user's notifications, newest first."""
        if requester_id != user_id:
            logger.warning(
                "User %s attempted to subscribe to notifications of %s", requester_id, user_id
            )
            return _noop

        def load(db: Session) -> Snapshot:
            return [
                NotificationResponse.model_validate(notification)
                for notification in query_notifications(db, user_id, self.notification_limit)
            ]

        return self._start(f"notifications:{user_id}", [notifications_topic(user_id)], load, on_update)

    def _start(
        self, name: str, topics: list[Topic], load: Loader, on_update: UpdateCallback
    ) -> Unsubscribe:
        listener = self._feed.listen(*topics)
        task = asyncio.get_running_loop().create_task(self._run(name, listener, load, on_update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            listener.close()
            if not task.done():
                task.cancel()

        return unsubscribe

    def _read(self, name: str, load: Callable[[Session], T]) -> T:
        with self._session_factory() as db, store_errors(db, f"subscription {name}"):
            return load(db)

    async def _run(
        self, name: str, listener: FeedListener, load: Loader, on_update: UpdateCallback
    ) -> None:
        try:
            while not listener.closed:
                timeout: float | None = None
                try:
                    snapshot = list(self._read(name, load))
                except TransientStoreError:
                    logger.warning(
                        "Subscription %s could not read; delivering an empty list", name
                    )
                    snapshot = []
                    timeout = self.retry_seconds
                except Exception:
                    logger.exception(
                        "Subscription %s failed to build a snapshot; delivering an empty list",
                        name,
                    )
                    snapshot = []
                    timeout = self.retry_seconds
                await self._emit(name, on_update, snapshot)
                await listener.wait(timeout)
        finally:
            listener.close()

    @staticmethod
    async def _emit(name: str, on_update: UpdateCallback, snapshot: list[Any]) -> None:
        try:
            result = on_update(snapshot)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Subscriber callback for %s failed", name)

    async def close(self) -> None:
        """Cancel every live subscription."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
