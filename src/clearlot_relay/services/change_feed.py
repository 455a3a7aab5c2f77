"""In-process mutation feed keyed by topic.

Every committed write publishes the topics it touched; subscribers hold a
listener whose wake-up flag is set on publish. Listeners never carry data, so
a burst of writes collapses into a single wake-up and the subscriber re-reads
the current state.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable

logger = logging.getLogger(__name__)

Topic = tuple[str, str]


def conversations_topic(user_id: str) -> Topic:
    """Topic touched by any change to a user's conversation list."""
    return ("conversations", user_id)


def messages_topic(conversation_id: str) -> Topic:
    """Topic touched by any change to a conversation's message log."""
    return ("messages", conversation_id)


def notifications_topic(user_id: str) -> Topic:
    """Topic touched by any change to a user's notifications."""
    return ("notifications", user_id)


class FeedListener:
    """Wake-up handle owned by exactly one subscriber."""

    def __init__(self, feed: ChangeFeed, topics: Iterable[Topic]) -> None:
        self._feed = feed
        self.topics: tuple[Topic, ...] = tuple(topics)
        self._event = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def notify(self) -> None:
        self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for the next publish on any topic.

        Returns True when woken by a change, False on timeout. The flag is
        cleared before returning so changes published afterwards wake the
        next wait.
        """
        try:
            if timeout is None:
                await self._event.wait()
            else:
                await asyncio.wait_for(self._event.wait(), timeout)
        except TimeoutError:
            return False
        self._event.clear()
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed.detach(self)


class ChangeFeed:
    """Registry of listeners per topic."""

    def __init__(self) -> None:
        self._listeners: dict[Topic, set[FeedListener]] = defaultdict(set)

    def listen(self, *topics: Topic) -> FeedListener:
        listener = FeedListener(self, topics)
        for topic in listener.topics:
            self._listeners[topic].add(listener)
        return listener

    def detach(self, listener: FeedListener) -> None:
        for topic in listener.topics:
            registered = self._listeners.get(topic)
            if registered is None:
                continue
            registered.discard(listener)
            if not registered:
                del self._listeners[topic]

    def publish(self, *topics: Topic) -> None:
        """Wake every listener registered on any of `topics`."""
        woken: set[FeedListener] = set()
        for topic in topics:
            woken.update(self._listeners.get(topic, ()))
        for listener in woken:
            listener.notify()
        if woken:
            logger.debug("Change feed woke %d listener(s) for %s", len(woken), topics)

    def listener_count(self, topic: Topic) -> int:
        return len(self._listeners.get(topic, ()))
