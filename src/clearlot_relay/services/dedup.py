"""Bounded, restart-surviving ledger of already-handled event ids.

Guards side effects that must happen at most once even when the same event
is observed again (feed replays, process restarts). Only the newest
`capacity` ids are kept; older ones are forgotten.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime
from typing import Any

import redis
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.core.errors import TransientStoreError, store_errors
from clearlot_relay.core.settings import settings
from clearlot_relay.models import ProcessedEvent

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "purchases"


class DedupStore(ABC):
    """Set of processed event ids with bounded retention."""

    @abstractmethod
    def has_processed(self, event_id: str) -> bool:
        """Return True if `event_id` was already handled."""

    @abstractmethod
    def mark_processed(self, event_id: str) -> None:
        """Record `event_id` as handled, trimming beyond capacity."""

    @abstractmethod
    def discard(self, event_id: str) -> None:
        """Forget `event_id` so a later observation is handled again."""

    @abstractmethod
    def load(self) -> int:
        """Restore persisted state; return the number of ids retained."""


class SqlDedupStore(DedupStore):
    """Ledger persisted in the `processed_event` table.

    An in-memory index mirrors the newest ids in insertion order so trimming
    is deterministic even when several ids share a timestamp.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        namespace: str = DEFAULT_NAMESPACE,
        capacity: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.namespace = namespace
        self.capacity = capacity or settings.dedup_capacity
        self._clock = clock or SystemClock()
        self._recent: OrderedDict[str, datetime] = OrderedDict()

    def load(self) -> int:
        with self._session_factory() as db, store_errors(db, "load dedup ledger"):
            rows = db.execute(
                select(ProcessedEvent.event_id, ProcessedEvent.recorded_at)
                .where(ProcessedEvent.namespace == self.namespace)
                .order_by(ProcessedEvent.recorded_at.desc())
            ).all()
            keep, overflow = rows[: self.capacity], rows[self.capacity :]
            if overflow:
                self._delete(db, [row.event_id for row in overflow])
                db.commit()

        self._recent = OrderedDict(
            (row.event_id, row.recorded_at) for row in reversed(keep)
        )
        logger.info(
            "Loaded %d processed event id(s) for namespace %s", len(self._recent), self.namespace
        )
        return len(self._recent)

    def has_processed(self, event_id: str) -> bool:
        if event_id in self._recent:
            return True
        with self._session_factory() as db, store_errors(db, "check dedup ledger"):
            row = db.get(ProcessedEvent, (self.namespace, event_id))
        if row is None:
            return False
        # The mirror holds at most `capacity` ids; a full mirror defers to the table.
        if len(self._recent) < self.capacity:
            self._recent[event_id] = row.recorded_at
            self._recent.move_to_end(event_id, last=False)
        return True

    def mark_processed(self, event_id: str) -> None:
        now = self._clock.now()
        recent = OrderedDict(self._recent)
        recent[event_id] = now
        recent.move_to_end(event_id)
        evicted: list[str] = []
        while len(recent) > self.capacity:
            oldest, _ = recent.popitem(last=False)
            evicted.append(oldest)

        with self._session_factory() as db, store_errors(db, "mark event processed"):
            db.merge(ProcessedEvent(namespace=self.namespace, event_id=event_id, recorded_at=now))
            if evicted:
                self._delete(db, evicted)
            db.commit()
        self._recent = recent

    def discard(self, event_id: str) -> None:
        self._recent.pop(event_id, None)
        with self._session_factory() as db, store_errors(db, "discard processed event"):
            self._delete(db, [event_id])
            db.commit()

    def _delete(self, db: Session, event_ids: list[str]) -> None:
        db.execute(
            delete(ProcessedEvent)
            .where(
                ProcessedEvent.namespace == self.namespace,
                ProcessedEvent.event_id.in_(event_ids),
            )
            .execution_options(synchronize_session=False)
        )


class RedisDedupStore(DedupStore):
    """Ledger kept in a Redis sorted set scored by record time."""

    def __init__(
        self,
        client: Any | None = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        capacity: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._redis = client if client is not None else redis.from_url(settings.redis_url)
        self.namespace = namespace
        self.capacity = capacity or settings.dedup_capacity
        self._clock = clock or SystemClock()

    @property
    def key(self) -> str:
        return f"dedup:{self.namespace}"

    def load(self) -> int:
        try:
            self._redis.zremrangebyrank(self.key, 0, -(self.capacity + 1))
            return int(self._redis.zcard(self.key))
        except redis.RedisError as exc:
            raise TransientStoreError(f"dedup ledger unavailable: {exc}") from exc

    def has_processed(self, event_id: str) -> bool:
        try:
            return self._redis.zscore(self.key, event_id) is not None
        except redis.RedisError as exc:
            raise TransientStoreError(f"dedup ledger unavailable: {exc}") from exc

    def mark_processed(self, event_id: str) -> None:
        try:
            pipe = self._redis.pipeline()
            pipe.zadd(self.key, {event_id: self._clock.now().timestamp()})
            pipe.zremrangebyrank(self.key, 0, -(self.capacity + 1))
            pipe.execute()
        except redis.RedisError as exc:
            raise TransientStoreError(f"dedup ledger unavailable: {exc}") from exc

    def discard(self, event_id: str) -> None:
        try:
            self._redis.zrem(self.key, event_id)
        except redis.RedisError as exc:
            raise TransientStoreError(f"dedup ledger unavailable: {exc}") from exc


def build_dedup_store(
    session_factory: Callable[[], Session], clock: Clock | None = None
) -> DedupStore:
    """Return the ledger backend selected by `DEDUP_BACKEND`."""
    backend = settings.dedup_backend.lower()
    if backend == "redis":
        return RedisDedupStore(clock=clock)
    if backend != "database":
        logger.warning("Unknown DEDUP_BACKEND %r; using the database ledger", backend)
    return SqlDedupStore(session_factory, clock=clock)
