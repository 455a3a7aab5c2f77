"""Durable notification records and their owner-scoped operations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.core.errors import NotFoundError, PermissionDeniedError, store_errors
from clearlot_relay.core.settings import settings
from clearlot_relay.db.ids import new_id
from clearlot_relay.models import Notification
from clearlot_relay.schemas.notification import NotificationDraft
from clearlot_relay.services.change_feed import ChangeFeed, notifications_topic

logger = logging.getLogger(__name__)


def query_notifications(db: Session, user_id: str, limit: int) -> list[Notification]:
    """Return a user's notifications, newest first."""
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


class NotificationStore:
    """Persistence for Notification records.

    Every write publishes the recipient's notification topic after commit.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        feed: ChangeFeed,
        clock: Clock | None = None,
        *,
        id_factory: Callable[[], str] = new_id,
        list_limit: int | None = None,
        retention_days: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed
        self._clock = clock or SystemClock()
        self._id_factory = id_factory
        self.list_limit = list_limit or settings.notification_list_limit
        self.retention_days = retention_days or settings.notification_retention_days

    async def add(self, draft: NotificationDraft) -> Notification:
        notification = Notification(
            id=self._id_factory(),
            user_id=draft.user_id,
            type=draft.type.value,
            title=draft.title,
            message=draft.message,
            is_read=False,
            created_at=self._clock.now(),
            data=dict(draft.data),
            priority=draft.priority.value,
        )
        with self._session_factory() as db, store_errors(db, "add notification"):
            db.add(notification)
            db.commit()
        self._feed.publish(notifications_topic(draft.user_id))
        return notification

    async def get_notifications(
        self, requester_id: str, user_id: str, limit: int | None = None
    ) -> list[Notification]:
        """List a user's notifications; only the owner may read them."""
        if requester_id != user_id:
            logger.warning(
                "User %s attempted to read notifications of %s", requester_id, user_id
            )
            return []
        with self._session_factory() as db, store_errors(db, "list notifications"):
            return query_notifications(db, user_id, limit or self.list_limit)

    async def mark_notification_read(self, notification_id: str, user_id: str) -> None:
        with self._session_factory() as db, store_errors(db, "mark notification read"):
            notification = self._owned(db, notification_id, user_id)
            if notification.is_read:
                return
            notification.is_read = True
            db.commit()
        self._feed.publish(notifications_topic(user_id))

    async def mark_all_notifications_read(self, user_id: str) -> int:
        with self._session_factory() as db, store_errors(db, "mark all notifications read"):
            result = db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        if result.rowcount:
            self._feed.publish(notifications_topic(user_id))
        return result.rowcount

    async def delete_notification(self, notification_id: str, user_id: str) -> None:
        with self._session_factory() as db, store_errors(db, "delete notification"):
            notification = self._owned(db, notification_id, user_id)
            db.delete(notification)
            db.commit()
        self._feed.publish(notifications_topic(user_id))

    async def delete_all_notifications(self, user_id: str) -> int:
        with self._session_factory() as db, store_errors(db, "delete all notifications"):
            result = db.execute(
                delete(Notification)
                .where(Notification.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        if result.rowcount:
            self._feed.publish(notifications_topic(user_id))
        return result.rowcount

    async def cleanup_old_notifications(
        self, days: int | None = None, user_id: str | None = None
    ) -> int:
        """Delete notifications older than the retention window.

        Limited to one user when `user_id` is given, otherwise every user.
        """
        cutoff = self._clock.now() - timedelta(days=days or self.retention_days)
        with self._session_factory() as db, store_errors(db, "cleanup notifications"):
            stale = select(Notification.id, Notification.user_id).where(
                Notification.created_at < cutoff
            )
            if user_id is not None:
                stale = stale.where(Notification.user_id == user_id)
            rows = db.execute(stale).all()
            if not rows:
                return 0
            db.execute(
                delete(Notification)
                .where(Notification.id.in_([row.id for row in rows]))
                .execution_options(synchronize_session=False)
            )
            db.commit()
        owners = {row.user_id for row in rows}
        self._feed.publish(*(notifications_topic(owner) for owner in owners))
        logger.info("Removed %d notification(s) older than %s", len(rows), cutoff.isoformat())
        return len(rows)

    async def unread_count(self, user_id: str) -> int:
        with self._session_factory() as db, store_errors(db, "count unread notifications"):
            stmt = select(func.count()).select_from(Notification).where(
                Notification.user_id == user_id, Notification.is_read.is_(False)
            )
            return int(db.scalar(stmt) or 0)

    @staticmethod
    def _owned(db: Session, notification_id: str, user_id: str) -> Notification:
        notification = db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        if notification.user_id != user_id:
            raise PermissionDeniedError("Notification belongs to another user")
        return notification
