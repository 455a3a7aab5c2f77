"""Per-purchase delivery reminder chains.

While a purchase is shipped, the buyer is reminded once per interval to
confirm receipt. After the escalation threshold an admin alert is raised
exactly once. Reminder state lives on the purchase row so a restarted
process can resume the chain where it left off.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import ColumnElement, or_, select, update
from sqlalchemy.orm import Session

from clearlot_relay.core.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    TransientStoreError,
    store_errors,
)
from clearlot_relay.core.settings import settings
from clearlot_relay.models import Purchase
from clearlot_relay.services.admin_alerts import AdminAlertService
from clearlot_relay.services.fanout import NotificationFanOut
from clearlot_relay.services.scheduler import CancelHandle, Scheduler

logger = logging.getLogger(__name__)

SHIPPED = "shipped"


class ReminderScheduler:
    """Owns one timer per purchase with an active reminder chain."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        scheduler: Scheduler,
        fanout: NotificationFanOut,
        alerts: AdminAlertService,
        *,
        interval: timedelta | None = None,
        escalation_after: timedelta | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._scheduler = scheduler
        self._fanout = fanout
        self._alerts = alerts
        self.interval = interval or timedelta(seconds=settings.reminder_interval_seconds)
        self.escalation_after = escalation_after or timedelta(
            seconds=settings.reminder_escalation_seconds
        )
        self._timers: dict[str, CancelHandle] = {}

    def has_timer(self, purchase_id: str) -> bool:
        return purchase_id in self._timers

    @property
    def active_timers(self) -> int:
        return len(self._timers)

    def _arm(self, purchase_id: str, due: datetime) -> None:
        previous = self._timers.pop(purchase_id, None)
        if previous is not None:
            previous.cancel()
        delay = max(due - self._scheduler.now(), timedelta(0))

        async def fire() -> None:
            await self._tick(purchase_id)

        self._timers[purchase_id] = self._scheduler.after(delay, fire)
        logger.debug("Reminder for purchase %s armed for %s", purchase_id, due.isoformat())

    async def start_reminder(self, purchase_id: str, *, requester_id: str | None = None) -> None:
        """Begin (or restart) the reminder chain of a shipped purchase.

        History from an earlier chain (count, escalation flag, shipped
        instant) is kept; only a never-initialized purchase starts from zero.
        """
        now = self._scheduler.now()
        with self._session_factory() as db, store_errors(db, "start reminder"):
            purchase = db.get(Purchase, purchase_id)
            if purchase is None:
                raise NotFoundError(f"Purchase {purchase_id} not found")
            if requester_id is not None and not purchase.has_participant(requester_id):
                raise PermissionDeniedError("Only the buyer or seller may start reminders")
            if purchase.status != SHIPPED:
                raise InvalidStateError(
                    f"Purchase {purchase_id} is {purchase.status}, not {SHIPPED}"
                )

            if purchase.reminder_shipped_at is None:
                purchase.reminder_shipped_at = purchase.shipped_at or now
                purchase.reminder_last_sent_at = None
                purchase.reminder_count = 0
                purchase.reminder_admin_notified = False
            purchase.reminder_active = True
            db.commit()
            shipped_at = purchase.reminder_shipped_at

        first = shipped_at + self.interval
        if first <= now:
            first = now + self.interval
        self._arm(purchase_id, first)
        logger.info("Started delivery reminders for purchase %s", purchase_id)

    async def stop_reminder(self, purchase_id: str, *, requester_id: str | None = None) -> None:
        """Cancel the chain and persist it as inactive. Safe to repeat."""
        if requester_id is not None:
            with self._session_factory() as db, store_errors(db, "check reminder access"):
                purchase = db.get(Purchase, purchase_id)
            if purchase is None:
                raise NotFoundError(f"Purchase {purchase_id} not found")
            if not purchase.has_participant(requester_id):
                raise PermissionDeniedError("Only the buyer or seller may stop reminders")
        self.cancel(purchase_id)
        with self._session_factory() as db, store_errors(db, "stop reminder"):
            result = db.execute(
                update(Purchase)
                .where(Purchase.id == purchase_id, Purchase.reminder_active.is_(True))
                .values(reminder_active=False)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        if result.rowcount:
            logger.info("Stopped delivery reminders for purchase %s", purchase_id)

    def cancel(self, purchase_id: str) -> None:
        """Drop the in-memory timer without touching persisted state."""
        handle = self._timers.pop(purchase_id, None)
        if handle is not None:
            handle.cancel()

    async def reconcile(self, user_id: str) -> list[str]:
        """Start or resume chains for every shipped purchase the user takes part in."""
        return await self._reconcile(
            or_(Purchase.buyer_id == user_id, Purchase.seller_id == user_id)
        )

    async def reconcile_all(self) -> list[str]:
        """Start or resume every shipped purchase's chain (process start)."""
        return await self._reconcile(None)

    async def _reconcile(self, scope: ColumnElement[bool] | None) -> list[str]:
        with self._session_factory() as db, store_errors(db, "reconcile reminders"):
            stmt = select(Purchase).where(Purchase.status == SHIPPED)
            if scope is not None:
                stmt = stmt.where(scope)
            purchases = list(db.scalars(stmt))

        touched: list[str] = []
        for purchase in purchases:
            if not purchase.reminder_active:
                await self.start_reminder(purchase.id)
            elif not self.has_timer(purchase.id):
                self._resume(purchase)
            else:
                continue
            touched.append(purchase.id)
        return touched

    def _resume(self, purchase: Purchase) -> None:
        now = self._scheduler.now()
        anchor = (
            purchase.reminder_last_sent_at
            or purchase.reminder_shipped_at
            or purchase.shipped_at
            or now
        )
        due = max(anchor + self.interval, now)
        self._arm(purchase.id, due)
        logger.info(
            "Resumed delivery reminders for purchase %s (%d sent so far)",
            purchase.id,
            purchase.reminder_count,
        )

    async def _tick(self, purchase_id: str) -> None:
        self._timers.pop(purchase_id, None)
        try:
            await self._send_reminder(purchase_id)
        except TransientStoreError:
            logger.warning(
                "Reminder tick for purchase %s failed; retrying in %s",
                purchase_id,
                self.interval,
                exc_info=True,
            )
            self._arm(purchase_id, self._scheduler.now() + self.interval)

    async def _send_reminder(self, purchase_id: str) -> None:
        now = self._scheduler.now()
        with self._session_factory() as db, store_errors(db, "delivery reminder tick"):
            purchase = db.get(Purchase, purchase_id)
            if purchase is None or purchase.status != SHIPPED:
                logger.info("Purchase %s is no longer shipped; ending reminders", purchase_id)
                if purchase is not None and purchase.reminder_active:
                    purchase.reminder_active = False
                    db.commit()
                return
            if not purchase.reminder_active:
                return

            last_sent = purchase.reminder_last_sent_at
            if last_sent is not None and now - last_sent < self.interval:
                self._arm(purchase_id, last_sent + self.interval)
                return

            db.execute(
                update(Purchase)
                .where(Purchase.id == purchase_id)
                .values(
                    reminder_count=Purchase.reminder_count + 1,
                    reminder_last_sent_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            db.refresh(purchase)
            shipped_at = purchase.reminder_shipped_at or purchase.shipped_at or now
            count = purchase.reminder_count

        await self._fanout.notify_delivery_reminder(purchase, count)
        if now - shipped_at >= self.escalation_after:
            self._escalate(purchase, shipped_at, count)

        with self._session_factory() as db, store_errors(db, "reload reminder state"):
            still_active = db.scalar(
                select(Purchase.id).where(
                    Purchase.id == purchase_id,
                    Purchase.status == SHIPPED,
                    Purchase.reminder_active.is_(True),
                )
            )
        if still_active is not None:
            self._arm(purchase_id, now + self.interval)

    def _escalate(self, purchase: Purchase, shipped_at: datetime, count: int) -> None:
        """Raise the admin alert once; the flag flip decides the single winner."""
        with self._session_factory() as db, store_errors(db, "escalate reminder"):
            result = db.execute(
                update(Purchase)
                .where(Purchase.id == purchase.id, Purchase.reminder_admin_notified.is_(False))
                .values(reminder_admin_notified=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                return
            self._alerts.record_delivery_escalation(
                db, purchase, shipped_at=shipped_at, reminder_count=count
            )
            db.commit()

    async def shutdown(self) -> None:
        for purchase_id in list(self._timers):
            self.cancel(purchase_id)
