"""Reactions to purchase records created or updated by the checkout workflow."""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import update
from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.core.errors import NotFoundError, store_errors
from clearlot_relay.models import Purchase
from clearlot_relay.services.dedup import DedupStore
from clearlot_relay.services.fanout import NotificationFanOut
from clearlot_relay.services.reminders import ReminderScheduler

logger = logging.getLogger(__name__)

PENDING = "pending"
SHIPPED = "shipped"


class OrderEventMonitor:
    """Gate new-order notifications through the ledger and track status moves.

    A new purchase notifies its seller only the first time it is observed
    and only while it is still pending. Status changes are detected against
    the persisted `previous_status`, fanned out, then recorded.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dedup: DedupStore,
        fanout: NotificationFanOut,
        reminders: ReminderScheduler,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._dedup = dedup
        self._fanout = fanout
        self._reminders = reminders
        self._clock = clock or SystemClock()

    def _load(self, purchase_id: str) -> Purchase:
        with self._session_factory() as db, store_errors(db, "load purchase"):
            purchase = db.get(Purchase, purchase_id)
        if purchase is None:
            raise NotFoundError(f"Purchase {purchase_id} not found")
        return purchase

    async def handle_purchase_created(self, purchase_id: str) -> bool:
        """Notify the seller of a new order at most once; return whether it fired."""
        purchase = self._load(purchase_id)
        if purchase.previous_status is None:
            self._record_previous(purchase_id, purchase.status)
        if purchase.status != PENDING:
            self._dedup.discard(purchase_id)
            logger.debug(
                "Purchase %s already %s; skipping new-order notification",
                purchase_id,
                purchase.status,
            )
            return False
        if self._dedup.has_processed(purchase_id):
            logger.debug("Purchase %s already processed", purchase_id)
            return False

        self._dedup.mark_processed(purchase_id)
        notification = await self._fanout.notify_purchase_created(purchase_id)
        return notification is not None

    async def handle_purchase_updated(self, purchase_id: str) -> str | None:
        """React to a status move; return the new status, or None if unchanged."""
        purchase = self._load(purchase_id)
        status = purchase.status
        previous = purchase.previous_status or status
        if status == previous:
            if purchase.previous_status is None:
                self._record_previous(purchase_id, status)
            return None

        logger.info("Purchase %s moved %s -> %s", purchase_id, previous, status)
        if previous == PENDING:
            self._dedup.discard(purchase_id)

        await self._fanout.notify_order_status_change(purchase_id, status)
        self._record_previous(purchase_id, status)

        if status == SHIPPED:
            await self._reminders.start_reminder(purchase_id)
        elif previous == SHIPPED:
            await self._reminders.stop_reminder(purchase_id)
        return status

    def _record_previous(self, purchase_id: str, status: str) -> None:
        with self._session_factory() as db, store_errors(db, "record previous status"):
            db.execute(
                update(Purchase)
                .where(Purchase.id == purchase_id)
                .values(previous_status=status, last_status_update=self._clock.now())
                .execution_options(synchronize_session=False)
            )
            db.commit()
