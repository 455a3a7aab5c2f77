"""Composition root: builds every relay component exactly once."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.services.admin_alerts import AdminAlertService
from clearlot_relay.services.blob_store import BlobStore, build_blob_store
from clearlot_relay.services.change_feed import ChangeFeed
from clearlot_relay.services.conversations import ConversationDirectory
from clearlot_relay.services.dedup import DedupStore, build_dedup_store
from clearlot_relay.services.fanout import NotificationFanOut
from clearlot_relay.services.messaging import MessageStore
from clearlot_relay.services.notification_bus import NotificationBus
from clearlot_relay.services.notifications import NotificationStore
from clearlot_relay.services.order_events import OrderEventMonitor
from clearlot_relay.services.reminders import ReminderScheduler
from clearlot_relay.services.scheduler import AsyncioScheduler, Scheduler
from clearlot_relay.services.subscriptions import SubscriptionBroker

logger = logging.getLogger(__name__)


@dataclass
class RelayServices:
    """Every long-lived component, wired together."""

    feed: ChangeFeed
    bus: NotificationBus
    blob_store: BlobStore
    dedup: DedupStore
    conversations: ConversationDirectory
    messages: MessageStore
    notifications: NotificationStore
    fanout: NotificationFanOut
    alerts: AdminAlertService
    reminders: ReminderScheduler
    orders: OrderEventMonitor
    subscriptions: SubscriptionBroker

    async def startup(self) -> None:
        """Restore the dedup ledger and resume reminder chains."""
        retained = self.dedup.load()
        resumed = await self.reminders.reconcile_all()
        logger.info(
            "Relay started: %d ledger entries, %d reminder chain(s) resumed",
            retained,
            len(resumed),
        )

    async def shutdown(self) -> None:
        await self.subscriptions.close()
        await self.reminders.shutdown()


def build_services(
    session_factory: Callable[[], Session],
    *,
    clock: Clock | None = None,
    scheduler: Scheduler | None = None,
    blob_store: BlobStore | None = None,
    dedup_store: DedupStore | None = None,
) -> RelayServices:
    """Construct the component graph around one store handle."""
    clock = clock or SystemClock()
    scheduler = scheduler or AsyncioScheduler(clock)
    feed = ChangeFeed()
    bus = NotificationBus()
    blob_store = blob_store or build_blob_store()
    dedup = dedup_store or build_dedup_store(session_factory, clock)

    notifications = NotificationStore(session_factory, feed, clock)
    fanout = NotificationFanOut(session_factory, notifications, bus, clock)
    alerts = AdminAlertService(session_factory, clock)
    reminders = ReminderScheduler(session_factory, scheduler, fanout, alerts)
    return RelayServices(
        feed=feed,
        bus=bus,
        blob_store=blob_store,
        dedup=dedup,
        conversations=ConversationDirectory(session_factory, feed, clock),
        messages=MessageStore(session_factory, feed, blob_store, fanout, clock),
        notifications=notifications,
        fanout=fanout,
        alerts=alerts,
        reminders=reminders,
        orders=OrderEventMonitor(session_factory, dedup, fanout, reminders, clock),
        subscriptions=SubscriptionBroker(session_factory, feed),
    )


_services: RelayServices | None = None


def get_services() -> RelayServices:
    """Return the process-wide component graph, building it on first use."""
    global _services
    if _services is None:
        from clearlot_relay.db.session import SessionLocal

        _services = build_services(SessionLocal)
    return _services


def reset_services(services: RelayServices | None = None) -> None:
    """Replace (or clear) the process-wide instance."""
    global _services
    _services = services
