# tests/services/test_reminders.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from clearlot_relay.core.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    TransientStoreError,
)
from clearlot_relay.models import AdminAlert, Notification, Purchase
from clearlot_relay.services.reminders import ReminderScheduler
from clearlot_relay.services.scheduler import ManualScheduler

HOUR = timedelta(hours=1)


def _reminders_sent(session_factory, buyer_id: str = "buyer") -> list[Notification]:
    with session_factory() as db:
        stmt = select(Notification).where(
            Notification.user_id == buyer_id, Notification.title == "Please confirm receipt"
        )
        return list(db.scalars(stmt))


def _alerts(session_factory) -> list[AdminAlert]:
    with session_factory() as db:
        return list(db.scalars(select(AdminAlert)))


@pytest.mark.asyncio
async def test_reminders_tick_hourly_and_escalate_once(
    services, scheduler, clock, make_purchase, session_factory, fetch
) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())

    await services.reminders.start_reminder(purchase.id)
    assert services.reminders.has_timer(purchase.id)

    await scheduler.advance(5 * HOUR)
    assert fetch(Purchase, purchase.id).reminder_count == 5
    assert _alerts(session_factory) == []

    await scheduler.advance(HOUR)
    stored = fetch(Purchase, purchase.id)
    assert stored.reminder_count == 6
    assert stored.reminder_admin_notified is True
    alerts = _alerts(session_factory)
    assert len(alerts) == 1
    assert alerts[0].kind == "delivery_reminder"
    assert alerts[0].purchase_id == purchase.id
    assert alerts[0].payload["reminderCount"] == 6

    await scheduler.advance(3 * HOUR)
    assert fetch(Purchase, purchase.id).reminder_count == 9
    assert len(_alerts(session_factory)) == 1
    assert len(_reminders_sent(session_factory)) == 9


@pytest.mark.asyncio
async def test_restart_resumes_without_duplicating_history(
    services, scheduler, clock, make_purchase, session_factory, fetch
) -> None:
    shipped = clock.now()
    purchase = make_purchase(status="shipped", shipped_at=shipped)
    await services.reminders.start_reminder(purchase.id)
    await scheduler.advance(3 * HOUR)
    assert fetch(Purchase, purchase.id).reminder_count == 3

    # A fresh process: new timers, same storage.
    restarted_scheduler = ManualScheduler(clock)
    restarted = ReminderScheduler(
        session_factory, restarted_scheduler, services.fanout, services.alerts
    )
    assert await restarted.reconcile_all() == [purchase.id]
    assert restarted_scheduler.next_due() == shipped + 4 * HOUR

    await restarted_scheduler.advance(3 * HOUR)

    stored = fetch(Purchase, purchase.id)
    assert stored.reminder_count == 6
    assert stored.reminder_last_sent_at == shipped + 6 * HOUR
    assert len(_reminders_sent(session_factory)) == 6
    assert len(_alerts(session_factory)) == 1

    assert await restarted.reconcile_all() == []


@pytest.mark.asyncio
async def test_late_start_fires_one_interval_from_now(
    services, scheduler, clock, make_purchase
) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now() - 3 * HOUR)

    await services.reminders.start_reminder(purchase.id)

    assert scheduler.next_due() == clock.now() + HOUR


@pytest.mark.asyncio
async def test_stop_is_idempotent(services, scheduler, clock, make_purchase, fetch) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())
    await services.reminders.start_reminder(purchase.id)

    await services.reminders.stop_reminder(purchase.id)
    await services.reminders.stop_reminder(purchase.id)

    assert not services.reminders.has_timer(purchase.id)
    assert fetch(Purchase, purchase.id).reminder_active is False
    assert await scheduler.advance(2 * HOUR) == 0
    assert fetch(Purchase, purchase.id).reminder_count == 0


@pytest.mark.asyncio
async def test_only_participants_may_stop(services, scheduler, clock, make_purchase, fetch) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())
    await services.reminders.start_reminder(purchase.id)

    with pytest.raises(PermissionDeniedError):
        await services.reminders.stop_reminder(purchase.id, requester_id="stranger")
    with pytest.raises(NotFoundError):
        await services.reminders.stop_reminder("missing", requester_id="buyer")

    assert services.reminders.has_timer(purchase.id)
    assert fetch(Purchase, purchase.id).reminder_active is True
    assert await scheduler.advance(HOUR) == 1

    await services.reminders.stop_reminder(purchase.id, requester_id="seller")
    assert fetch(Purchase, purchase.id).reminder_active is False


@pytest.mark.asyncio
async def test_restart_keeps_existing_history(
    services, scheduler, clock, make_purchase, fetch
) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())
    await services.reminders.start_reminder(purchase.id)
    await scheduler.advance(2 * HOUR)
    await services.reminders.stop_reminder(purchase.id)

    await services.reminders.start_reminder(purchase.id)

    stored = fetch(Purchase, purchase.id)
    assert stored.reminder_active is True
    assert stored.reminder_count == 2


@pytest.mark.asyncio
async def test_tick_deactivates_when_purchase_left_shipped(
    services, scheduler, clock, make_purchase, session_factory, fetch
) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())
    await services.reminders.start_reminder(purchase.id)

    with session_factory() as db:
        db.execute(update(Purchase).where(Purchase.id == purchase.id).values(status="delivered"))
        db.commit()

    await scheduler.advance(HOUR)

    stored = fetch(Purchase, purchase.id)
    assert stored.reminder_active is False
    assert stored.reminder_count == 0
    assert not services.reminders.has_timer(purchase.id)
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_early_tick_rearms_from_last_sent(
    services, scheduler, clock, make_purchase, session_factory, fetch
) -> None:
    shipped = clock.now()
    purchase = make_purchase(status="shipped", shipped_at=shipped)
    await services.reminders.start_reminder(purchase.id)
    with session_factory() as db:
        db.execute(
            update(Purchase)
            .where(Purchase.id == purchase.id)
            .values(reminder_last_sent_at=shipped + timedelta(minutes=30), reminder_count=1)
        )
        db.commit()

    await scheduler.advance(HOUR)

    assert fetch(Purchase, purchase.id).reminder_count == 1
    assert scheduler.next_due() == shipped + timedelta(minutes=90)


@pytest.mark.asyncio
async def test_store_failure_retries_next_interval(
    services, scheduler, clock, make_purchase, mocker, fetch
) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())
    await services.reminders.start_reminder(purchase.id)
    mocker.patch.object(
        services.reminders, "_send_reminder", side_effect=TransientStoreError("store down")
    )

    await scheduler.advance(HOUR)
    assert fetch(Purchase, purchase.id).reminder_count == 0
    assert services.reminders.has_timer(purchase.id)

    mocker.stopall()
    await scheduler.advance(HOUR)
    assert fetch(Purchase, purchase.id).reminder_count == 1


@pytest.mark.asyncio
async def test_start_validation(services, make_purchase) -> None:
    pending = make_purchase(status="pending")
    shipped = make_purchase(status="shipped")

    with pytest.raises(NotFoundError):
        await services.reminders.start_reminder("missing")
    with pytest.raises(InvalidStateError):
        await services.reminders.start_reminder(pending.id)
    with pytest.raises(PermissionDeniedError):
        await services.reminders.start_reminder(shipped.id, requester_id="stranger")

    await services.reminders.start_reminder(shipped.id, requester_id="buyer")
    assert services.reminders.has_timer(shipped.id)


@pytest.mark.asyncio
async def test_reconcile_starts_user_chains(services, clock, make_purchase) -> None:
    mine = make_purchase(status="shipped", shipped_at=clock.now())
    make_purchase(buyer_id="someone-else", status="shipped", shipped_at=clock.now())
    make_purchase(status="approved")

    touched = await services.reminders.reconcile("buyer")

    assert touched == [mine.id]
    assert services.reminders.active_timers == 1
    assert await services.reminders.reconcile("buyer") == []


@pytest.mark.asyncio
async def test_shutdown_cancels_timers(services, scheduler, clock, make_purchase) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())
    await services.reminders.start_reminder(purchase.id)

    await services.reminders.shutdown()

    assert services.reminders.active_timers == 0
    assert scheduler.pending == 0
