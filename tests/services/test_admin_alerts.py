# tests/services/test_admin_alerts.py
from __future__ import annotations

from datetime import timedelta

import pytest

from clearlot_relay.core.errors import NotFoundError


@pytest.mark.asyncio
async def test_escalation_alert_names_both_parties(
    services, session_factory, make_purchase, make_profile, clock
) -> None:
    make_profile("buyer", display_name="Mei", company="Mei Imports")
    make_profile("seller", display_name="Sam")
    shipped = clock.now()
    purchase = make_purchase(status="shipped", shipped_at=shipped)
    clock.advance(timedelta(hours=6))

    with session_factory() as db:
        alert = services.alerts.record_delivery_escalation(
            db, purchase, shipped_at=shipped, reminder_count=6
        )
        db.commit()

    assert alert.kind == "delivery_reminder"
    assert alert.status == "pending"
    assert alert.title == "Buyer has not confirmed receipt"
    assert "Mei Imports" in alert.description
    assert "seller: Sam" in alert.description
    assert "6 hours" in alert.description
    assert alert.payload["reminderCount"] == 6
    assert alert.payload["shippedAt"] == shipped.isoformat()


@pytest.mark.asyncio
async def test_resolve_moves_alert_out_of_pending(
    services, session_factory, make_purchase, clock
) -> None:
    purchase = make_purchase(status="shipped", shipped_at=clock.now())
    with session_factory() as db:
        alert = services.alerts.record_delivery_escalation(
            db, purchase, shipped_at=clock.now(), reminder_count=1
        )
        db.commit()

    assert [a.id for a in await services.alerts.list_alerts("pending")] == [alert.id]

    await services.alerts.resolve_alert(alert.id)

    assert await services.alerts.list_alerts("pending") == []
    assert [a.status for a in await services.alerts.list_alerts()] == ["resolved"]
    with pytest.raises(NotFoundError):
        await services.alerts.resolve_alert("missing")
