"""Admin-facing escalation records."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.core.errors import NotFoundError, store_errors
from clearlot_relay.db.ids import new_id
from clearlot_relay.models import AdminAlert, Offer, Purchase, UserProfile
from clearlot_relay.services import templates

logger = logging.getLogger(__name__)

DELIVERY_REMINDER = "delivery_reminder"
ALERT_PENDING = "pending"
ALERT_RESOLVED = "resolved"


class AdminAlertService:
    """Create, list and resolve admin alerts."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        *,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._id_factory = id_factory

    def record_delivery_escalation(
        self,
        db: Session,
        purchase: Purchase,
        *,
        shipped_at: datetime,
        reminder_count: int,
    ) -> AdminAlert:
        """Add an overdue-delivery alert to the caller's transaction."""
        now = self._clock.now()
        hours = (now - shipped_at).total_seconds() / 3600
        offer = db.get(Offer, purchase.offer_id)
        buyer = db.get(UserProfile, purchase.buyer_id)
        seller = db.get(UserProfile, purchase.seller_id)
        buyer_name = (buyer.company or buyer.display_name) if buyer else None
        seller_name = (seller.company or seller.display_name) if seller else None
        offer_title = offer.title if offer is not None else templates.DEFAULT_OFFER_TITLE

        title, description = templates.delivery_escalation_copy(
            buyer_name or templates.UNKNOWN_USER_NAME,
            seller_name or templates.UNKNOWN_USER_NAME,
            offer_title,
            hours,
        )
        alert = AdminAlert(
            id=self._id_factory(),
            kind=DELIVERY_REMINDER,
            purchase_id=purchase.id,
            title=title,
            description=description,
            status=ALERT_PENDING,
            payload={
                "purchaseId": purchase.id,
                "buyerId": purchase.buyer_id,
                "sellerId": purchase.seller_id,
                "offerTitle": offer_title,
                "shippedAt": shipped_at.isoformat(),
                "reminderCount": reminder_count,
            },
            created_at=now,
        )
        db.add(alert)
        logger.warning(
            "Escalated purchase %s to admins after %.1f hours without receipt", purchase.id, hours
        )
        return alert

    async def list_alerts(self, status: str | None = None) -> list[AdminAlert]:
        with self._session_factory() as db, store_errors(db, "list admin alerts"):
            stmt = select(AdminAlert).order_by(AdminAlert.created_at.desc())
            if status is not None:
                stmt = stmt.where(AdminAlert.status == status)
            return list(db.scalars(stmt))

    async def resolve_alert(self, alert_id: str) -> None:
        with self._session_factory() as db, store_errors(db, "resolve admin alert"):
            alert = db.get(AdminAlert, alert_id)
            if alert is None:
                raise NotFoundError(f"Admin alert {alert_id} not found")
            alert.status = ALERT_RESOLVED
            db.commit()
