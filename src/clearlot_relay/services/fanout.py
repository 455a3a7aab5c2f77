"""Turn domain events into persisted, broadcast notifications."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.core.errors import NotFoundError, RelayError, store_errors
from clearlot_relay.core.settings import settings
from clearlot_relay.models import (
    Message,
    Notification,
    NotificationPriority,
    NotificationType,
    Offer,
    Purchase,
    UserProfile,
    WatchlistEntry,
)
from clearlot_relay.schemas.notification import NotificationDraft, NotificationResponse
from clearlot_relay.services import templates
from clearlot_relay.services.notification_bus import NotificationBus
from clearlot_relay.services.notifications import NotificationStore

logger = logging.getLogger(__name__)


def profile_name(profile: UserProfile | None) -> str:
    """Best display name for a user, degrading to a placeholder."""
    if profile is None:
        return templates.UNKNOWN_USER_NAME
    return profile.display_name or profile.company or templates.UNKNOWN_USER_NAME


class NotificationFanOut:
    """Compute recipients and copy for each event, then persist and broadcast.

    Each recipient is handled in isolation: a failure for one is logged and
    the remaining recipients are still notified. Nothing is retried.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        store: NotificationStore,
        bus: NotificationBus,
        clock: Clock | None = None,
        *,
        price_drop_threshold: float | None = None,
        preview_length: int | None = None,
        action_url_prefix: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._bus = bus
        self._clock = clock or SystemClock()
        self.price_drop_threshold = (
            settings.price_drop_threshold if price_drop_threshold is None else price_drop_threshold
        )
        self.preview_length = preview_length or settings.message_preview_length
        self.action_url_prefix = (
            settings.action_url_prefix if action_url_prefix is None else action_url_prefix
        ).rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.action_url_prefix}/{path.lstrip('/')}"

    def _orders_url(self, user_id: str) -> str:
        return self._url(f"{user_id}/my-orders")

    async def deliver(self, draft: NotificationDraft) -> Notification | None:
        """Persist one notification and broadcast the stored copy."""
        try:
            notification = await self._store.add(draft)
        except (RelayError, SQLAlchemyError):
            logger.error(
                "Failed to persist %s notification for user %s",
                draft.type.value,
                draft.user_id,
                exc_info=True,
            )
            return None
        self._bus.publish(NotificationResponse.model_validate(notification))
        return notification

    async def _deliver_all(self, drafts: list[NotificationDraft]) -> list[Notification]:
        delivered: list[Notification] = []
        for draft in drafts:
            notification = await self.deliver(draft)
            if notification is not None:
                delivered.append(notification)
        return delivered

    async def notify_new_message(self, message: Message) -> Notification | None:
        with self._session_factory() as db, store_errors(db, "load message sender"):
            sender = db.get(UserProfile, message.sender_id)
        sender_name = profile_name(sender)
        sender_company = sender.company if sender is not None and sender.company else ""

        if message.content:
            preview = templates.message_preview(message.content, self.preview_length)
        else:
            preview = f"sent a {message.type}"

        return await self.deliver(
            NotificationDraft(
                user_id=message.receiver_id,
                type=NotificationType.MESSAGE,
                title=f"New message from {sender_name}",
                message=f"{sender_name}: {preview}",
                data={
                    "conversationId": message.conversation_id,
                    "messageId": message.id,
                    "senderId": message.sender_id,
                    "senderName": sender_name,
                    "senderCompany": sender_company,
                    "actionUrl": self._url(f"messages?conversation={message.conversation_id}"),
                },
                priority=NotificationPriority.MEDIUM,
            )
        )

    async def notify_purchase_created(self, purchase_id: str) -> Notification | None:
        """Tell the seller about a new order."""
        with self._session_factory() as db, store_errors(db, "load purchase"):
            purchase = self._purchase(db, purchase_id)
            offer = db.get(Offer, purchase.offer_id)
            buyer = db.get(UserProfile, purchase.buyer_id)

        offer_title = offer.title if offer is not None else templates.DEFAULT_OFFER_TITLE
        buyer_name = "A buyer"
        if buyer is not None:
            buyer_name = buyer.company or buyer.display_name or buyer_name
        title, body = templates.purchase_created_copy(buyer_name, offer_title, purchase.final_amount)
        return await self.deliver(
            NotificationDraft(
                user_id=purchase.seller_id,
                type=NotificationType.OFFER_PURCHASED,
                title=title,
                message=body,
                data={
                    "offerId": purchase.offer_id,
                    "purchaseId": purchase.id,
                    "amount": purchase.final_amount,
                    "actionUrl": self._orders_url(purchase.seller_id),
                },
                priority=NotificationPriority.HIGH,
            )
        )

    async def notify_order_status_change(self, purchase_id: str, status: str) -> list[Notification]:
        """Notify the buyer, and the seller for seller-facing statuses."""
        with self._session_factory() as db, store_errors(db, "load purchase"):
            purchase = self._purchase(db, purchase_id)
            offer = db.get(Offer, purchase.offer_id)
        offer_title = offer.title if offer is not None else templates.DEFAULT_OFFER_TITLE
        priority = templates.status_priority(status)

        def payload(user_id: str) -> dict[str, Any]:
            return {
                "purchaseId": purchase.id,
                "offerId": purchase.offer_id,
                "status": status,
                "actionUrl": self._orders_url(user_id),
            }

        title, body = templates.buyer_status_copy(status, offer_title)
        drafts = [
            NotificationDraft(
                user_id=purchase.buyer_id,
                type=NotificationType.ORDER_STATUS,
                title=title,
                message=body,
                data=payload(purchase.buyer_id),
                priority=priority,
            )
        ]
        if status in templates.SELLER_NOTIFIED_STATUSES:
            title, body = templates.seller_status_copy(status, offer_title)
            drafts.append(
                NotificationDraft(
                    user_id=purchase.seller_id,
                    type=NotificationType.ORDER_STATUS,
                    title=title,
                    message=body,
                    data=payload(purchase.seller_id),
                    priority=priority,
                )
            )
        return await self._deliver_all(drafts)

    async def check_and_notify_price_drop(self, offer_id: str) -> list[Notification]:
        """Alert watchers when the price fell past the threshold since the baseline.

        A missing baseline is seeded from the current price. After notifying,
        the baseline advances so the same drop is reported once.
        """
        with self._session_factory() as db, store_errors(db, "check price drop"):
            offer = db.get(Offer, offer_id)
            if offer is None:
                raise NotFoundError(f"Offer {offer_id} not found")
            previous, current = offer.previous_price, offer.price
            if previous is None or previous <= 0:
                offer.previous_price = current
                db.commit()
                return []
            change = (previous - current) / previous
            if change < self.price_drop_threshold:
                return []
            watchers = list(
                db.scalars(select(WatchlistEntry.user_id).where(WatchlistEntry.offer_id == offer_id))
            )
            offer_title = offer.title

        percentage = math.floor(change * 100 + 0.5)
        title, body = templates.price_drop_copy(offer_title, previous, current, percentage)
        drafts = [
            NotificationDraft(
                user_id=watcher,
                type=NotificationType.PRICE_DROP,
                title=title,
                message=body,
                data={
                    "offerId": offer_id,
                    "previousPrice": previous,
                    "newPrice": current,
                    "percentage": percentage,
                    "actionUrl": self._url(f"marketplace/offer/{offer_id}"),
                },
                priority=NotificationPriority.MEDIUM,
            )
            for watcher in watchers
        ]
        delivered = await self._deliver_all(drafts)

        with self._session_factory() as db, store_errors(db, "advance price baseline"):
            db.execute(
                update(Offer)
                .where(Offer.id == offer_id)
                .values(previous_price=current, last_price_update=self._clock.now())
                .execution_options(synchronize_session=False)
            )
            db.commit()
        logger.info(
            "Notified %d watcher(s) of a %d%% price drop on offer %s",
            len(delivered),
            percentage,
            offer_id,
        )
        return delivered

    async def record_price_change(
        self, offer_id: str, old_price: float, new_price: float
    ) -> list[Notification]:
        """Apply a price edit, seeding the baseline from `old_price` if absent."""
        with self._session_factory() as db, store_errors(db, "record price change"):
            offer = db.get(Offer, offer_id)
            if offer is None:
                raise NotFoundError(f"Offer {offer_id} not found")
            if offer.previous_price is None:
                offer.previous_price = old_price
            offer.price = new_price
            db.commit()
        return await self.check_and_notify_price_drop(offer_id)

    async def notify_verification_outcome(
        self, user_id: str, outcome: str, reason: str | None = None
    ) -> Notification | None:
        title, body = templates.verification_copy(outcome, reason)
        data: dict[str, Any] = {
            "verificationStatus": outcome,
            "actionUrl": self._url(f"{user_id}/profile"),
        }
        if reason:
            data["reason"] = reason
        return await self.deliver(
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.VERIFICATION_STATUS,
                title=title,
                message=body,
                data=data,
                priority=NotificationPriority.HIGH,
            )
        )

    async def notify_account_status(self, user_id: str, status: str) -> Notification | None:
        title, body = templates.account_status_copy(status)
        priority = (
            NotificationPriority.HIGH if status == "suspended" else NotificationPriority.MEDIUM
        )
        return await self.deliver(
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.ACCOUNT_STATUS,
                title=title,
                message=body,
                data={
                    "accountStatus": status,
                    "actionUrl": self._url(f"{user_id}/company-settings"),
                },
                priority=priority,
            )
        )

    async def notify_delivery_reminder(
        self, purchase: Purchase, reminder_count: int
    ) -> Notification | None:
        """Ask the buyer to confirm receipt of a shipped order."""
        with self._session_factory() as db, store_errors(db, "load offer"):
            offer = db.get(Offer, purchase.offer_id)
        offer_title = offer.title if offer is not None else templates.DEFAULT_OFFER_TITLE
        title, body = templates.delivery_reminder_copy(offer_title)
        return await self.deliver(
            NotificationDraft(
                user_id=purchase.buyer_id,
                type=NotificationType.ORDER_STATUS,
                title=title,
                message=body,
                data={
                    "purchaseId": purchase.id,
                    "offerId": purchase.offer_id,
                    "reminderCount": reminder_count,
                    "actionUrl": self._orders_url(purchase.buyer_id),
                },
                priority=NotificationPriority.HIGH,
            )
        )

    @staticmethod
    def _purchase(db: Session, purchase_id: str) -> Purchase:
        purchase = db.get(Purchase, purchase_id)
        if purchase is None:
            raise NotFoundError(f"Purchase {purchase_id} not found")
        return purchase
