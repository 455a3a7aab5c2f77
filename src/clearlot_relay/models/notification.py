# src/clearlot_relay/models/notification.py
"""Models for user notifications and admin-facing alerts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clearlot_relay.db.ids import new_id
from clearlot_relay.db.session import Base
from clearlot_relay.db.time import UTCDateTime, utcnow


class NotificationType(str, Enum):
    """Closed set of notification kinds."""

    MESSAGE = "message"
    PURCHASE = "purchase"
    PAYMENT = "payment"
    OFFER_PURCHASED = "offer_purchased"
    ORDER_STATUS = "order_status"
    PRICE_DROP = "price_drop"
    VERIFICATION_STATUS = "verification_status"
    WATCHLIST = "watchlist"
    SYSTEM = "system"
    REPORT = "report"
    ACCOUNT_STATUS = "account_status"
    OFFER_SALES_STATUS = "offer_sales_status"


class NotificationPriority(str, Enum):
    """Display urgency of a notification."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Notification(Base):
    """Durable notification owned by its recipient.

    Immutable after creation except for `is_read`.
    """

    __tablename__ = "notification"
    __table_args__ = (
        Index("ix_notification_user_created", "user_id", "created_at"),
        Index("ix_notification_user_unread", "user_id", "is_read"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    priority: Mapped[str] = mapped_column(
        String(8), nullable=False, default=NotificationPriority.MEDIUM.value
    )


class AdminAlert(Base):
    """Admin dashboard record raised when a reminder chain escalates."""

    __tablename__ = "admin_alert"
    __table_args__ = (Index("ix_admin_alert_status_created", "status", "created_at"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    purchase_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
