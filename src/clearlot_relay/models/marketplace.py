# src/clearlot_relay/models/marketplace.py
"""Marketplace records owned by other workflows and read by the relay.

Purchases, offers, watchlists and profiles are written by checkout, catalog
and account tooling. The relay reads them for recipients and message copy and
writes only the tracking columns it owns (previous status, price baseline and
the embedded reminder state).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from clearlot_relay.db.ids import new_id
from clearlot_relay.db.session import Base
from clearlot_relay.db.time import UTCDateTime, utcnow

PURCHASE_STATUSES = ("pending", "approved", "rejected", "shipped", "delivered", "completed")


class UserProfile(Base):
    """Public profile fields of a marketplace member."""

    __tablename__ = "user_profile"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_logo: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="not_submitted"
    )
    account_status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")


class Offer(Base):
    """Clearance listing with the baseline used for price-drop alerts."""

    __tablename__ = "offer"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    seller_id: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    previous_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_price_update: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class WatchlistEntry(Base):
    """A user watching an offer."""

    __tablename__ = "watchlist_entry"
    __table_args__ = (UniqueConstraint("user_id", "offer_id", name="uq_watchlist_user_offer"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    offer_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class Purchase(Base):
    """Order record with the delivery-reminder state embedded on it."""

    __tablename__ = "purchase"
    __table_args__ = (
        Index("ix_purchase_buyer_status", "buyer_id", "status"),
        Index("ix_purchase_seller_status", "seller_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    offer_id: Mapped[str] = mapped_column(String(32), nullable=False)
    buyer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(128), nullable=False)
    final_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    previous_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    last_status_update: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    purchase_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    shipped_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Reminder state; mutated only through field-scoped updates.
    reminder_shipped_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reminder_last_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reminder_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reminder_admin_notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)
