# src/clearlot_relay/models/processed_event.py
"""Models supporting at-most-once handling of replayed events."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from clearlot_relay.db.session import Base
from clearlot_relay.db.time import UTCDateTime, utcnow


class ProcessedEvent(Base):
    """Record indicating that an event id has already been acted on."""

    __tablename__ = "processed_event"
    __table_args__ = (Index("ix_processed_event_recorded", "namespace", "recorded_at"),)

    # (namespace, event_id) -> existence means "already handled".
    namespace: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
