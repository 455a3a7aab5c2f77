# src/clearlot_relay/schemas/events.py
"""Payloads posted by the checkout, catalog and verification workflows."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class StatusChangeEvent(BaseModel):
    """Explicit order status notification request."""

    status: str = Field(..., min_length=1)


class PriceChangeEvent(BaseModel):
    """An offer's price was edited."""

    old_price: float = Field(..., gt=0)
    new_price: float = Field(..., ge=0)


class VerificationEvent(BaseModel):
    """Outcome of a business verification review."""

    outcome: Literal["approved", "rejected", "pending", "not_submitted"]
    reason: str | None = None


class AccountStatusEvent(BaseModel):
    """An administrator changed a member's account status."""

    status: Literal["active", "inactive", "suspended", "pending"]
