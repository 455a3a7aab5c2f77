# src/clearlot_relay/api/v1/endpoints/events.py
"""Inbound domain events from the checkout, catalog and account workflows.

The callers are marketplace services whose bearer tokens carry the event
scope; plain user tokens are refused.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from clearlot_relay.schemas.events import (
    AccountStatusEvent,
    PriceChangeEvent,
    StatusChangeEvent,
    VerificationEvent,
)

from ..dependencies import ServiceCallerDep, ServicesDep

router = APIRouter(prefix="/events", tags=["events"])


@router.post("/purchases/{purchase_id}/created")
async def purchase_created(
    purchase_id: str, _caller: ServiceCallerDep, services: ServicesDep
) -> dict[str, Any]:
    """A purchase record was created; notify the seller at most once."""
    notified = await services.orders.handle_purchase_created(purchase_id)
    return {"purchase_id": purchase_id, "notified": notified}


@router.post("/purchases/{purchase_id}/updated")
async def purchase_updated(
    purchase_id: str, _caller: ServiceCallerDep, services: ServicesDep
) -> dict[str, Any]:
    """A purchase record changed; fan out any status move."""
    status = await services.orders.handle_purchase_updated(purchase_id)
    return {"purchase_id": purchase_id, "status": status, "changed": status is not None}


@router.post("/purchases/{purchase_id}/status")
async def purchase_status(
    purchase_id: str,
    payload: StatusChangeEvent,
    _caller: ServiceCallerDep,
    services: ServicesDep,
) -> dict[str, Any]:
    """Explicitly send the status notifications for a purchase."""
    delivered = await services.fanout.notify_order_status_change(purchase_id, payload.status)
    return {"purchase_id": purchase_id, "delivered": len(delivered)}


@router.post("/offers/{offer_id}/price-changed")
async def offer_price_changed(
    offer_id: str,
    payload: PriceChangeEvent,
    _caller: ServiceCallerDep,
    services: ServicesDep,
) -> dict[str, Any]:
    delivered = await services.fanout.record_price_change(
        offer_id, payload.old_price, payload.new_price
    )
    return {"offer_id": offer_id, "delivered": len(delivered)}


@router.post("/users/{user_id}/verification")
async def verification_outcome(
    user_id: str,
    payload: VerificationEvent,
    _caller: ServiceCallerDep,
    services: ServicesDep,
) -> dict[str, Any]:
    notification = await services.fanout.notify_verification_outcome(
        user_id, payload.outcome, payload.reason
    )
    return {"user_id": user_id, "delivered": notification is not None}


@router.post("/users/{user_id}/account-status")
async def account_status(
    user_id: str,
    payload: AccountStatusEvent,
    _caller: ServiceCallerDep,
    services: ServicesDep,
) -> dict[str, Any]:
    notification = await services.fanout.notify_account_status(user_id, payload.status)
    return {"user_id": user_id, "delivered": notification is not None}
