# src/clearlot_relay/api/v1/endpoints/reminders.py
"""Delivery reminder controls."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, status

from ..dependencies import CurrentUserDep, ServicesDep

router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.post("/reconcile")
async def reconcile(current_user: CurrentUserDep, services: ServicesDep) -> dict[str, Any]:
    """Start or resume reminder chains for the caller's shipped orders."""
    touched = await services.reminders.reconcile(current_user)
    return {"purchases": touched}


@router.post("/{purchase_id}/start", status_code=status.HTTP_202_ACCEPTED)
async def start(
    purchase_id: str, current_user: CurrentUserDep, services: ServicesDep
) -> dict[str, str]:
    await services.reminders.start_reminder(purchase_id, requester_id=current_user)
    return {"purchase_id": purchase_id, "state": "active"}


@router.post("/{purchase_id}/stop")
async def stop(
    purchase_id: str, current_user: CurrentUserDep, services: ServicesDep
) -> dict[str, str]:
    await services.reminders.stop_reminder(purchase_id, requester_id=current_user)
    return {"purchase_id": purchase_id, "state": "inactive"}
