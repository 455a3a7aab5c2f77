# src/clearlot_relay/api/v1/endpoints/notifications.py
"""Notification endpoints for the recipient."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from clearlot_relay.schemas.notification import NotificationResponse

from ..dependencies import CurrentUserDep, ServicesDep

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(
    current_user: CurrentUserDep,
    services: ServicesDep,
    limit: int | None = Query(default=None, ge=1, le=200),
) -> list[NotificationResponse]:
    """Return the caller's notifications, newest first."""
    notifications = await services.notifications.get_notifications(
        current_user, current_user, limit
    )
    return [NotificationResponse.model_validate(item) for item in notifications]


@router.get("/unread-count")
async def unread_count(current_user: CurrentUserDep, services: ServicesDep) -> dict[str, int]:
    return {"unread": await services.notifications.unread_count(current_user)}


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(
    notification_id: str,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> None:
    await services.notifications.mark_notification_read(notification_id, current_user)


@router.post("/read-all")
async def mark_all_read(current_user: CurrentUserDep, services: ServicesDep) -> dict[str, int]:
    updated = await services.notifications.mark_all_notifications_read(current_user)
    return {"updated": updated}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> None:
    await services.notifications.delete_notification(notification_id, current_user)


@router.delete("/")
async def delete_all(current_user: CurrentUserDep, services: ServicesDep) -> dict[str, int]:
    deleted = await services.notifications.delete_all_notifications(current_user)
    return {"deleted": deleted}


@router.post("/cleanup")
async def cleanup(
    current_user: CurrentUserDep,
    services: ServicesDep,
    days: int | None = Query(default=None, ge=1),
) -> dict[str, int]:
    """Remove the caller's notifications older than the retention window."""
    deleted = await services.notifications.cleanup_old_notifications(days, user_id=current_user)
    return {"deleted": deleted}
