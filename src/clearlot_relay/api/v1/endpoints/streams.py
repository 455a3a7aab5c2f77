# src/clearlot_relay/api/v1/endpoints/streams.py
"""WebSocket push streams for conversation lists, messages and notifications.

Browsers cannot set headers on WebSocket upgrades, so the bearer token is
passed as the `token` query parameter.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel

from clearlot_relay.core.security import InvalidTokenError, decode_subject
from clearlot_relay.schemas.notification import NotificationResponse
from clearlot_relay.services.subscriptions import Unsubscribe, UpdateCallback

from ..dependencies import ServicesDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["streams"])

Outbox = asyncio.Queue[dict[str, Any]]


def _snapshot_sender(outbox: Outbox, kind: str) -> UpdateCallback:
    def on_update(items: list[BaseModel]) -> None:
        outbox.put_nowait({"type": kind, "items": [item.model_dump(mode="json") for item in items]})

    return on_update


async def _authenticate(websocket: WebSocket, token: str) -> str | None:
    try:
        return decode_subject(token)
    except InvalidTokenError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None


async def _serve(
    websocket: WebSocket, open_streams: Callable[[Outbox], list[Unsubscribe]]
) -> None:
    """Pump queued payloads to the client until either side stops."""
    await websocket.accept()
    outbox: Outbox = asyncio.Queue()
    unsubscribers = open_streams(outbox)

    async def send_loop() -> None:
        while True:
            payload = await outbox.get()
            await websocket.send_json(payload)

    async def receive_loop() -> None:
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(send_loop()), asyncio.create_task(receive_loop())]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, WebSocketDisconnect):
                logger.warning("WebSocket stream ended with error: %s", result)


@router.websocket("/conversations")
async def conversation_list_stream(
    websocket: WebSocket, services: ServicesDep, token: str = Query(...)
) -> None:
    """Push the caller's conversation list on every change."""
    user_id = await _authenticate(websocket, token)
    if user_id is None:
        return

    def open_streams(outbox: Outbox) -> list[Unsubscribe]:
        return [
            services.subscriptions.subscribe_to_conversation_list(
                user_id, user_id, _snapshot_sender(outbox, "conversations")
            )
        ]

    await _serve(websocket, open_streams)


@router.websocket("/conversations/{conversation_id}/messages")
async def message_stream(
    websocket: WebSocket,
    conversation_id: str,
    services: ServicesDep,
    token: str = Query(...),
) -> None:
    """Push a conversation's messages on every change."""
    user_id = await _authenticate(websocket, token)
    if user_id is None:
        return

    def open_streams(outbox: Outbox) -> list[Unsubscribe]:
        return [
            services.subscriptions.subscribe_to_conversation_messages(
                user_id, conversation_id, _snapshot_sender(outbox, "messages")
            )
        ]

    await _serve(websocket, open_streams)


@router.websocket("/notifications")
async def notification_stream(
    websocket: WebSocket, services: ServicesDep, token: str = Query(...)
) -> None:
    """Push the notification list plus each new notification as it is broadcast."""
    user_id = await _authenticate(websocket, token)
    if user_id is None:
        return

    def open_streams(outbox: Outbox) -> list[Unsubscribe]:
        def on_broadcast(notification: NotificationResponse) -> None:
            outbox.put_nowait(
                {"type": "notification", "item": notification.model_dump(mode="json")}
            )

        return [
            services.subscriptions.subscribe_to_notifications(
                user_id, user_id, _snapshot_sender(outbox, "notifications")
            ),
            services.bus.subscribe(user_id, on_broadcast),
        ]

    await _serve(websocket, open_streams)
