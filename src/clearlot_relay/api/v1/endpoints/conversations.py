# src/clearlot_relay/api/v1/endpoints/conversations.py
"""Conversation and message endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request, status

from clearlot_relay.schemas.conversation import ConversationCreate, ConversationView
from clearlot_relay.schemas.message import MessageCreate, MessageEdit, MessageResponse, ReadReceipt

from ..dependencies import CurrentUserDep, ServicesDep

router = APIRouter(prefix="/conversations", tags=["conversations"])
messages_router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def open_conversation(
    payload: ConversationCreate,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> dict[str, str]:
    """Create or reuse the active conversation with another user."""
    try:
        conversation_id = await services.conversations.create_or_get_conversation(
            current_user, payload.other_user_id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"id": conversation_id}


@router.get("/", response_model=list[ConversationView])
async def list_conversations(
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> list[ConversationView]:
    """List the caller's active conversations, most recent first."""
    return await services.conversations.list_conversations(current_user)


@router.get("/unread-count")
async def total_unread(current_user: CurrentUserDep, services: ServicesDep) -> dict[str, int]:
    """Total unread messages across the caller's conversations."""
    return {"unread": await services.messages.total_unread_count(current_user)}


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: str,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> list[MessageResponse]:
    """Return a conversation's messages in ascending order."""
    await services.conversations.require_participant(conversation_id, current_user)
    messages = await services.messages.get_conversation_messages(conversation_id)
    return [MessageResponse.model_validate(message) for message in messages]


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    payload: MessageCreate,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> dict[str, str]:
    """Send a message as the caller."""
    try:
        message_id = await services.messages.send_message(
            conversation_id,
            current_user,
            payload.receiver_id,
            payload.content,
            type=payload.type.value,
            file_url=payload.file_url,
            file_name=payload.file_name,
            file_size=payload.file_size,
            reply_to=payload.reply_to,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"id": message_id}


@router.post("/{conversation_id}/read", response_model=ReadReceipt)
async def mark_read(
    conversation_id: str,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> ReadReceipt:
    """Acknowledge every message addressed to the caller."""
    marked = await services.messages.mark_messages_as_read(conversation_id, current_user)
    return ReadReceipt(conversation_id=conversation_id, marked=marked)


@router.post("/{conversation_id}/attachments", status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    conversation_id: str,
    current_user: CurrentUserDep,
    services: ServicesDep,
    request: Request,
    filename: str = Query(..., min_length=1),
) -> dict[str, object]:
    """Upload the raw request body as an attachment and return its location."""
    data = await request.body()
    blob = await services.messages.upload_attachment(conversation_id, current_user, filename, data)
    return {"url": blob.url, "name": blob.name, "size": blob.size}


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> None:
    """Retire a conversation the caller takes part in."""
    await services.conversations.require_participant(conversation_id, current_user)
    await services.conversations.deactivate_conversation(conversation_id)


@messages_router.patch("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def edit_message(
    message_id: str,
    payload: MessageEdit,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> None:
    """Replace the body of a message the caller sent."""
    await services.messages.edit_message(message_id, payload.content, actor_id=current_user)


@messages_router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    current_user: CurrentUserDep,
    services: ServicesDep,
) -> None:
    """Delete a message the caller sent."""
    await services.messages.delete_message(message_id, actor_id=current_user)
