"""Message store and the unread counters kept alongside it.

A send inserts the message, refreshes the conversation summary and bumps the
receiver's unread row in one transaction. Counters only move through those
field-scoped updates, so the counter for a participant always equals the
number of unread messages addressed to them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    RelayError,
    store_errors,
)
from clearlot_relay.db.ids import new_id
from clearlot_relay.models import Conversation, ConversationUnread, Message, MessageType
from clearlot_relay.services.blob_store import BlobStore, BlobStoreError, UploadedBlob
from clearlot_relay.services.change_feed import ChangeFeed, conversations_topic, messages_topic
from clearlot_relay.services.fanout import NotificationFanOut

logger = logging.getLogger(__name__)

TIMESTAMP_STEP = timedelta(microseconds=1)


def query_conversation_messages(db: Session, conversation_id: str) -> list[Message]:
    """Messages of a conversation in canonical (ascending timestamp) order."""
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.timestamp.asc(), Message.id)
    )
    return list(db.scalars(stmt))


def _adjust_unread(db: Session, conversation: Conversation, user_id: str, delta: int) -> None:
    """Atomically add `delta` to a participant's unread row, flooring at zero."""
    column = ConversationUnread.unread_count
    result = db.execute(
        update(ConversationUnread)
        .where(
            ConversationUnread.conversation_id == conversation.id,
            ConversationUnread.user_id == user_id,
        )
        .values(unread_count=case((column + delta < 0, 0), else_=column + delta))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        conversation.unread_rows.append(
            ConversationUnread(user_id=user_id, unread_count=max(delta, 0))
        )


def _reset_unread(db: Session, conversation: Conversation, user_id: str) -> None:
    result = db.execute(
        update(ConversationUnread)
        .where(
            ConversationUnread.conversation_id == conversation.id,
            ConversationUnread.user_id == user_id,
        )
        .values(unread_count=0)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        conversation.unread_rows.append(ConversationUnread(user_id=user_id, unread_count=0))


class MessageStore:
    """Append-only per-conversation message log."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        feed: ChangeFeed,
        blob_store: BlobStore,
        fanout: NotificationFanOut | None = None,
        clock: Clock | None = None,
        *,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed
        self._blob_store = blob_store
        self._fanout = fanout
        self._clock = clock or SystemClock()
        self._id_factory = id_factory

    def _publish(self, conversation: Conversation) -> None:
        self._feed.publish(
            messages_topic(conversation.id),
            conversations_topic(conversation.participant_a),
            conversations_topic(conversation.participant_b),
        )

    @staticmethod
    def _conversation(db: Session, conversation_id: str) -> Conversation:
        conversation = db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        type: str = MessageType.TEXT.value,
        file_url: str | None = None,
        file_name: str | None = None,
        file_size: int | None = None,
        reply_to: str | None = None,
    ) -> str:
        """Append a message and return its id.

        The receiver's "message received" notification is best effort and
        never fails the send.
        """
        try:
            message_type = MessageType(type)
        except ValueError as exc:
            raise ValueError(f"Unsupported message type: {type}") from exc
        if sender_id == receiver_id:
            raise ValueError("Sender and receiver must differ")

        with self._session_factory() as db, store_errors(db, "send message"):
            conversation = self._conversation(db, conversation_id)
            if not conversation.is_active:
                raise NotFoundError(f"Conversation {conversation_id} is no longer active")
            if not (
                conversation.has_participant(sender_id) and conversation.has_participant(receiver_id)
            ):
                raise PermissionDeniedError("Sender and receiver must both be participants")

            now = self._clock.now()
            timestamp = now
            if conversation.last_message is not None and conversation.last_message_at >= now:
                timestamp = conversation.last_message_at + TIMESTAMP_STEP

            message = Message(
                id=self._id_factory(),
                conversation_id=conversation_id,
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=content,
                type=message_type.value,
                file_url=file_url,
                file_name=file_name,
                file_size=file_size,
                timestamp=timestamp,
                is_read=False,
                is_edited=False,
                reply_to=reply_to,
            )
            db.add(message)
            db.flush()

            conversation.last_message = message.summary()
            conversation.last_message_at = timestamp
            conversation.updated_at = now
            _adjust_unread(db, conversation, receiver_id, 1)
            db.commit()

        self._publish(conversation)

        if self._fanout is not None:
            try:
                await self._fanout.notify_new_message(message)
            except RelayError:
                logger.warning(
                    "Message %s stored but receiver notification failed", message.id, exc_info=True
                )
        return message.id

    async def mark_messages_as_read(self, conversation_id: str, user_id: str) -> int:
        """Acknowledge every message addressed to `user_id`; return how many changed."""
        with self._session_factory() as db, store_errors(db, "mark messages read"):
            conversation = self._conversation(db, conversation_id)
            if not conversation.has_participant(user_id):
                raise PermissionDeniedError("Not a participant of this conversation")

            result = db.execute(
                update(Message)
                .where(
                    Message.conversation_id == conversation_id,
                    Message.receiver_id == user_id,
                    Message.is_read.is_(False),
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            marked = result.rowcount
            _reset_unread(db, conversation, user_id)

            summary = conversation.last_message
            if summary is not None and summary.get("receiverId") == user_id:
                conversation.last_message = {**summary, "isRead": True}
            conversation.updated_at = self._clock.now()
            db.commit()

        self._publish(conversation)
        return marked

    async def edit_message(
        self, message_id: str, new_content: str, *, actor_id: str | None = None
    ) -> None:
        with self._session_factory() as db, store_errors(db, "edit message"):
            message = db.get(Message, message_id)
            if message is None:
                raise NotFoundError(f"Message {message_id} not found")
            if actor_id is not None and actor_id != message.sender_id:
                raise PermissionDeniedError("Only the sender may edit a message")

            message.content = new_content
            message.is_edited = True
            message.edited_at = self._clock.now()
            db.flush()

            conversation = self._conversation(db, message.conversation_id)
            if conversation.last_message and conversation.last_message.get("id") == message.id:
                conversation.last_message = message.summary()
            db.commit()

        self._publish(conversation)

    async def delete_message(self, message_id: str, *, actor_id: str | None = None) -> None:
        """Remove a message and release its attachment.

        The blob is released best effort; a blob store failure is logged and
        the record is deleted anyway.
        """
        with self._session_factory() as db, store_errors(db, "delete message"):
            message = db.get(Message, message_id)
            if message is None:
                raise NotFoundError(f"Message {message_id} not found")
            if actor_id is not None and actor_id != message.sender_id:
                raise PermissionDeniedError("Only the sender may delete a message")

            if message.file_url:
                try:
                    await self._blob_store.delete(message.file_url)
                except BlobStoreError as exc:
                    logger.warning("Could not release blob %s: %s", message.file_url, exc)

            conversation = self._conversation(db, message.conversation_id)
            was_unread = not message.is_read
            receiver_id = message.receiver_id
            db.delete(message)
            db.flush()

            if was_unread:
                _adjust_unread(db, conversation, receiver_id, -1)

            if conversation.last_message and conversation.last_message.get("id") == message_id:
                newest = db.scalars(
                    select(Message)
                    .where(Message.conversation_id == conversation.id)
                    .order_by(Message.timestamp.desc(), Message.id.desc())
                    .limit(1)
                ).first()
                conversation.last_message = newest.summary() if newest is not None else None
                if newest is not None:
                    conversation.last_message_at = newest.timestamp
            conversation.updated_at = self._clock.now()
            db.commit()

        self._publish(conversation)

    async def get_conversation_messages(self, conversation_id: str) -> list[Message]:
        with self._session_factory() as db, store_errors(db, "list messages"):
            return query_conversation_messages(db, conversation_id)

    async def upload_attachment(
        self, conversation_id: str, sender_id: str, filename: str, data: bytes
    ) -> UploadedBlob:
        """Store an attachment under the conversation's blob prefix."""
        with self._session_factory() as db, store_errors(db, "load conversation"):
            conversation = self._conversation(db, conversation_id)
        if not conversation.has_participant(sender_id):
            raise PermissionDeniedError("Not a participant of this conversation")

        epoch_ms = int(self._clock.now().timestamp() * 1000)
        path = f"messages/{conversation_id}/{sender_id}/{epoch_ms}_{filename}"
        return await self._blob_store.upload(path, filename, data)

    async def total_unread_count(self, user_id: str) -> int:
        """Sum of a user's unread counters across active conversations."""
        with self._session_factory() as db, store_errors(db, "count unread messages"):
            stmt = (
                select(func.coalesce(func.sum(ConversationUnread.unread_count), 0))
                .join(Conversation, Conversation.id == ConversationUnread.conversation_id)
                .where(ConversationUnread.user_id == user_id, Conversation.is_active.is_(True))
            )
            return int(db.scalar(stmt) or 0)

    async def reconcile_unread_counts(
        self, conversation_id: str | None = None
    ) -> dict[str, dict[str, int]]:
        """Recount unread messages and repair drifted or missing counter rows.

        Returns the corrected values keyed by conversation id, then user id.
        """
        corrections: dict[str, dict[str, int]] = {}
        with self._session_factory() as db, store_errors(db, "reconcile unread counts"):
            if conversation_id is not None:
                conversations = [self._conversation(db, conversation_id)]
            else:
                conversations = list(db.scalars(select(Conversation)))

            counts_stmt = (
                select(Message.conversation_id, Message.receiver_id, func.count())
                .where(Message.is_read.is_(False))
                .group_by(Message.conversation_id, Message.receiver_id)
            )
            if conversation_id is not None:
                counts_stmt = counts_stmt.where(Message.conversation_id == conversation_id)
            actual = {(cid, uid): int(n) for cid, uid, n in db.execute(counts_stmt)}

            for conversation in conversations:
                rows = {row.user_id: row for row in conversation.unread_rows}
                for participant in conversation.participants:
                    expected = actual.get((conversation.id, participant), 0)
                    row = rows.get(participant)
                    if row is None:
                        conversation.unread_rows.append(
                            ConversationUnread(user_id=participant, unread_count=expected)
                        )
                    elif row.unread_count != expected:
                        row.unread_count = expected
                    else:
                        continue
                    corrections.setdefault(conversation.id, {})[participant] = expected
            db.commit()

        for conversation in conversations:
            if conversation.id in corrections:
                self._publish(conversation)
        if corrections:
            logger.warning("Repaired unread counters in %d conversation(s)", len(corrections))
        return corrections
