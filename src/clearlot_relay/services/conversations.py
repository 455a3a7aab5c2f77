"""Conversation directory: one active conversation per unordered user pair."""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clearlot_relay.core.clock import Clock, SystemClock
from clearlot_relay.core.errors import NotFoundError, PermissionDeniedError, store_errors
from clearlot_relay.db.ids import new_id
from clearlot_relay.models import Conversation, ConversationUnread, UserProfile, pair_key_for
from clearlot_relay.schemas.conversation import ConversationView, ParticipantProfile
from clearlot_relay.services.change_feed import ChangeFeed, conversations_topic
from clearlot_relay.services.templates import UNKNOWN_USER_NAME

logger = logging.getLogger(__name__)


def find_active_conversation(db: Session, pair_key: str) -> Conversation | None:
    stmt = select(Conversation).where(
        Conversation.pair_key == pair_key, Conversation.is_active.is_(True)
    )
    return db.scalars(stmt).first()


def query_active_conversations(db: Session, user_id: str) -> list[Conversation]:
    """Return a user's active conversations, most recent activity first."""
    stmt = (
        select(Conversation)
        .where(
            Conversation.is_active.is_(True),
            or_(Conversation.participant_a == user_id, Conversation.participant_b == user_id),
        )
        .order_by(Conversation.last_message_at.desc(), Conversation.id)
    )
    return list(db.scalars(stmt))


def participant_profile(db: Session, user_id: str) -> ParticipantProfile:
    """Public profile of a participant; a missing profile degrades to a placeholder."""
    profile = db.get(UserProfile, user_id)
    if profile is None:
        return ParticipantProfile(id=user_id, name=UNKNOWN_USER_NAME)
    return ParticipantProfile(
        id=user_id,
        name=profile.display_name or profile.company or UNKNOWN_USER_NAME,
        company=profile.company or "",
        avatar=profile.company_logo or profile.avatar_url or None,
        is_online=profile.is_online,
    )


def conversation_views(db: Session, user_id: str) -> list[ConversationView]:
    """Active conversations of `user_id` joined with the other side's profile."""
    views: list[ConversationView] = []
    for conversation in query_active_conversations(db, user_id):
        view = ConversationView.model_validate(conversation)
        view.other_participant = participant_profile(db, conversation.counterpart(user_id))
        views.append(view)
    return views


class ConversationDirectory:
    """Create-or-get and lookup of two-party conversations."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        feed: ChangeFeed,
        clock: Clock | None = None,
        *,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed
        self._clock = clock or SystemClock()
        self._id_factory = id_factory

    async def create_or_get_conversation(self, user_a: str, user_b: str) -> str:
        """Return the active conversation between two users, creating it if needed.

        Argument order does not matter. When two callers race to create the
        same pair, the partial unique index rejects the loser, which then
        returns the winner's id.
        """
        if not user_a or not user_b:
            raise ValueError("Both participant ids are required")
        if user_a == user_b:
            raise ValueError("A conversation needs two distinct participants")

        first, second = sorted((user_a, user_b))
        key = pair_key_for(first, second)
        now = self._clock.now()

        with self._session_factory() as db, store_errors(db, "create conversation"):
            existing = find_active_conversation(db, key)
            if existing is not None:
                return existing.id

            conversation = Conversation(
                id=self._id_factory(),
                participant_a=first,
                participant_b=second,
                pair_key=key,
                last_message=None,
                last_message_at=now,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            conversation.unread_rows = [
                ConversationUnread(user_id=first, unread_count=0),
                ConversationUnread(user_id=second, unread_count=0),
            ]
            db.add(conversation)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                winner = find_active_conversation(db, key)
                if winner is None:
                    raise
                logger.info("Conversation for %s created concurrently; reusing %s", key, winner.id)
                return winner.id
            conversation_id = conversation.id

        logger.info("Created conversation %s for %s", conversation_id, key)
        self._feed.publish(conversations_topic(first), conversations_topic(second))
        return conversation_id

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._session_factory() as db, store_errors(db, "get conversation"):
            return db.get(Conversation, conversation_id)

    async def require_participant(self, conversation_id: str, user_id: str) -> Conversation:
        """Return the conversation if `user_id` takes part in it."""
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if not conversation.has_participant(user_id):
            raise PermissionDeniedError("Not a participant of this conversation")
        return conversation

    async def list_conversations(self, user_id: str) -> list[ConversationView]:
        with self._session_factory() as db, store_errors(db, "list conversations"):
            return conversation_views(db, user_id)

    async def deactivate_conversation(self, conversation_id: str) -> None:
        """Retire a conversation; the pair may then open a fresh one."""
        with self._session_factory() as db, store_errors(db, "deactivate conversation"):
            conversation = db.get(Conversation, conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            if not conversation.is_active:
                return
            conversation.is_active = False
            conversation.updated_at = self._clock.now()
            db.commit()
            participants = conversation.participants
        self._feed.publish(*(conversations_topic(user) for user in participants))
