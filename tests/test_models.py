"""Unit tests for the ORM models defined in clearlot_relay.models.

These tests verify mapping details the services rely on: table names,
composite primary keys, the relationship holding unread counters, and the
denormalized message summary copied onto conversations.
"""

from datetime import UTC, datetime

from sqlalchemy.orm import attributes

from clearlot_relay.models import (
    Conversation,
    ConversationUnread,
    Message,
    ProcessedEvent,
    Purchase,
    WatchlistEntry,
    pair_key_for,
)


def test_table_names():
    """Model classes expose expected __tablename__ values."""
    assert Conversation.__tablename__ == "conversation"
    assert ConversationUnread.__tablename__ == "conversation_unread"
    assert Message.__tablename__ == "message"
    assert ProcessedEvent.__tablename__ == "processed_event"


def test_composite_primary_keys():
    unread_pk = {c.name for c in ConversationUnread.__table__.primary_key}
    assert unread_pk == {"conversation_id", "user_id"}
    ledger_pk = {c.name for c in ProcessedEvent.__table__.primary_key}
    assert ledger_pk == {"namespace", "event_id"}


def test_watchlist_pairs_are_unique():
    constraints = {
        tuple(sorted(c.name for c in constraint.columns))
        for constraint in WatchlistEntry.__table__.constraints
        if constraint.__class__.__name__ == "UniqueConstraint"
    }
    assert ("offer_id", "user_id") in constraints


def test_unread_rows_relationship_is_instrumented():
    assert isinstance(Conversation.unread_rows, attributes.InstrumentedAttribute)
    assert isinstance(ConversationUnread.conversation, attributes.InstrumentedAttribute)


def test_pair_key_ignores_argument_order():
    assert pair_key_for("bob", "alice") == pair_key_for("alice", "bob") == "alice|bob"


def test_conversation_participant_helpers():
    conversation = Conversation(participant_a="alice", participant_b="bob", pair_key="alice|bob")
    conversation.unread_rows = [
        ConversationUnread(user_id="alice", unread_count=0),
        ConversationUnread(user_id="bob", unread_count=2),
    ]

    assert conversation.participants == ["alice", "bob"]
    assert conversation.counterpart("alice") == "bob"
    assert conversation.counterpart("bob") == "alice"
    assert conversation.has_participant("bob")
    assert not conversation.has_participant("carol")
    assert conversation.unread_count == {"alice": 0, "bob": 2}


def test_message_summary_omits_empty_attachment_fields():
    message = Message(
        id="m1",
        conversation_id="c1",
        sender_id="alice",
        receiver_id="bob",
        content="hello",
        type="text",
        timestamp=datetime(2024, 1, 15, 12, 0, tzinfo=UTC),
        is_read=False,
        is_edited=False,
    )

    summary = message.summary()

    assert summary["id"] == "m1"
    assert summary["conversationId"] == "c1"
    assert summary["timestamp"] == "2024-01-15T12:00:00+00:00"
    assert "fileUrl" not in summary
    assert "editedAt" not in summary


def test_purchase_participants():
    purchase = Purchase(buyer_id="buyer", seller_id="seller")
    assert purchase.has_participant("buyer")
    assert purchase.has_participant("seller")
    assert not purchase.has_participant("stranger")
