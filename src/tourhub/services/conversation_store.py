"""Persistence helpers for conversations, messages and attachments."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tourhub.db.time import utcnow
from tourhub.models import Attachment, AttachmentKind, Conversation, Message, User, pair_key_for

__all__ = [
    "AttachmentData",
    "append_message",
    "create_conversation",
    "find_conversation_by_participants",
    "get_messages_between",
    "get_or_create_conversation",
    "list_messages",
    "list_sidebar_users",
    "normalize_body",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentData:
    """Attachment fields produced by the media storage before persistence."""

    kind: AttachmentKind
    url: str
    mime_type: str
    file_name: str
    file_size: int
    width: int | None = None
    height: int | None = None
    duration_sec: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def normalize_body(body: str | None) -> str | None:
    """Strip the text body; blank bodies are stored as None."""
    if body is None:
        return None
    stripped = body.strip()
    return stripped or None


def find_conversation_by_participants(
    db: Session, first_user_id: str, second_user_id: str
) -> Conversation | None:
    """Return the conversation between two users, if one exists."""
    return (
        db.query(Conversation)
        .filter(Conversation.pair_key == pair_key_for(first_user_id, second_user_id))
        .first()
    )


def create_conversation(db: Session, first_user_id: str, second_user_id: str) -> Conversation:
    """Persist a new conversation between two users."""
    conversation = Conversation(
        participant_ids=[first_user_id, second_user_id],
        pair_key=pair_key_for(first_user_id, second_user_id),
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation


def get_or_create_conversation(
    db: Session, first_user_id: str, second_user_id: str
) -> Conversation:
    """Return the pair's conversation, creating it on first contact.

    A concurrent creator losing the race on ``pair_key`` reads back the
    winner's row instead of producing a second conversation.
    """
    conversation = find_conversation_by_participants(db, first_user_id, second_user_id)
    if conversation is not None:
        return conversation

    try:
        return create_conversation(db, first_user_id, second_user_id)
    except IntegrityError:
        db.rollback()
        conversation = find_conversation_by_participants(db, first_user_id, second_user_id)
        if conversation is None:
            raise
        logger.info(
            "Conversation for %s and %s was created concurrently; reusing %s",
            first_user_id,
            second_user_id,
            conversation.id,
        )
        return conversation


def append_message(
    db: Session,
    conversation_id: str,
    sender_id: str,
    body: str | None,
    attachments: Sequence[AttachmentData] = (),
) -> Message:
    """Persist a message together with its attachments in one commit."""
    message = Message(
        conversation_id=conversation_id,
        sender_id=sender_id,
        body=normalize_body(body),
        attachments=[
            Attachment(
                kind=item.kind,
                url=item.url,
                mime_type=item.mime_type,
                file_name=item.file_name,
                file_size=item.file_size,
                width=item.width,
                height=item.height,
                duration_sec=item.duration_sec,
                metadata_=dict(item.metadata),
            )
            for item in attachments
        ],
    )
    db.add(message)

    conversation = db.get(Conversation, conversation_id)
    if conversation is not None:
        conversation.updated_at = utcnow()

    db.commit()
    db.refresh(message)
    return message


def list_messages(db: Session, conversation_id: str) -> list[Message]:
    """Return a conversation's messages, oldest first."""
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


def get_messages_between(db: Session, user_id: str, other_user_id: str) -> list[Message]:
    """Return the history between two users, or an empty list."""
    conversation = find_conversation_by_participants(db, user_id, other_user_id)
    if conversation is None:
        return []
    return list_messages(db, conversation.id)


def list_sidebar_users(db: Session, exclude_user_id: str) -> Sequence[User]:
    """Return every user except ``exclude_user_id``, ordered by name."""
    return (
        db.query(User)
        .filter(User.id != exclude_user_id)
        .order_by(User.full_name, User.id)
        .all()
    )
