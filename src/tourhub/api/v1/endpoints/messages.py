# src/tourhub/api/v1/endpoints/messages.py
"""Direct message endpoints for the tourhub API."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError

from tourhub.api.v1.dependencies import CurrentUserDep, GatewayDep, SessionDep
from tourhub.models import User
from tourhub.realtime.gateway import NEW_MESSAGE_EVENT
from tourhub.schemas.message import MessageRead, UserSummary
from tourhub.services.conversation_store import (
    append_message,
    get_messages_between,
    get_or_create_conversation,
    list_sidebar_users,
)
from tourhub.services.media import AttachmentRejected, LocalMediaStorage, get_media_storage

router = APIRouter(prefix="/messages", tags=["messages"])

logger = logging.getLogger(__name__)


def get_media_storage_dep() -> LocalMediaStorage:
    """Return the shared attachment storage."""
    return get_media_storage()


MediaStorageDep = Annotated[LocalMediaStorage, Depends(get_media_storage_dep)]


@router.get("/conversations", response_model=list[UserSummary])
async def get_users_for_sidebar(
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[UserSummary]:
    """List the users the current user can chat with."""
    users = list_sidebar_users(db, current_user.id)
    return [UserSummary.model_validate(user) for user in users]


@router.get("/{user_id}", response_model=list[MessageRead])
async def get_messages(
    user_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[MessageRead]:
    """Return the message history with another user, oldest first."""
    messages = get_messages_between(db, current_user.id, user_id)
    return [MessageRead.model_validate(message) for message in messages]


@router.post(
    "/send/{receiver_id}",
    status_code=status.HTTP_201_CREATED,
    response_model=MessageRead,
)
async def send_message(
    receiver_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
    storage: MediaStorageDep,
    message: Annotated[str | None, Form()] = None,
    attachments: Annotated[list[UploadFile] | None, File()] = None,
) -> MessageRead:
    """Store a message with optional attachments and push it to the receiver.

    The push is best-effort; the stored message is always available from
    the history endpoint.
    """
    receiver = db.get(User, receiver_id)
    if receiver is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Receiver not found",
        )

    try:
        stored = await storage.save_all(list(attachments or []))
    except AttachmentRejected as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except OSError as exc:
        logger.error("Attachment upload failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upload failed",
        ) from exc

    try:
        conversation = get_or_create_conversation(db, current_user.id, receiver.id)
        new_message = append_message(
            db,
            conversation.id,
            current_user.id,
            message,
            [item.attachment for item in stored],
        )
    except SQLAlchemyError as exc:
        db.rollback()
        storage.discard(stored)
        logger.error("Error in send_message: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc

    payload = MessageRead.model_validate(new_message)
    await gateway.emit_to_user(receiver.id, NEW_MESSAGE_EVENT, payload.model_dump(mode="json"))
    return payload
