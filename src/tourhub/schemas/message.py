"""Message-related Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tourhub.models import AttachmentKind


class UserSummary(BaseModel):
    """Public profile fields shown in the sidebar and next to messages."""

    id: str
    username: str
    full_name: str
    profile_pic: str | None = None

    model_config = ConfigDict(from_attributes=True)


class AttachmentRead(BaseModel):
    """Schema for attachment information returned by the API."""

    id: int
    kind: AttachmentKind
    url: str
    mime_type: str
    file_name: str
    file_size: int
    width: int | None = None
    height: int | None = None
    duration_sec: float | None = None
    metadata: dict[str, Any] | None = Field(
        default=None,
        validation_alias="metadata_",
        description="Storage provider details",
    )

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class MessageRead(BaseModel):
    """Schema for a message as returned by history and pushed over the socket."""

    id: int
    conversation_id: str
    sender_id: str
    body: str | None
    created_at: datetime
    attachments: list[AttachmentRead] = Field(default_factory=list)
    sender: UserSummary | None = None

    model_config = ConfigDict(from_attributes=True)
