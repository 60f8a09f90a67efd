"""Attachment intake: type checks, size limits and local media storage."""
from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path, PurePosixPath

from fastapi import UploadFile
from PIL import Image

from tourhub.core.settings import settings
from tourhub.models import AttachmentKind
from tourhub.services.conversation_store import AttachmentData

logger = logging.getLogger(__name__)

MEGABYTE = 1024 * 1024
READ_CHUNK_SIZE = MEGABYTE
# Larger images are scaled down to fit this box.
MAX_IMAGE_DIMENSION = 1000

ALLOWED_MIME_TYPES: dict[AttachmentKind, frozenset[str]] = {
    AttachmentKind.IMAGE: frozenset({
        "image/jpeg", "image/jpg", "image/png", "image/gif",
        "image/webp", "image/bmp", "image/tiff",
    }),
    AttachmentKind.VIDEO: frozenset({
        "video/mp4", "video/avi", "video/mkv", "video/mov",
        "video/wmv", "video/flv", "video/webm", "video/m4v",
    }),
    AttachmentKind.AUDIO: frozenset({
        "audio/mp3", "audio/wav", "audio/ogg", "audio/aac",
        "audio/flac", "audio/m4a", "audio/wma", "audio/mpeg",
    }),
    AttachmentKind.FILE: frozenset({
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/csv",
        "application/zip",
        "application/x-rar-compressed",
        "application/json",
        "application/xml",
    }),
}

MAX_SIZE_BYTES: dict[AttachmentKind, int] = {
    AttachmentKind.IMAGE: 10 * MEGABYTE,
    AttachmentKind.VIDEO: 100 * MEGABYTE,
    AttachmentKind.AUDIO: 50 * MEGABYTE,
    AttachmentKind.FILE: 25 * MEGABYTE,
}


class AttachmentRejected(ValueError):
    """Raised when an uploaded file cannot be accepted as an attachment."""


def detect_kind(mime_type: str) -> AttachmentKind:
    """Map a MIME type to its attachment kind by prefix."""
    mime_type = mime_type.lower()
    if mime_type.startswith("image/"):
        return AttachmentKind.IMAGE
    if mime_type.startswith("video/"):
        return AttachmentKind.VIDEO
    if mime_type.startswith("audio/"):
        return AttachmentKind.AUDIO
    return AttachmentKind.FILE


def check_mime_type(mime_type: str) -> AttachmentKind:
    """Return the attachment kind, or raise if the type is not allowed."""
    kind = detect_kind(mime_type)
    if mime_type.lower() not in ALLOWED_MIME_TYPES[kind]:
        raise AttachmentRejected("Not a valid attachment type")
    return kind


def check_size(kind: AttachmentKind, size: int) -> None:
    if size > MAX_SIZE_BYTES[kind]:
        limit_mb = MAX_SIZE_BYTES[kind] // MEGABYTE
        raise AttachmentRejected(f"{kind.value.title()} attachments are limited to {limit_mb}MB")


def validate_attachment(mime_type: str, size: int) -> AttachmentKind:
    """Return the attachment kind, or raise if the type or size is not allowed."""
    kind = check_mime_type(mime_type)
    check_size(kind, size)
    return kind


async def read_limited(upload: UploadFile, kind: AttachmentKind) -> bytes:
    """Read an upload in chunks, stopping as soon as it exceeds its kind's limit."""
    if upload.size is not None:
        check_size(kind, upload.size)

    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        check_size(kind, total)
        chunks.append(chunk)
    return b"".join(chunks)


def limit_image(content: bytes) -> tuple[bytes, int, int]:
    """Return the image scaled down to fit ``MAX_IMAGE_DIMENSION``, and its size.

    Images already within the bounds, and animated GIFs, are kept as uploaded.
    """
    try:
        with Image.open(BytesIO(content)) as image:
            width, height = image.size
            image_format = image.format
            if (
                (width <= MAX_IMAGE_DIMENSION and height <= MAX_IMAGE_DIMENSION)
                or image_format == "GIF"
            ):
                return content, width, height

            image.thumbnail((MAX_IMAGE_DIMENSION, MAX_IMAGE_DIMENSION))
            output = BytesIO()
            image.save(output, format=image_format)
            return output.getvalue(), image.width, image.height
    except (OSError, Image.DecompressionBombError) as exc:
        raise AttachmentRejected("Invalid image file") from exc


@dataclass(frozen=True)
class StoredMedia:
    """A file written by the storage backend and the attachment fields describing it."""

    path: Path
    attachment: AttachmentData


class LocalMediaStorage:
    """Stores attachments on local disk and serves them under a base URL."""

    provider = "local"

    def __init__(self, root: str | Path | None = None, base_url: str | None = None) -> None:
        self.root = Path(root or settings.media_root)
        self.base_url = (base_url if base_url is not None else settings.media_base_url).rstrip("/")

    async def save(self, upload: UploadFile) -> StoredMedia:
        """Validate and persist one uploaded file."""
        mime_type = (upload.content_type or "application/octet-stream").lower()
        kind = check_mime_type(mime_type)
        content = await read_limited(upload, kind)

        width: int | None = None
        height: int | None = None
        if kind is AttachmentKind.IMAGE:
            content, width, height = await asyncio.to_thread(limit_image, content)

        file_name = upload.filename or "attachment"
        suffix = PurePosixPath(file_name).suffix.lower()
        public_id = secrets.token_hex(12)
        relative = PurePosixPath(f"{kind.value.lower()}s") / f"{public_id}{suffix}"
        target = self.root / relative

        await asyncio.to_thread(self._write, target, content)
        logger.debug("Stored attachment %s (%d bytes) at %s", file_name, len(content), target)

        return StoredMedia(
            path=target,
            attachment=AttachmentData(
                kind=kind,
                url=f"{self.base_url}/{relative}",
                mime_type=mime_type,
                file_name=file_name,
                file_size=len(content),
                width=width,
                height=height,
                metadata={
                    "provider": self.provider,
                    "public_id": public_id,
                    "format": suffix.lstrip(".") or None,
                    "resource_type": kind.value.lower(),
                },
            ),
        )

    async def save_all(self, uploads: list[UploadFile]) -> list[StoredMedia]:
        """Persist every upload, removing already written files if one is rejected."""
        if len(uploads) > settings.max_attachments_per_message:
            raise AttachmentRejected(
                f"At most {settings.max_attachments_per_message} attachments per message"
            )

        stored: list[StoredMedia] = []
        try:
            for upload in uploads:
                stored.append(await self.save(upload))
        except (AttachmentRejected, OSError):
            self.discard(stored)
            raise
        return stored

    def discard(self, stored: list[StoredMedia]) -> None:
        """Delete files whose message could not be persisted."""
        for item in stored:
            try:
                item.path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to clean up attachment %s: %s", item.path, exc)

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)


_media_storage: LocalMediaStorage | None = None


def get_media_storage() -> LocalMediaStorage:
    """Return the process-wide media storage."""
    global _media_storage
    if _media_storage is None:
        _media_storage = LocalMediaStorage()
    return _media_storage
