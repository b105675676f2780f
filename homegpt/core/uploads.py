"""Audio upload storage: validate, then persist bytes under a content-derived name."""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from homegpt.core.exceptions import UploadTooLargeError, ValidationError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

AUDIO_MIME_TYPES = (
    "audio/wav",
    "audio/mpeg",
    "audio/mp3",
    "audio/webm",
    "audio/ogg",
    "audio/m4a",
)


@dataclass(frozen=True)
class StoredUpload:
    """Descriptor of a persisted upload."""

    file_id: str
    file_path: str
    file_name: str
    file_size: int
    mime_type: str
    uploaded_at: str
    original_name: str


def upload_too_large(max_bytes: int) -> UploadTooLargeError:
    return UploadTooLargeError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB", field="audio")


def validate_upload(size: int, mime_type: str | None, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
    """Check size, then type.

    Raises:
        UploadTooLargeError: If ``size`` exceeds ``max_bytes``
        ValidationError: If ``mime_type`` is not a supported audio type
    """
    if size > max_bytes:
        raise upload_too_large(max_bytes)
    if mime_type not in AUDIO_MIME_TYPES:
        raise ValidationError(
            "Unsupported file format. Supported formats: " + ", ".join(AUDIO_MIME_TYPES),
            field="audio",
        )


def content_file_id(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:32]


def _extension(filename: str) -> str:
    suffix = Path(filename).suffix.lstrip(".")
    return suffix or "audio"


async def store_upload(
    data: bytes,
    *,
    filename: str,
    mime_type: str | None,
    upload_dir: str | Path,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> StoredUpload:
    """Validate and write an upload to ``upload_dir``.

    Nothing is written when validation fails. Identical content maps to the
    same file name.

    Args:
        data: Raw file bytes
        filename: Client-supplied file name, used only for its extension
        mime_type: Client-declared content type
        upload_dir: Directory to write into (created if needed)
        max_bytes: Size limit in bytes

    Returns:
        StoredUpload describing the written file.
    """
    validate_upload(len(data), mime_type, max_bytes)

    file_id = content_file_id(data)
    file_name = f"{file_id}.{_extension(filename)}"
    directory = Path(upload_dir)
    target = directory / file_name

    def _write() -> None:
        directory.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    await asyncio.to_thread(_write)
    logger.info(f"Audio file uploaded: {file_name} ({len(data)} bytes)")

    return StoredUpload(
        file_id=file_id,
        file_path=f"{directory.as_posix()}/{file_name}",
        file_name=file_name,
        file_size=len(data),
        mime_type=mime_type or "",
        uploaded_at=datetime.now(timezone.utc).isoformat(),
        original_name=filename,
    )
