"""Attachment intake: writes receipt files to disk and hands back a ref."""

import asyncio
import mimetypes
import uuid
from pathlib import Path
from typing import Protocol

from ..config import ATTACHMENTS_DIR
from ..logging_config import get_logger

logger = get_logger(__name__)

ACCEPTED_DOCUMENT_TYPES = frozenset({"application/pdf"})


class IMediaStore(Protocol):
    """Stores inbound attachments."""

    async def save(self, data: bytes, mimetype: str) -> str | None:
        """Save an attachment. Returns its ref, or None if the type is rejected."""
        ...


def is_accepted(mimetype: str | None) -> bool:
    if not mimetype:
        return False
    base = mimetype.split(";", 1)[0].strip().lower()
    return base.startswith("image/") or base in ACCEPTED_DOCUMENT_TYPES


class MediaStore:
    """Filesystem-backed attachment store.

    Refs are absolute file paths; they are opaque to the dialogue layer.
    """

    def __init__(self, directory: str | Path | None = None):
        self._directory = Path(directory) if directory else ATTACHMENTS_DIR

    @property
    def directory(self) -> Path:
        return self._directory

    async def save(self, data: bytes, mimetype: str) -> str | None:
        if not is_accepted(mimetype):
            logger.info("Attachment of type %s ignored", mimetype)
            return None
        if not data:
            logger.warning("Empty attachment of type %s ignored", mimetype)
            return None

        base = mimetype.split(";", 1)[0].strip().lower()
        extension = mimetypes.guess_extension(base) or ".bin"
        path = self._directory / f"{uuid.uuid4().hex}{extension}"

        await asyncio.to_thread(self._write, path, data)
        logger.info("Attachment saved: %s (%s bytes)", path.name, len(data))
        return str(path)

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
