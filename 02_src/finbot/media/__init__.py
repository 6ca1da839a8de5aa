"""Attachment storage."""

from .store import IMediaStore, MediaStore, is_accepted

__all__ = ["IMediaStore", "MediaStore", "is_accepted"]
