from __future__ import annotations

import os
from datetime import datetime

from vaultshare.core.config import settings

CONTENT_CLASS_VIDEO = "video"
CONTENT_CLASS_DOCUMENT = "document"

VIDEO_EXTENSIONS = {
    ".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v", ".flv", ".wmv", ".mpeg", ".mpg", ".3gp",
}
IMAGE_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".svg", ".webp", ".heic",
}
AUDIO_EXTENSIONS = {
    ".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma", ".m4a",
}
OFFICE_EXTENSIONS = {
    ".doc", ".docx", ".odt", ".rtf", ".txt", ".md",
    ".xls", ".xlsx", ".ods", ".csv",
    ".ppt", ".pptx", ".odp",
}
OFFICE_MIME_FRAGMENTS = ("word", "excel", "powerpoint", "document", "spreadsheet", "presentation")

FILE_CATEGORIES = ("pdf", "image", "video", "audio", "document", "other")


def _extension(file_name: str | None) -> str:
    return os.path.splitext(file_name or "")[1].lower()


def is_video(file_type: str | None, file_name: str | None = None) -> bool:
    if file_type and file_type.lower().startswith("video/"):
        return True
    return _extension(file_name) in VIDEO_EXTENSIONS


def content_class(file_type: str | None, file_name: str | None = None) -> str:
    return CONTENT_CLASS_VIDEO if is_video(file_type, file_name) else CONTENT_CLASS_DOCUMENT


def file_category(file_type: str | None, file_name: str | None = None) -> str:
    """Coarse bucket used for gallery filtering, grouping and icons."""
    mime = (file_type or "").lower()
    if mime:
        if "pdf" in mime:
            return "pdf"
        if mime.startswith("image/"):
            return "image"
        if mime.startswith("video/"):
            return "video"
        if mime.startswith("audio/"):
            return "audio"
        if any(fragment in mime for fragment in OFFICE_MIME_FRAGMENTS):
            return "document"

    ext = _extension(file_name)
    if ext == ".pdf":
        return "pdf"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    if ext in OFFICE_EXTENSIONS:
        return "document"
    return "other"


def expiry_window(video: bool, link_expires_at: datetime | None, now: datetime) -> int:
    """Seconds a signed URL should live: the class default, capped by the link's own expiry."""
    window = settings.VIDEO_URL_TTL_SECONDS if video else settings.DOCUMENT_URL_TTL_SECONDS
    if link_expires_at is not None:
        remaining = int((link_expires_at - now).total_seconds())
        window = min(window, max(remaining, 1))
    return window
