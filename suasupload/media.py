from __future__ import annotations

import mimetypes
from pathlib import Path


PDF_ICON = "/icons/pdf-icon.png"
TEXT_ICON = "/icons/text-icon.png"
FILE_ICON = "/icons/file-icon.png"

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(path: Path) -> str:
    """Declared type for a local file, or "" when the name says nothing."""
    ctype, _encoding = mimetypes.guess_type(path.name)
    return ctype or ""


def is_image(content_type: str) -> bool:
    return content_type.lower().startswith("image/")


def is_video(content_type: str) -> bool:
    return content_type.lower().startswith("video/")


def is_pdf(content_type: str) -> bool:
    return content_type.lower() == "application/pdf"


def is_text(content_type: str) -> bool:
    return content_type.lower().startswith("text/")


def preview_kind(content_type: str) -> str:
    if is_image(content_type) or is_video(content_type):
        return "live"
    if is_pdf(content_type):
        return "pdf"
    if is_text(content_type):
        return "text"
    return "file"


def fallback_icon(content_type: str) -> str:
    if is_pdf(content_type):
        return PDF_ICON
    if is_text(content_type):
        return TEXT_ICON
    return FILE_ICON


def transfer_content_type(content_type: str) -> str:
    return content_type or DEFAULT_CONTENT_TYPE
