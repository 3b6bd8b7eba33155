from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from docsynth.models.interfaces import Attachment


def format_value(value: Any, separator: str = ", ") -> str:
    """Record value -> display string. Missing or null values render empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    attachment = Attachment.from_value(value)
    if attachment is not None:
        return attachment.filename or attachment.url
    if isinstance(value, Mapping):
        return str(dict(value))
    if isinstance(value, (list, tuple)):
        return separator.join(_format_item(item) for item in value if item is not None)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_item(item: Any) -> str:
    attachment = Attachment.from_value(item)
    if attachment is not None:
        return attachment.filename or attachment.url
    return format_value(item)


def image_attachments(value: Any) -> list[Attachment]:
    """Image attachments of an attachment array; empty for anything else."""
    if not isinstance(value, (list, tuple)):
        return []
    images: list[Attachment] = []
    for item in value:
        attachment = Attachment.from_value(item)
        if attachment is not None and attachment.is_image:
            images.append(attachment)
    return images
