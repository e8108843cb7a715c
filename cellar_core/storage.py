from __future__ import annotations

from dataclasses import dataclass

from cellar_core.config import settings
from cellar_core.errors import validation_error


@dataclass(frozen=True)
class Attachment:
    payload: bytes
    content_type: str


def make_attachment(payload: bytes, content_type: str) -> Attachment:
    if not isinstance(payload, (bytes, bytearray)) or not payload:
        raise validation_error("invalid_attachment", "Attachment payload must be non-empty bytes")
    if len(payload) > settings.max_photo_bytes:
        raise validation_error(
            "attachment_too_large",
            f"Attachment exceeds {settings.max_photo_bytes} bytes",
            {"size": len(payload)},
        )
    normalized = (content_type or "").strip().lower()
    if not normalized or "/" not in normalized or len(normalized) > 128:
        raise validation_error("invalid_content_type", "Content type must look like 'type/subtype'")
    return Attachment(payload=bytes(payload), content_type=normalized)


def attachment_from_row(row) -> Attachment | None:
    if row is None or row.profile_photo is None:
        return None
    return Attachment(payload=bytes(row.profile_photo), content_type=row.profile_photo_content_type or "")
