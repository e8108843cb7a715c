from __future__ import annotations

from sqlalchemy import select

from cellar_core.auth import user_or_404
from cellar_core.db import new_id, now_ms, session_scope, user_account
from cellar_core.errors import conflict
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event
from cellar_core.storage import Attachment, attachment_from_row, make_attachment
from cellar_core.validation import clean_text


def normalize_email(email: str | None) -> str | None:
    if email is None or not email.strip():
        return None
    return clean_text(email, "Email", 256).lower()


def create_user(name: str, email: str | None = None) -> dict:
    clean = clean_text(name, "User name", 256)
    normalized = normalize_email(email)
    with session_scope() as session:
        if normalized is not None:
            taken = session.execute(
                select(user_account.c.id).where(user_account.c.email == normalized)
            ).first()
            if taken is not None:
                raise conflict("email_taken", "A user with this email already exists", {"email": normalized})
        row = {"id": new_id(), "name": clean, "email": normalized, "created_at": now_ms()}
        session.execute(user_account.insert().values(**row))
        session.commit()
    increment("users.created")
    log_event("users.created", user_id=row["id"])
    return row


def get_user(user_id: str) -> dict:
    with session_scope() as session:
        row = user_or_404(session, user_id)
    row.pop("profile_photo", None)
    return row


def find_user_by_email(email: str) -> dict | None:
    normalized = normalize_email(email)
    if normalized is None:
        return None
    with session_scope() as session:
        row = session.execute(
            select(user_account.c.id, user_account.c.name, user_account.c.email, user_account.c.created_at).where(
                user_account.c.email == normalized
            )
        ).mappings().one_or_none()
        return dict(row) if row is not None else None


def delete_user(user_id: str) -> None:
    with session_scope() as session:
        user_or_404(session, user_id)
        delete_by_id(session, user_account, user_id)
        session.commit()
    increment("users.deleted")
    log_event("users.deleted", user_id=user_id)


def set_user_photo(user_id: str, payload: bytes, content_type: str) -> Attachment:
    attachment = make_attachment(payload, content_type)
    with session_scope() as session:
        user_or_404(session, user_id)
        session.execute(
            user_account.update()
            .where(user_account.c.id == user_id)
            .values(profile_photo=attachment.payload, profile_photo_content_type=attachment.content_type)
        )
        session.commit()
    increment("users.photo.set")
    log_event("users.photo.set", user_id=user_id, size=len(attachment.payload), content_type=attachment.content_type)
    return attachment


def get_user_photo(user_id: str) -> Attachment | None:
    with session_scope() as session:
        user_or_404(session, user_id)
        row = session.execute(
            select(user_account.c.profile_photo, user_account.c.profile_photo_content_type).where(
                user_account.c.id == user_id
            )
        ).one()
        return attachment_from_row(row)


def clear_user_photo(user_id: str) -> None:
    with session_scope() as session:
        user_or_404(session, user_id)
        session.execute(
            user_account.update()
            .where(user_account.c.id == user_id)
            .values(profile_photo=None, profile_photo_content_type=None)
        )
        session.commit()
    increment("users.photo.cleared")
    log_event("users.photo.cleared", user_id=user_id)
