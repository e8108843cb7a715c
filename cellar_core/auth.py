from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from cellar_core.db import fetch_one, user_account, user_sisterhood
from cellar_core.errors import forbidden


def user_or_404(session: Session, user_id: str) -> dict:
    return fetch_one(session, user_account, user_id, "User")


def require_owner(owner_id: str | None, user_id: str, message: str | None = None) -> None:
    if owner_id is None or owner_id != user_id:
        raise forbidden(message or "Only the owner may change this resource")


def membership(session: Session, sisterhood_id: str, user_id: str):
    return session.execute(
        select(user_sisterhood).where(
            user_sisterhood.c.sisterhood_id == sisterhood_id,
            user_sisterhood.c.user_id == user_id,
        )
    ).one_or_none()


def require_member(session: Session, sisterhood_id: str, user_id: str | None):
    row = membership(session, sisterhood_id, user_id) if user_id else None
    if row is None:
        raise forbidden("Only sisterhood members may do this")
    return row


def require_admin(session: Session, sisterhood_id: str, user_id: str | None):
    row = require_member(session, sisterhood_id, user_id)
    if not row.is_admin:
        raise forbidden("Only sisterhood admins may do this")
    return row
