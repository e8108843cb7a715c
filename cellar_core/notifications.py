from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select

from cellar_core.auth import user_or_404
from cellar_core.db import new_id, notification_dismissal, now_ms, session_scope
from cellar_core.observability import increment, log_event
from cellar_core.validation import clean_text

CATEGORY_MAX = 128
STAMP_MAX = 512


def _category(value: str) -> str:
    return clean_text(value, "Category", CATEGORY_MAX).lower()


def _stamp(value: str) -> str:
    return clean_text(value, "Stamp", STAMP_MAX)


def dismiss(user_id: str, category: str, stamp: str, at: int | None = None) -> dict:
    category = _category(category)
    stamp = _stamp(stamp)
    ts = now_ms() if at is None else at
    with session_scope() as session:
        user_or_404(session, user_id)
        existing = session.execute(
            select(notification_dismissal).where(
                notification_dismissal.c.user_id == user_id,
                notification_dismissal.c.category == category,
                notification_dismissal.c.stamp == stamp,
            )
        ).mappings().one_or_none()
        if existing is None:
            row = {"id": new_id(), "user_id": user_id, "category": category, "stamp": stamp, "dismissed_at": ts}
            session.execute(notification_dismissal.insert().values(**row))
        else:
            row = {**dict(existing), "dismissed_at": ts}
            session.execute(
                notification_dismissal.update()
                .where(notification_dismissal.c.id == existing["id"])
                .values(dismissed_at=ts)
            )
        session.commit()
    increment("notifications.dismissed")
    log_event("notifications.dismissed", user_id=user_id, category=category)
    return row


def dismissed_stamps(user_id: str, categories: Iterable[str] | None = None) -> dict[str, set[str]]:
    query = select(notification_dismissal.c.category, notification_dismissal.c.stamp).where(
        notification_dismissal.c.user_id == user_id
    )
    wanted = None
    if categories is not None:
        wanted = {_category(c) for c in categories}
        if not wanted:
            return {}
        query = query.where(notification_dismissal.c.category.in_(wanted))
    out: dict[str, set[str]] = {c: set() for c in wanted or ()}
    with session_scope() as session:
        for category, stamp in session.execute(query):
            out.setdefault(category, set()).add(stamp)
    return out


def is_dismissed(user_id: str, category: str, stamp: str) -> bool:
    with session_scope() as session:
        row = session.execute(
            select(notification_dismissal.c.id).where(
                notification_dismissal.c.user_id == user_id,
                notification_dismissal.c.category == _category(category),
                notification_dismissal.c.stamp == _stamp(stamp),
            )
        ).first()
        return row is not None
