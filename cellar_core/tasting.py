from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from cellar_core.auth import require_owner, user_or_404
from cellar_core.db import bottle, fetch_one, new_id, now_ms, session_scope, tasting_note
from cellar_core.observability import increment, log_event
from cellar_core.validation import clean_text, to_decimal

NOTE_MAX = 2048
_UNSET = object()


def _score(value) -> Decimal | None:
    if value is None:
        return None
    return to_decimal(value, "Score", Decimal("0"), Decimal("100"))


def add_tasting_note(bottle_id: str, user_id: str, note: str, score=None) -> dict:
    text = clean_text(note, "Note", NOTE_MAX)
    value = _score(score)
    with session_scope() as session:
        fetch_one(session, bottle, bottle_id, "Bottle")
        user_or_404(session, user_id)
        row = {
            "id": new_id(),
            "bottle_id": bottle_id,
            "user_id": user_id,
            "note": text,
            "score": value,
            "created_at": now_ms(),
        }
        session.execute(tasting_note.insert().values(**row))
        session.commit()
    increment("tasting.note.added")
    log_event("tasting.note.added", note_id=row["id"], bottle_id=bottle_id, user_id=user_id)
    return row


def update_tasting_note(note_id: str, user_id: str, note: str | None = None, score=_UNSET) -> dict:
    values = {}
    if note is not None:
        values["note"] = clean_text(note, "Note", NOTE_MAX)
    if score is not _UNSET:
        values["score"] = _score(score)
    with session_scope() as session:
        row = fetch_one(session, tasting_note, note_id, "Tasting note")
        require_owner(row["user_id"], user_id, "Only the author may edit this note")
        if values:
            session.execute(tasting_note.update().where(tasting_note.c.id == note_id).values(**values))
            session.commit()
    row.update(values)
    increment("tasting.note.updated")
    log_event("tasting.note.updated", note_id=note_id, fields=sorted(values))
    return row


def delete_tasting_note(note_id: str, user_id: str) -> None:
    with session_scope() as session:
        row = fetch_one(session, tasting_note, note_id, "Tasting note")
        require_owner(row["user_id"], user_id, "Only the author may delete this note")
        session.execute(tasting_note.delete().where(tasting_note.c.id == note_id))
        session.commit()
    increment("tasting.note.deleted")
    log_event("tasting.note.deleted", note_id=note_id)


def list_tasting_notes(bottle_id: str, user_id: str | None = None) -> list[dict]:
    query = select(tasting_note).where(tasting_note.c.bottle_id == bottle_id)
    if user_id is not None:
        query = query.where(tasting_note.c.user_id == user_id)
    with session_scope() as session:
        rows = session.execute(query.order_by(tasting_note.c.created_at.asc(), tasting_note.c.id.asc())).mappings()
        return [dict(r) for r in rows]
