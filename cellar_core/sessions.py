from __future__ import annotations

from typing import Any

from sqlalchemy import select

from cellar_core.auth import membership, require_admin, require_member
from cellar_core.db import (
    bottle,
    bottle_sip_session,
    fetch_one,
    new_id,
    now_ms,
    session_scope,
    sip_session,
    sisterhood,
    user_sisterhood,
    wine,
    wine_vintage,
)
from cellar_core.errors import conflict, forbidden, not_found
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event
from cellar_core.schemas import SipSessionDetails
from cellar_core.validation import parse_model

_DETAIL_FIELDS = tuple(SipSessionDetails.model_fields)


def create_sip_session(sisterhood_id: str, user_id: str, details: SipSessionDetails | dict[str, Any]) -> dict:
    parsed = parse_model(SipSessionDetails, details)
    with session_scope() as session:
        fetch_one(session, sisterhood, sisterhood_id, "Sisterhood")
        require_admin(session, sisterhood_id, user_id)
        ts = now_ms()
        row = {
            "id": new_id(),
            "sisterhood_id": sisterhood_id,
            **parsed.model_dump(),
            "created_at": ts,
            "updated_at": ts,
        }
        session.execute(sip_session.insert().values(**row))
        session.commit()
    increment("social.sip_session.created")
    log_event("social.sip_session.created", sip_session_id=row["id"], sisterhood_id=sisterhood_id)
    return row


def get_sip_session(sip_session_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, sip_session, sip_session_id, "Sip session")


def update_sip_session(sip_session_id: str, user_id: str, **changes: Any) -> dict:
    with session_scope() as session:
        row = fetch_one(session, sip_session, sip_session_id, "Sip session")
        require_admin(session, row["sisterhood_id"], user_id)
        current = {name: row[name] for name in _DETAIL_FIELDS}
        parsed = parse_model(SipSessionDetails, {**current, **changes})
        values = {**parsed.model_dump(), "updated_at": now_ms()}
        session.execute(sip_session.update().where(sip_session.c.id == sip_session_id).values(**values))
        session.commit()
    row.update(values)
    increment("social.sip_session.updated")
    log_event("social.sip_session.updated", sip_session_id=sip_session_id, fields=sorted(changes))
    return row


def delete_sip_session(sip_session_id: str, user_id: str) -> None:
    with session_scope() as session:
        row = fetch_one(session, sip_session, sip_session_id, "Sip session")
        require_admin(session, row["sisterhood_id"], user_id)
        delete_by_id(session, sip_session, sip_session_id)
        session.commit()
    increment("social.sip_session.deleted")
    log_event("social.sip_session.deleted", sip_session_id=sip_session_id)


def list_sip_sessions(sisterhood_id: str) -> list[dict]:
    with session_scope() as session:
        fetch_one(session, sisterhood, sisterhood_id, "Sisterhood")
        rows = session.execute(
            select(sip_session)
            .where(sip_session.c.sisterhood_id == sisterhood_id)
            .order_by(sip_session.c.scheduled_at.asc(), sip_session.c.created_at.asc())
        ).mappings()
        return [dict(r) for r in rows]


def upcoming_sip_sessions(user_id: str, now: int | None = None, limit: int = 10) -> list[dict]:
    ts = now_ms() if now is None else now
    with session_scope() as session:
        rows = session.execute(
            select(sip_session, sisterhood.c.name.label("sisterhood_name"))
            .join(sisterhood, sisterhood.c.id == sip_session.c.sisterhood_id)
            .join(user_sisterhood, user_sisterhood.c.sisterhood_id == sip_session.c.sisterhood_id)
            .where(user_sisterhood.c.user_id == user_id, sip_session.c.scheduled_at >= ts)
            .order_by(sip_session.c.scheduled_at.asc())
            .limit(limit)
        ).mappings()
        return [dict(r) for r in rows]


def _link(session, sip_session_id: str, bottle_id: str):
    return session.execute(
        select(bottle_sip_session).where(
            bottle_sip_session.c.sip_session_id == sip_session_id,
            bottle_sip_session.c.bottle_id == bottle_id,
        )
    ).one_or_none()


def _owner_or_admin(session, sisterhood_id: str, owner_id: str | None, user_id: str) -> None:
    if owner_id is not None and owner_id == user_id:
        return
    row = membership(session, sisterhood_id, user_id)
    if row is None or not row.is_admin:
        raise forbidden("Only the bottle owner or a sisterhood admin may do this")


def attach_bottle(sip_session_id: str, bottle_id: str, user_id: str) -> dict:
    with session_scope() as session:
        event = fetch_one(session, sip_session, sip_session_id, "Sip session")
        item = fetch_one(session, bottle, bottle_id, "Bottle")
        if item["user_id"] != user_id:
            raise forbidden("Only the bottle owner may bring it to a sip session")
        require_member(session, event["sisterhood_id"], user_id)
        if _link(session, sip_session_id, bottle_id) is not None:
            raise conflict("bottle_attached", "Bottle is already part of this sip session", {"bottle_id": bottle_id})
        row = {"bottle_id": bottle_id, "sip_session_id": sip_session_id, "is_revealed": False}
        session.execute(bottle_sip_session.insert().values(**row))
        session.commit()
    increment("social.sip_session.bottle_attached")
    log_event("social.sip_session.bottle_attached", sip_session_id=sip_session_id, bottle_id=bottle_id)
    return row


def reveal_bottle(sip_session_id: str, bottle_id: str, user_id: str) -> dict:
    with session_scope() as session:
        event = fetch_one(session, sip_session, sip_session_id, "Sip session")
        link = _link(session, sip_session_id, bottle_id)
        if link is None:
            raise not_found("Sip session bottle", {"sip_session_id": sip_session_id, "bottle_id": bottle_id})
        owner_id = session.execute(select(bottle.c.user_id).where(bottle.c.id == bottle_id)).scalar_one()
        _owner_or_admin(session, event["sisterhood_id"], owner_id, user_id)
        row = {"bottle_id": bottle_id, "sip_session_id": sip_session_id, "is_revealed": True}
        if link.is_revealed:
            return row
        session.execute(
            bottle_sip_session.update()
            .where(
                bottle_sip_session.c.sip_session_id == sip_session_id,
                bottle_sip_session.c.bottle_id == bottle_id,
            )
            .values(is_revealed=True)
        )
        session.commit()
    increment("social.sip_session.bottle_revealed")
    log_event("social.sip_session.bottle_revealed", sip_session_id=sip_session_id, bottle_id=bottle_id)
    return row


def detach_bottle(sip_session_id: str, bottle_id: str, user_id: str) -> None:
    with session_scope() as session:
        event = fetch_one(session, sip_session, sip_session_id, "Sip session")
        if _link(session, sip_session_id, bottle_id) is None:
            raise not_found("Sip session bottle", {"sip_session_id": sip_session_id, "bottle_id": bottle_id})
        owner_id = session.execute(select(bottle.c.user_id).where(bottle.c.id == bottle_id)).scalar_one()
        _owner_or_admin(session, event["sisterhood_id"], owner_id, user_id)
        session.execute(
            bottle_sip_session.delete().where(
                bottle_sip_session.c.sip_session_id == sip_session_id,
                bottle_sip_session.c.bottle_id == bottle_id,
            )
        )
        session.commit()
    increment("social.sip_session.bottle_detached")
    log_event("social.sip_session.bottle_detached", sip_session_id=sip_session_id, bottle_id=bottle_id)


def list_session_bottles(sip_session_id: str, viewer_user_id: str) -> list[dict]:
    with session_scope() as session:
        event = fetch_one(session, sip_session, sip_session_id, "Sip session")
        require_member(session, event["sisterhood_id"], viewer_user_id)
        rows = session.execute(
            select(
                bottle_sip_session.c.bottle_id,
                bottle_sip_session.c.is_revealed,
                bottle.c.user_id,
                bottle.c.wine_vintage_id,
                wine_vintage.c.vintage,
                wine.c.id.label("wine_id"),
                wine.c.name.label("wine_name"),
            )
            .join(bottle, bottle.c.id == bottle_sip_session.c.bottle_id)
            .join(wine_vintage, wine_vintage.c.id == bottle.c.wine_vintage_id)
            .join(wine, wine.c.id == wine_vintage.c.wine_id)
            .where(bottle_sip_session.c.sip_session_id == sip_session_id)
            .order_by(bottle_sip_session.c.bottle_id.asc())
        ).mappings()
        out = []
        for r in rows:
            item = dict(r)
            if not item["is_revealed"] and item["user_id"] != viewer_user_id:
                # Blind tasting: identity stays hidden until revealed.
                item.update(wine_vintage_id=None, vintage=None, wine_id=None, wine_name=None)
            out.append(item)
        return out
