from __future__ import annotations

from sqlalchemy import or_, select

from cellar_core.auth import require_owner, user_or_404
from cellar_core.db import bottle, bottle_share, fetch_one, new_id, now_ms, session_scope
from cellar_core.errors import conflict, forbidden, validation_error
from cellar_core.observability import increment, log_event


def share_bottle(bottle_id: str, from_user_id: str, to_user_id: str) -> dict:
    if from_user_id == to_user_id:
        raise validation_error("self_share", "A bottle cannot be shared with its owner", {"user_id": from_user_id})
    with session_scope() as session:
        item = fetch_one(session, bottle, bottle_id, "Bottle")
        require_owner(item["user_id"], from_user_id, "Only the owner may share this bottle")
        user_or_404(session, to_user_id)
        existing = session.execute(
            select(bottle_share.c.id).where(
                bottle_share.c.bottle_id == bottle_id,
                bottle_share.c.shared_with_user_id == to_user_id,
            )
        ).first()
        if existing is not None:
            raise conflict(
                "share_exists",
                "Bottle is already shared with this user",
                {"bottle_id": bottle_id, "shared_with_user_id": to_user_id},
            )
        row = {
            "id": new_id(),
            "bottle_id": bottle_id,
            "shared_by_user_id": from_user_id,
            "shared_with_user_id": to_user_id,
            "shared_at": now_ms(),
        }
        session.execute(bottle_share.insert().values(**row))
        session.commit()
    increment("sharing.bottle.shared")
    log_event("sharing.bottle.shared", share_id=row["id"], bottle_id=bottle_id, to_user_id=to_user_id)
    return row


def revoke_share(share_id: str, user_id: str) -> None:
    with session_scope() as session:
        row = fetch_one(session, bottle_share, share_id, "Bottle share")
        # Either end of the grant may withdraw it.
        if user_id not in (row["shared_by_user_id"], row["shared_with_user_id"]):
            raise forbidden("Only the people involved may revoke this share")
        session.execute(bottle_share.delete().where(bottle_share.c.id == share_id))
        session.commit()
    increment("sharing.bottle.revoked")
    log_event("sharing.bottle.revoked", share_id=share_id, user_id=user_id)


def list_shares_for_bottle(bottle_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(bottle_share).where(bottle_share.c.bottle_id == bottle_id).order_by(bottle_share.c.shared_at.asc())
        ).mappings()
        return [dict(r) for r in rows]


def list_shares_granted(user_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(bottle_share)
            .where(bottle_share.c.shared_by_user_id == user_id)
            .order_by(bottle_share.c.shared_at.desc())
        ).mappings()
        return [dict(r) for r in rows]


def list_shares_received(user_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(bottle_share)
            .where(bottle_share.c.shared_with_user_id == user_id)
            .order_by(bottle_share.c.shared_at.desc())
        ).mappings()
        return [dict(r) for r in rows]


def list_visible_bottles(user_id: str) -> list[dict]:
    shared = select(bottle_share.c.bottle_id).where(bottle_share.c.shared_with_user_id == user_id)
    with session_scope() as session:
        rows = session.execute(
            select(bottle)
            .where(or_(bottle.c.user_id == user_id, bottle.c.id.in_(shared)))
            .order_by(bottle.c.created_at.asc(), bottle.c.id.asc())
        ).mappings()
        return [{**dict(r), "shared": r["user_id"] != user_id} for r in rows]
