from __future__ import annotations

from sqlalchemy import select

from cellar_core.auth import require_owner, user_or_404
from cellar_core.db import fetch_one, new_id, session_scope, wine, wine_vintage, wine_vintage_wish, wishlist
from cellar_core.errors import conflict, not_found
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event
from cellar_core.validation import clean_text

NAME_MIN = 2
NAME_MAX = 256


def _clean_name(name: str) -> str:
    return clean_text(name, "Wishlist name", NAME_MAX, min_length=NAME_MIN)


def _name_taken(session, user_id: str, name: str, exclude_id: str | None = None) -> bool:
    query = select(wishlist.c.id).where(wishlist.c.user_id == user_id, wishlist.c.name == name)
    if exclude_id is not None:
        query = query.where(wishlist.c.id != exclude_id)
    return session.execute(query).first() is not None


def _owned(session, wishlist_id: str, user_id: str) -> dict:
    row = fetch_one(session, wishlist, wishlist_id, "Wishlist")
    require_owner(row["user_id"], user_id, "Only the owner may change this wishlist")
    return row


def create_wishlist(user_id: str, name: str) -> dict:
    clean = _clean_name(name)
    with session_scope() as session:
        user_or_404(session, user_id)
        if _name_taken(session, user_id, clean):
            raise conflict("wishlist_exists", "A wishlist with this name already exists", {"name": clean})
        row = {"id": new_id(), "user_id": user_id, "name": clean}
        session.execute(wishlist.insert().values(**row))
        session.commit()
    increment("wishlists.created")
    log_event("wishlists.created", wishlist_id=row["id"], user_id=user_id)
    return row


def rename_wishlist(wishlist_id: str, user_id: str, name: str) -> dict:
    clean = _clean_name(name)
    with session_scope() as session:
        row = _owned(session, wishlist_id, user_id)
        if _name_taken(session, user_id, clean, exclude_id=wishlist_id):
            raise conflict("wishlist_exists", "A wishlist with this name already exists", {"name": clean})
        session.execute(wishlist.update().where(wishlist.c.id == wishlist_id).values(name=clean))
        session.commit()
    row["name"] = clean
    increment("wishlists.renamed")
    log_event("wishlists.renamed", wishlist_id=wishlist_id)
    return row


def delete_wishlist(wishlist_id: str, user_id: str) -> None:
    with session_scope() as session:
        _owned(session, wishlist_id, user_id)
        delete_by_id(session, wishlist, wishlist_id)
        session.commit()
    increment("wishlists.deleted")
    log_event("wishlists.deleted", wishlist_id=wishlist_id)


def list_wishlists(user_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(wishlist).where(wishlist.c.user_id == user_id).order_by(wishlist.c.name.asc())
        ).mappings()
        return [dict(r) for r in rows]


def add_wish(wishlist_id: str, wine_vintage_id: str, user_id: str) -> dict:
    with session_scope() as session:
        _owned(session, wishlist_id, user_id)
        fetch_one(session, wine_vintage, wine_vintage_id, "Wine vintage")
        existing = session.execute(
            select(wine_vintage_wish.c.id).where(
                wine_vintage_wish.c.wishlist_id == wishlist_id,
                wine_vintage_wish.c.wine_vintage_id == wine_vintage_id,
            )
        ).first()
        if existing is not None:
            raise conflict(
                "wish_exists", "Vintage is already on this wishlist", {"wine_vintage_id": wine_vintage_id}
            )
        row = {"id": new_id(), "wishlist_id": wishlist_id, "wine_vintage_id": wine_vintage_id}
        session.execute(wine_vintage_wish.insert().values(**row))
        session.commit()
    increment("wishlists.wish.added")
    log_event("wishlists.wish.added", wishlist_id=wishlist_id, wine_vintage_id=wine_vintage_id)
    return row


def remove_wish(wishlist_id: str, wine_vintage_id: str, user_id: str) -> None:
    with session_scope() as session:
        _owned(session, wishlist_id, user_id)
        deleted = session.execute(
            wine_vintage_wish.delete().where(
                wine_vintage_wish.c.wishlist_id == wishlist_id,
                wine_vintage_wish.c.wine_vintage_id == wine_vintage_id,
            )
        ).rowcount
        if not deleted:
            raise not_found("Wish", {"wishlist_id": wishlist_id, "wine_vintage_id": wine_vintage_id})
        session.commit()
    increment("wishlists.wish.removed")
    log_event("wishlists.wish.removed", wishlist_id=wishlist_id, wine_vintage_id=wine_vintage_id)


def list_wishes(wishlist_id: str) -> list[dict]:
    with session_scope() as session:
        fetch_one(session, wishlist, wishlist_id, "Wishlist")
        rows = session.execute(
            select(
                wine_vintage_wish.c.id,
                wine_vintage_wish.c.wine_vintage_id,
                wine_vintage.c.vintage,
                wine.c.id.label("wine_id"),
                wine.c.name.label("wine_name"),
            )
            .join(wine_vintage, wine_vintage.c.id == wine_vintage_wish.c.wine_vintage_id)
            .join(wine, wine.c.id == wine_vintage.c.wine_id)
            .where(wine_vintage_wish.c.wishlist_id == wishlist_id)
            .order_by(wine.c.name.asc(), wine_vintage.c.vintage.asc())
        ).mappings()
        return [dict(r) for r in rows]
