from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select

from cellar_core.auth import require_owner, user_or_404
from cellar_core.db import bottle, bottle_location, bottle_share, fetch_one, new_id, now_ms, session_scope, wine_vintage
from cellar_core.errors import conflict, forbidden, invalid_state, validation_error
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event
from cellar_core.validation import clean_text, to_decimal

LOCATION_NAME_MAX = 128


def _check_capacity(capacity: int | None) -> int | None:
    if capacity is None:
        return None
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
        raise validation_error("invalid_capacity", "Capacity must be a non-negative integer", {"capacity": capacity})
    return capacity


def _location_name_taken(session, user_id: str, name: str, exclude_id: str | None = None) -> bool:
    query = select(bottle_location.c.id).where(bottle_location.c.user_id == user_id, bottle_location.c.name == name)
    if exclude_id is not None:
        query = query.where(bottle_location.c.id != exclude_id)
    return session.execute(query).first() is not None


def create_location(user_id: str, name: str, capacity: int | None = None) -> dict:
    clean = clean_text(name, "Location name", LOCATION_NAME_MAX)
    capacity = _check_capacity(capacity)
    with session_scope() as session:
        user_or_404(session, user_id)
        if _location_name_taken(session, user_id, clean):
            raise conflict("location_exists", "A location with this name already exists", {"name": clean})
        row = {"id": new_id(), "user_id": user_id, "name": clean, "capacity": capacity}
        session.execute(bottle_location.insert().values(**row))
        session.commit()
    increment("cellar.location.created")
    log_event("cellar.location.created", location_id=row["id"], user_id=user_id)
    return row


def update_location(location_id: str, user_id: str, name: str | None = None, capacity: int | None = None) -> dict:
    with session_scope() as session:
        row = fetch_one(session, bottle_location, location_id, "Bottle location")
        require_owner(row["user_id"], user_id, "Only the owner may change this location")
        values = {}
        if name is not None:
            clean = clean_text(name, "Location name", LOCATION_NAME_MAX)
            if _location_name_taken(session, user_id, clean, exclude_id=location_id):
                raise conflict("location_exists", "A location with this name already exists", {"name": clean})
            values["name"] = clean
        if capacity is not None:
            values["capacity"] = _check_capacity(capacity)
        if values:
            session.execute(bottle_location.update().where(bottle_location.c.id == location_id).values(**values))
            session.commit()
            row.update(values)
    increment("cellar.location.updated")
    log_event("cellar.location.updated", location_id=location_id, fields=sorted(values))
    return row


def rename_location(location_id: str, user_id: str, name: str) -> dict:
    return update_location(location_id, user_id, name=name)


def delete_location(location_id: str, user_id: str) -> None:
    with session_scope() as session:
        row = fetch_one(session, bottle_location, location_id, "Bottle location")
        require_owner(row["user_id"], user_id, "Only the owner may delete this location")
        # Bottles stay in the cellar with no location.
        delete_by_id(session, bottle_location, location_id)
        session.commit()
    increment("cellar.location.deleted")
    log_event("cellar.location.deleted", location_id=location_id, user_id=user_id)


def list_locations(user_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(bottle_location).where(bottle_location.c.user_id == user_id).order_by(bottle_location.c.name.asc())
        ).mappings()
        return [dict(r) for r in rows]


def location_occupancy(location_id: str) -> dict:
    with session_scope() as session:
        row = fetch_one(session, bottle_location, location_id, "Bottle location")
        held = session.execute(
            select(func.count())
            .select_from(bottle)
            .where(bottle.c.bottle_location_id == location_id, bottle.c.is_drunk.is_(False))
        ).scalar_one()
    capacity = row["capacity"]
    return {
        "location_id": location_id,
        "capacity": capacity,
        "held": held,
        "free": None if capacity is None else max(capacity - held, 0),
    }


def add_bottle(
    wine_vintage_id: str,
    user_id: str | None = None,
    location_id: str | None = None,
    price=None,
) -> dict:
    value: Decimal | None = None
    if price is not None:
        value = to_decimal(price, "Price", low=Decimal("0"))
    with session_scope() as session:
        fetch_one(session, wine_vintage, wine_vintage_id, "Wine vintage")
        if user_id is not None:
            user_or_404(session, user_id)
        if location_id is not None:
            location = fetch_one(session, bottle_location, location_id, "Bottle location")
            if location["user_id"] != user_id:
                raise forbidden("Bottles can only be stored in their owner's locations")
        row = {
            "id": new_id(),
            "wine_vintage_id": wine_vintage_id,
            "user_id": user_id,
            "bottle_location_id": location_id,
            "price": value,
            "is_drunk": False,
            "drunk_at": None,
            "created_at": now_ms(),
        }
        session.execute(bottle.insert().values(**row))
        session.commit()
    increment("cellar.bottle.added")
    log_event("cellar.bottle.added", bottle_id=row["id"], wine_vintage_id=wine_vintage_id, user_id=user_id)
    return row


def get_bottle(bottle_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, bottle, bottle_id, "Bottle")


def move_bottle(bottle_id: str, location_id: str | None) -> dict:
    with session_scope() as session:
        row = fetch_one(session, bottle, bottle_id, "Bottle")
        if row["is_drunk"]:
            raise invalid_state("already_drunk", "A drunk bottle cannot be moved", {"bottle_id": bottle_id})
        if location_id is not None:
            location = fetch_one(session, bottle_location, location_id, "Bottle location")
            if row["user_id"] is None or location["user_id"] != row["user_id"]:
                raise forbidden("Bottles can only be moved into their owner's locations")
        session.execute(bottle.update().where(bottle.c.id == bottle_id).values(bottle_location_id=location_id))
        session.commit()
    row["bottle_location_id"] = location_id
    increment("cellar.bottle.moved")
    log_event("cellar.bottle.moved", bottle_id=bottle_id, location_id=location_id)
    return row


def mark_drunk(bottle_id: str, at: int | None = None) -> dict:
    drunk_at = now_ms() if at is None else at
    with session_scope() as session:
        row = session.execute(select(bottle).where(bottle.c.id == bottle_id).with_for_update()).mappings().one_or_none()
        if row is None:
            fetch_one(session, bottle, bottle_id, "Bottle")
        if row["is_drunk"]:
            raise invalid_state("already_drunk", "Bottle has already been drunk", {"bottle_id": bottle_id})
        # Guarded update so a concurrent drink event cannot overwrite the first timestamp.
        updated = session.execute(
            bottle.update()
            .where(bottle.c.id == bottle_id, bottle.c.is_drunk.is_(False))
            .values(is_drunk=True, drunk_at=drunk_at)
        ).rowcount
        if updated != 1:
            raise invalid_state("already_drunk", "Bottle has already been drunk", {"bottle_id": bottle_id})
        session.commit()
    increment("cellar.bottle.drunk")
    log_event("cellar.bottle.drunk", bottle_id=bottle_id, drunk_at=drunk_at)
    return {**dict(row), "is_drunk": True, "drunk_at": drunk_at}


def transfer_bottle(bottle_id: str, from_user_id: str, to_user_id: str) -> dict:
    if from_user_id == to_user_id:
        raise validation_error("self_transfer", "A bottle cannot be transferred to its owner")
    with session_scope() as session:
        row = fetch_one(session, bottle, bottle_id, "Bottle")
        require_owner(row["user_id"], from_user_id, "Only the owner may transfer this bottle")
        if row["is_drunk"]:
            raise invalid_state("already_drunk", "A drunk bottle cannot be transferred", {"bottle_id": bottle_id})
        user_or_404(session, to_user_id)
        session.execute(
            bottle.update().where(bottle.c.id == bottle_id).values(user_id=to_user_id, bottle_location_id=None)
        )
        # Grants belong to the previous owner and go with the ownership.
        revoked = session.execute(bottle_share.delete().where(bottle_share.c.bottle_id == bottle_id)).rowcount
        session.commit()
    row.update(user_id=to_user_id, bottle_location_id=None)
    increment("cellar.bottle.transferred")
    log_event(
        "cellar.bottle.transferred",
        bottle_id=bottle_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        shares_revoked=revoked,
    )
    return row


def list_bottles(user_id: str, include_drunk: bool = False, location_id: str | None = None) -> list[dict]:
    query = select(bottle).where(bottle.c.user_id == user_id)
    if not include_drunk:
        query = query.where(bottle.c.is_drunk.is_(False))
    if location_id is not None:
        query = query.where(bottle.c.bottle_location_id == location_id)
    with session_scope() as session:
        rows = session.execute(query.order_by(bottle.c.created_at.asc(), bottle.c.id.asc())).mappings()
        return [dict(r) for r in rows]


def delete_bottle(bottle_id: str, user_id: str) -> None:
    with session_scope() as session:
        row = fetch_one(session, bottle, bottle_id, "Bottle")
        require_owner(row["user_id"], user_id, "Only the owner may delete this bottle")
        delete_by_id(session, bottle, bottle_id)
        session.commit()
    increment("cellar.bottle.deleted")
    log_event("cellar.bottle.deleted", bottle_id=bottle_id, user_id=user_id)
