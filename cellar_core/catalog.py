from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from cellar_core.auth import user_or_404
from cellar_core.db import (
    fetch_one,
    get_or_insert,
    new_id,
    session_scope,
    sub_appellation,
    wine,
    wine_vintage,
    wine_vintage_drinking_window,
    wine_vintage_evolution_score,
)
from cellar_core.errors import validation_error
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event
from cellar_core.validation import clean_text, optional_text, to_decimal

WINE_COLORS = {"red", "white", "rose", "sparkling", "dessert", "fortified"}
MIN_VINTAGE = 1700
MAX_VINTAGE = 2200


def _check_year(year: int, field: str = "Vintage") -> int:
    if isinstance(year, bool) or not isinstance(year, int) or not MIN_VINTAGE <= year <= MAX_VINTAGE:
        raise validation_error(
            "invalid_year",
            f"{field} must be a year between {MIN_VINTAGE} and {MAX_VINTAGE}",
            {"field": field, "value": year},
        )
    return year


def _check_color(color: str | None) -> str | None:
    if color is None:
        return None
    normalized = color.strip().lower()
    if normalized not in WINE_COLORS:
        raise validation_error("invalid_color", "Unknown wine color", {"allowed": sorted(WINE_COLORS)})
    return normalized


def get_or_create_wine(
    name: str,
    sub_appellation_id: str,
    grape_variety: str | None = None,
    color: str | None = None,
) -> dict:
    clean = clean_text(name, "Wine name", 256)
    grape = optional_text(grape_variety, "Grape variety", 256)
    color = _check_color(color)
    with session_scope() as session:
        fetch_one(session, sub_appellation, sub_appellation_id, "Sub-appellation")
        row, created = get_or_insert(
            session,
            wine,
            {"name": clean, "sub_appellation_id": sub_appellation_id},
            {"grape_variety": grape, "color": color},
        )
    if not created:
        return row
    increment("catalog.wine.created")
    log_event("catalog.wine.created", wine_id=row["id"], sub_appellation_id=sub_appellation_id)
    return row


def get_wine(wine_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, wine, wine_id, "Wine")


def list_wines(sub_appellation_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(wine).where(wine.c.sub_appellation_id == sub_appellation_id).order_by(wine.c.name.asc())
        ).mappings()
        return [dict(r) for r in rows]


def delete_wine(wine_id: str) -> None:
    with session_scope() as session:
        fetch_one(session, wine, wine_id, "Wine")
        delete_by_id(session, wine, wine_id)
        session.commit()
    increment("catalog.wine.deleted")
    log_event("catalog.wine.deleted", wine_id=wine_id)


def get_or_create_vintage(wine_id: str, year: int) -> dict:
    _check_year(year)
    with session_scope() as session:
        fetch_one(session, wine, wine_id, "Wine")
        row, created = get_or_insert(session, wine_vintage, {"wine_id": wine_id, "vintage": year})
    if not created:
        return row
    increment("catalog.vintage.created")
    log_event("catalog.vintage.created", wine_vintage_id=row["id"], wine_id=wine_id, vintage=year)
    return row


def get_vintage(wine_vintage_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, wine_vintage, wine_vintage_id, "Wine vintage")


def list_vintages(wine_id: str) -> list[dict]:
    with session_scope() as session:
        fetch_one(session, wine, wine_id, "Wine")
        rows = session.execute(
            select(wine_vintage).where(wine_vintage.c.wine_id == wine_id).order_by(wine_vintage.c.vintage.asc())
        ).mappings()
        return [dict(r) for r in rows]


def delete_vintage(wine_vintage_id: str) -> None:
    with session_scope() as session:
        fetch_one(session, wine_vintage, wine_vintage_id, "Wine vintage")
        delete_by_id(session, wine_vintage, wine_vintage_id)
        session.commit()
    increment("catalog.vintage.deleted")
    log_event("catalog.vintage.deleted", wine_vintage_id=wine_vintage_id)


def record_evolution_score(user_id: str, wine_vintage_id: str, year: int, score) -> dict:
    _check_year(year, "Year")
    value = to_decimal(score, "Score", Decimal("0"), Decimal("100"))
    with session_scope() as session:
        user_or_404(session, user_id)
        fetch_one(session, wine_vintage, wine_vintage_id, "Wine vintage")
        existing = session.execute(
            select(wine_vintage_evolution_score)
            .where(
                wine_vintage_evolution_score.c.user_id == user_id,
                wine_vintage_evolution_score.c.wine_vintage_id == wine_vintage_id,
                wine_vintage_evolution_score.c.year == year,
            )
            .with_for_update()
        ).mappings().one_or_none()
        if existing is None:
            row = {
                "id": new_id(),
                "user_id": user_id,
                "wine_vintage_id": wine_vintage_id,
                "year": year,
                "score": value,
            }
            session.execute(wine_vintage_evolution_score.insert().values(**row))
        else:
            row = {**dict(existing), "score": value}
            session.execute(
                wine_vintage_evolution_score.update()
                .where(wine_vintage_evolution_score.c.id == existing["id"])
                .values(score=value)
            )
        session.commit()
    increment("catalog.evolution_score.recorded")
    log_event(
        "catalog.evolution_score.recorded",
        user_id=user_id,
        wine_vintage_id=wine_vintage_id,
        year=year,
        score=value,
    )
    return row


def list_evolution_scores(user_id: str, wine_vintage_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(wine_vintage_evolution_score)
            .where(
                wine_vintage_evolution_score.c.user_id == user_id,
                wine_vintage_evolution_score.c.wine_vintage_id == wine_vintage_id,
            )
            .order_by(wine_vintage_evolution_score.c.year.asc())
        ).mappings()
        return [dict(r) for r in rows]


def delete_evolution_score(user_id: str, wine_vintage_id: str, year: int) -> bool:
    with session_scope() as session:
        deleted = session.execute(
            wine_vintage_evolution_score.delete().where(
                wine_vintage_evolution_score.c.user_id == user_id,
                wine_vintage_evolution_score.c.wine_vintage_id == wine_vintage_id,
                wine_vintage_evolution_score.c.year == year,
            )
        ).rowcount
        session.commit()
    if deleted:
        increment("catalog.evolution_score.deleted")
        log_event("catalog.evolution_score.deleted", user_id=user_id, wine_vintage_id=wine_vintage_id, year=year)
    return bool(deleted)


def set_drinking_window(user_id: str, wine_vintage_id: str, start_at: int, end_at: int) -> dict:
    if start_at > end_at:
        raise validation_error(
            "invalid_window",
            "Drinking window must start before it ends",
            {"start_at": start_at, "end_at": end_at},
        )
    with session_scope() as session:
        user_or_404(session, user_id)
        fetch_one(session, wine_vintage, wine_vintage_id, "Wine vintage")
        existing = session.execute(
            select(wine_vintage_drinking_window).where(
                wine_vintage_drinking_window.c.user_id == user_id,
                wine_vintage_drinking_window.c.wine_vintage_id == wine_vintage_id,
            )
        ).mappings().one_or_none()
        if existing is None:
            row = {
                "id": new_id(),
                "user_id": user_id,
                "wine_vintage_id": wine_vintage_id,
                "start_at": start_at,
                "end_at": end_at,
            }
            session.execute(wine_vintage_drinking_window.insert().values(**row))
        else:
            row = {**dict(existing), "start_at": start_at, "end_at": end_at}
            session.execute(
                wine_vintage_drinking_window.update()
                .where(wine_vintage_drinking_window.c.id == existing["id"])
                .values(start_at=start_at, end_at=end_at)
            )
        session.commit()
    increment("catalog.drinking_window.set")
    log_event("catalog.drinking_window.set", user_id=user_id, wine_vintage_id=wine_vintage_id)
    return row


def get_drinking_window(user_id: str, wine_vintage_id: str) -> dict | None:
    with session_scope() as session:
        row = session.execute(
            select(wine_vintage_drinking_window).where(
                wine_vintage_drinking_window.c.user_id == user_id,
                wine_vintage_drinking_window.c.wine_vintage_id == wine_vintage_id,
            )
        ).mappings().one_or_none()
        return dict(row) if row is not None else None
