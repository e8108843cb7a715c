from __future__ import annotations

from sqlalchemy import select

from cellar_core.db import (
    appellation,
    country,
    fetch_one,
    get_or_insert,
    region,
    session_scope,
    sub_appellation,
)
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event
from cellar_core.validation import clean_text

COUNTRY_NAME_MAX = 128
REGION_NAME_MAX = 128
APPELLATION_NAME_MAX = 256
SUB_APPELLATION_NAME_MAX = 256


def _upsert(session, table, values: dict, kind: str) -> dict:
    row, created = get_or_insert(session, table, values)
    if created:
        increment(f"taxonomy.{kind}.created")
        log_event(f"taxonomy.{kind}.created", **row)
    return row


def upsert_country(name: str) -> dict:
    clean = clean_text(name, "Country name", COUNTRY_NAME_MAX)
    with session_scope() as session:
        return _upsert(session, country, {"name": clean}, "country")


def upsert_region(name: str, country_id: str) -> dict:
    clean = clean_text(name, "Region name", REGION_NAME_MAX)
    with session_scope() as session:
        fetch_one(session, country, country_id, "Country")
        return _upsert(session, region, {"name": clean, "country_id": country_id}, "region")


def upsert_appellation(name: str, region_id: str) -> dict:
    clean = clean_text(name, "Appellation name", APPELLATION_NAME_MAX)
    with session_scope() as session:
        fetch_one(session, region, region_id, "Region")
        return _upsert(session, appellation, {"name": clean, "region_id": region_id}, "appellation")


def upsert_sub_appellation(name: str | None, appellation_id: str) -> dict:
    # A null name stands for the appellation-level "generic" sub-appellation.
    clean = None
    if name is not None and name.strip():
        clean = clean_text(name, "Sub-appellation name", SUB_APPELLATION_NAME_MAX)
    with session_scope() as session:
        fetch_one(session, appellation, appellation_id, "Appellation")
        return _upsert(
            session, sub_appellation, {"name": clean, "appellation_id": appellation_id}, "sub_appellation"
        )


def get_country(country_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, country, country_id, "Country")


def get_region(region_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, region, region_id, "Region")


def get_appellation(appellation_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, appellation, appellation_id, "Appellation")


def get_sub_appellation(sub_appellation_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, sub_appellation, sub_appellation_id, "Sub-appellation")


def list_countries() -> list[dict]:
    with session_scope() as session:
        rows = session.execute(select(country).order_by(country.c.name.asc())).mappings()
        return [dict(r) for r in rows]


def list_regions(country_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(region).where(region.c.country_id == country_id).order_by(region.c.name.asc())
        ).mappings()
        return [dict(r) for r in rows]


def list_appellations(region_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(appellation).where(appellation.c.region_id == region_id).order_by(appellation.c.name.asc())
        ).mappings()
        return [dict(r) for r in rows]


def list_sub_appellations(appellation_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(sub_appellation)
            .where(sub_appellation.c.appellation_id == appellation_id)
            .order_by(sub_appellation.c.name.asc())
        ).mappings()
        return [dict(r) for r in rows]


def describe_path(sub_appellation_id: str) -> dict:
    with session_scope() as session:
        row = session.execute(
            select(
                sub_appellation.c.id.label("sub_appellation_id"),
                sub_appellation.c.name.label("sub_appellation"),
                appellation.c.id.label("appellation_id"),
                appellation.c.name.label("appellation"),
                region.c.id.label("region_id"),
                region.c.name.label("region"),
                country.c.id.label("country_id"),
                country.c.name.label("country"),
            )
            .join(appellation, appellation.c.id == sub_appellation.c.appellation_id)
            .join(region, region.c.id == appellation.c.region_id)
            .join(country, country.c.id == region.c.country_id)
            .where(sub_appellation.c.id == sub_appellation_id)
        ).mappings().one_or_none()
        if row is None:
            fetch_one(session, sub_appellation, sub_appellation_id, "Sub-appellation")
        return dict(row)


def _delete(table, row_id: str, kind: str, what: str) -> None:
    with session_scope() as session:
        fetch_one(session, table, row_id, what)
        delete_by_id(session, table, row_id)
        session.commit()
    increment(f"taxonomy.{kind}.deleted")
    log_event(f"taxonomy.{kind}.deleted", id=row_id)


def delete_country(country_id: str) -> None:
    _delete(country, country_id, "country", "Country")


def delete_region(region_id: str) -> None:
    _delete(region, region_id, "region", "Region")


def delete_appellation(appellation_id: str) -> None:
    _delete(appellation, appellation_id, "appellation", "Appellation")


def delete_sub_appellation(sub_appellation_id: str) -> None:
    _delete(sub_appellation, sub_appellation_id, "sub_appellation", "Sub-appellation")
