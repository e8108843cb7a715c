"""Versioned taste profiles and the suggestion snapshots generated from them.

A user has at most one active profile. Activation archives the previous one
and inserts the new version in a single transaction; the partial unique index
``ux_taste_profile_user_in_use`` backs this up at the storage layer, so a
concurrent activation that loses the race gets a ``ConflictError`` (or a
``TransientError`` when the store reports a lock timeout) and may retry.

Suggestions belong to one profile version and are replaced as a whole.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from cellar_core.auth import require_owner, user_or_404
from cellar_core.config import settings
from cellar_core.db import (
    appellation,
    country,
    fetch_one,
    new_id,
    now_ms,
    region,
    session_scope,
    sub_appellation,
    suggested_appellation,
    suggested_wine,
    taste_profile,
    wine,
)
from cellar_core.errors import conflict, invalid_state, not_found, validation_error
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event, timed
from cellar_core.schemas import SuggestionCandidate
from cellar_core.validation import clean_text, collapse_whitespace, parse_model

PROFILE_MAX = 4096
SUMMARY_MAX = 512
REASON_MAX = 512

ACTIVE = "active"
ARCHIVED = "archived"


def _with_state(row) -> dict:
    out = dict(row)
    out["state"] = ACTIVE if out["in_use"] else ARCHIVED
    return out


def prepare_candidates(candidates: Iterable[SuggestionCandidate | dict[str, Any]]) -> list[SuggestionCandidate]:
    # Normalisation below must not touch the caller's own models.
    parsed = [parse_model(SuggestionCandidate, c).model_copy(deep=True) for c in candidates]
    if len(parsed) > settings.max_suggestion_candidates:
        raise validation_error(
            "too_many_candidates",
            f"At most {settings.max_suggestion_candidates} candidates are allowed",
            {"count": len(parsed)},
        )
    seen: set[str] = set()
    for candidate in parsed:
        if candidate.sub_appellation_id in seen:
            raise validation_error(
                "duplicate_candidate",
                "Sub-appellation appears more than once",
                {"sub_appellation_id": candidate.sub_appellation_id},
            )
        seen.add(candidate.sub_appellation_id)
        wine_ids: set[str] = set()
        for item in candidate.wines:
            if item.wine_id in wine_ids:
                raise validation_error(
                    "duplicate_candidate",
                    "Wine appears more than once for the same sub-appellation",
                    {"sub_appellation_id": candidate.sub_appellation_id, "wine_id": item.wine_id},
                )
            wine_ids.add(item.wine_id)
        candidate.reason = collapse_whitespace(candidate.reason)
        if candidate.reason is not None and len(candidate.reason) > REASON_MAX:
            raise validation_error(
                "field_too_long",
                f"Reason must be {REASON_MAX} characters or fewer",
                {"field": "reason", "sub_appellation_id": candidate.sub_appellation_id},
            )
        for item in candidate.wines:
            item.vintage = item.vintage or None
    return parsed


def _check_references(session, candidates: list[SuggestionCandidate]) -> None:
    sub_ids = {c.sub_appellation_id for c in candidates}
    wine_ids = {w.wine_id for c in candidates for w in c.wines}
    if sub_ids:
        found = set(session.execute(select(sub_appellation.c.id).where(sub_appellation.c.id.in_(sub_ids))).scalars())
        missing = sorted(sub_ids - found)
        if missing:
            raise not_found("Sub-appellation", {"ids": missing})
    if wine_ids:
        found = set(session.execute(select(wine.c.id).where(wine.c.id.in_(wine_ids))).scalars())
        missing = sorted(wine_ids - found)
        if missing:
            raise not_found("Wine", {"ids": missing})


def _replace_suggestions(session, profile_id: str, candidates: list[SuggestionCandidate]) -> int:
    _check_references(session, candidates)
    old = select(suggested_appellation.c.id).where(suggested_appellation.c.taste_profile_id == profile_id)
    session.execute(suggested_wine.delete().where(suggested_wine.c.suggested_appellation_id.in_(old)))
    session.execute(suggested_appellation.delete().where(suggested_appellation.c.taste_profile_id == profile_id))
    appellation_rows = []
    wine_rows = []
    for candidate in candidates:
        suggestion_id = new_id()
        appellation_rows.append(
            {
                "id": suggestion_id,
                "taste_profile_id": profile_id,
                "sub_appellation_id": candidate.sub_appellation_id,
                "reason": candidate.reason,
            }
        )
        for item in candidate.wines:
            wine_rows.append(
                {
                    "id": new_id(),
                    "suggested_appellation_id": suggestion_id,
                    "wine_id": item.wine_id,
                    "vintage": item.vintage,
                }
            )
    if appellation_rows:
        session.execute(suggested_appellation.insert(), appellation_rows)
    if wine_rows:
        session.execute(suggested_wine.insert(), wine_rows)
    return len(appellation_rows)


def activate_profile(
    user_id: str,
    profile: str,
    summary: str,
    candidates: Iterable[SuggestionCandidate | dict[str, Any]] | None = None,
) -> dict:
    profile_text = clean_text(profile, "Profile", PROFILE_MAX)
    summary_text = clean_text(summary, "Summary", SUMMARY_MAX)
    prepared = prepare_candidates(candidates) if candidates is not None else None
    with session_scope() as session:
        user_or_404(session, user_id)
        previous = session.execute(
            select(taste_profile.c.id)
            .where(taste_profile.c.user_id == user_id, taste_profile.c.in_use.is_(True))
            .with_for_update()
        ).scalars().all()
        row = {
            "id": new_id(),
            "user_id": user_id,
            "profile": profile_text,
            "summary": summary_text,
            "created_at": now_ms(),
            "in_use": True,
        }
        try:
            session.execute(
                taste_profile.update()
                .where(taste_profile.c.user_id == user_id, taste_profile.c.in_use.is_(True))
                .values(in_use=False)
            )
            session.execute(taste_profile.insert().values(**row))
            if prepared is not None:
                _replace_suggestions(session, row["id"], prepared)
            session.commit()
        except IntegrityError as exc:
            raise conflict(
                "active_profile_conflict",
                "Another profile was activated concurrently, retry",
                {"user_id": user_id},
            ) from exc
    increment("profiles.activated")
    log_event(
        "profiles.activated",
        profile_id=row["id"],
        user_id=user_id,
        archived=previous,
        suggestions=len(prepared) if prepared is not None else 0,
    )
    return _with_state(row)


def get_profile(taste_profile_id: str) -> dict:
    with session_scope() as session:
        return _with_state(fetch_one(session, taste_profile, taste_profile_id, "Taste profile"))


def get_active_profile(user_id: str) -> dict | None:
    with session_scope() as session:
        row = session.execute(
            select(taste_profile).where(taste_profile.c.user_id == user_id, taste_profile.c.in_use.is_(True))
        ).mappings().one_or_none()
        return _with_state(row) if row is not None else None


def list_profiles(user_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(taste_profile)
            .where(taste_profile.c.user_id == user_id)
            .order_by(taste_profile.c.created_at.desc(), taste_profile.c.in_use.desc())
        ).mappings()
        return [_with_state(r) for r in rows]


def delete_profile(taste_profile_id: str, user_id: str) -> None:
    with session_scope() as session:
        row = fetch_one(session, taste_profile, taste_profile_id, "Taste profile")
        require_owner(row["user_id"], user_id, "Only the owner may delete this profile")
        delete_by_id(session, taste_profile, taste_profile_id)
        session.commit()
    increment("profiles.deleted")
    log_event("profiles.deleted", profile_id=taste_profile_id, user_id=user_id, was_active=bool(row["in_use"]))


def generate_suggestions(
    taste_profile_id: str,
    candidates: Iterable[SuggestionCandidate | dict[str, Any]],
) -> list[dict]:
    prepared = prepare_candidates(candidates)
    with timed("profiles.generate_suggestions"):
        with session_scope() as session:
            row = session.execute(
                select(taste_profile).where(taste_profile.c.id == taste_profile_id).with_for_update()
            ).mappings().one_or_none()
            if row is None:
                raise not_found("Taste profile", {"id": taste_profile_id})
            if not row["in_use"]:
                raise invalid_state(
                    "profile_archived",
                    "Suggestions can only be generated for the active profile",
                    {"taste_profile_id": taste_profile_id},
                )
            count = _replace_suggestions(session, taste_profile_id, prepared)
            session.commit()
    increment("profiles.suggestions.generated")
    log_event(
        "profiles.suggestions.generated",
        profile_id=taste_profile_id,
        user_id=row["user_id"],
        appellations=count,
        wines=sum(len(c.wines) for c in prepared),
    )
    return get_suggestions(taste_profile_id)


def _load_suggestions(session, taste_profile_id: str) -> list[dict]:
    rows = session.execute(
        select(
            suggested_appellation.c.id,
            suggested_appellation.c.taste_profile_id,
            suggested_appellation.c.sub_appellation_id,
            suggested_appellation.c.reason,
            sub_appellation.c.name.label("sub_appellation"),
            appellation.c.name.label("appellation"),
            region.c.name.label("region"),
            country.c.name.label("country"),
        )
        .join(sub_appellation, sub_appellation.c.id == suggested_appellation.c.sub_appellation_id)
        .join(appellation, appellation.c.id == sub_appellation.c.appellation_id)
        .join(region, region.c.id == appellation.c.region_id)
        .join(country, country.c.id == region.c.country_id)
        .where(suggested_appellation.c.taste_profile_id == taste_profile_id)
        .order_by(country.c.name, region.c.name, appellation.c.name, sub_appellation.c.name)
    ).mappings()
    suggestions = [{**dict(r), "wines": []} for r in rows]
    if not suggestions:
        return suggestions
    by_id = {s["id"]: s for s in suggestions}
    wine_rows = session.execute(
        select(
            suggested_wine.c.id,
            suggested_wine.c.suggested_appellation_id,
            suggested_wine.c.wine_id,
            suggested_wine.c.vintage,
            wine.c.name.label("wine_name"),
        )
        .join(wine, wine.c.id == suggested_wine.c.wine_id)
        .where(suggested_wine.c.suggested_appellation_id.in_(list(by_id)))
        .order_by(wine.c.name, suggested_wine.c.vintage)
    ).mappings()
    for r in wine_rows:
        by_id[r["suggested_appellation_id"]]["wines"].append(dict(r))
    return suggestions


def get_suggestions(taste_profile_id: str) -> list[dict]:
    with session_scope() as session:
        fetch_one(session, taste_profile, taste_profile_id, "Taste profile")
        return _load_suggestions(session, taste_profile_id)


def get_active_suggestions(user_id: str) -> list[dict]:
    with session_scope() as session:
        profile_id = session.execute(
            select(taste_profile.c.id).where(taste_profile.c.user_id == user_id, taste_profile.c.in_use.is_(True))
        ).scalar_one_or_none()
        if profile_id is None:
            return []
        return _load_suggestions(session, profile_id)
