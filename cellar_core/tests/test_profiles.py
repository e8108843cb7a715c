from __future__ import annotations

import threading
from dataclasses import replace

import pytest
from sqlalchemy import func, select

from cellar_core import catalog, profiles, taxonomy
from cellar_core.db import new_id, now_ms, session_scope, suggested_appellation, suggested_wine, taste_profile
from cellar_core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from cellar_core.observability import snapshot
from cellar_core.schemas import SuggestedWineCandidate, SuggestionCandidate

GENERATE_P95_MS_GATE = 2000


def _active_count(user_id: str) -> int:
    with session_scope() as session:
        return session.execute(
            select(func.count())
            .select_from(taste_profile)
            .where(taste_profile.c.user_id == user_id, taste_profile.c.in_use.is_(True))
        ).scalar_one()


def _row_counts() -> tuple[int, int]:
    with session_scope() as session:
        appellations = session.execute(select(func.count()).select_from(suggested_appellation)).scalar_one()
        wines = session.execute(select(func.count()).select_from(suggested_wine)).scalar_one()
    return appellations, wines


def test_burgundy_scenario(burgundy, user):
    profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")
    assert profile["state"] == profiles.ACTIVE

    out = profiles.generate_suggestions(
        profile["id"],
        [{"sub_appellation_id": burgundy["sub_appellation"]["id"], "wines": [{"wine_id": burgundy["wine"]["id"]}]}],
    )

    assert len(out) == 1
    assert out[0]["taste_profile_id"] == profile["id"]
    assert out[0]["sub_appellation_id"] == burgundy["sub_appellation"]["id"]
    assert [w["wine_id"] for w in out[0]["wines"]] == [burgundy["wine"]["id"]]
    assert _row_counts() == (1, 1)


def test_activation_archives_previous_version(user):
    first = profiles.activate_profile(user["id"], "likes reds", "Reds")
    second = profiles.activate_profile(user["id"], "likes whites", "Whites")

    assert _active_count(user["id"]) == 1
    assert profiles.get_active_profile(user["id"])["id"] == second["id"]
    assert profiles.get_profile(first["id"])["state"] == profiles.ARCHIVED
    states = {p["id"]: p["state"] for p in profiles.list_profiles(user["id"])}
    assert states == {first["id"]: profiles.ARCHIVED, second["id"]: profiles.ACTIVE}


def test_activation_validates_input(user):
    with pytest.raises(ValidationError):
        profiles.activate_profile(user["id"], "x" * 4097, "ok")
    with pytest.raises(ValidationError):
        profiles.activate_profile(user["id"], "ok", " ")
    with pytest.raises(NotFoundError):
        profiles.activate_profile("missing", "ok", "ok")
    assert profiles.list_profiles(user["id"]) == []


def test_storage_rejects_second_active_profile(user):
    profiles.activate_profile(user["id"], "likes reds", "Reds")
    with pytest.raises(ConflictError):
        with session_scope() as session:
            session.execute(
                taste_profile.insert().values(
                    id=new_id(),
                    user_id=user["id"],
                    profile="sneaky",
                    summary="sneaky",
                    created_at=now_ms(),
                    in_use=True,
                )
            )
            session.commit()
    assert _active_count(user["id"]) == 1


def test_concurrent_activations_leave_one_winner(user):
    errors: list[Exception] = []

    def activate(n: int) -> None:
        for _ in range(50):
            try:
                profiles.activate_profile(user["id"], f"profile {n}", f"summary {n}")
                return
            except (ConflictError, TransientError):
                continue
            except Exception as exc:
                errors.append(exc)
                return

    threads = [threading.Thread(target=activate, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert _active_count(user["id"]) == 1
    assert len(profiles.list_profiles(user["id"])) == 8


def test_generate_replaces_previous_set(burgundy, user):
    sub_id = burgundy["sub_appellation"]["id"]
    other_sub = taxonomy.upsert_sub_appellation("Puligny-Montrachet", burgundy["appellation"]["id"])
    puligny = catalog.get_or_create_wine("Les Pucelles", other_sub["id"])
    profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")

    profiles.generate_suggestions(
        profile["id"],
        [
            {"sub_appellation_id": sub_id, "wines": [{"wine_id": burgundy["wine"]["id"]}]},
            {"sub_appellation_id": other_sub["id"], "wines": [{"wine_id": puligny["id"]}]},
        ],
    )
    assert _row_counts() == (2, 2)

    second = profiles.generate_suggestions(
        profile["id"],
        [{"sub_appellation_id": other_sub["id"], "reason": "Mineral", "wines": []}],
    )
    assert [s["sub_appellation_id"] for s in second] == [other_sub["id"]]
    assert profiles.get_suggestions(profile["id"]) == second
    assert _row_counts() == (1, 0)


def test_generate_rejects_duplicates_and_unknown_ids(burgundy, user):
    sub_id = burgundy["sub_appellation"]["id"]
    wine_id = burgundy["wine"]["id"]
    profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")
    profiles.generate_suggestions(profile["id"], [{"sub_appellation_id": sub_id}])

    with pytest.raises(ValidationError):
        profiles.generate_suggestions(profile["id"], [{"sub_appellation_id": sub_id}, {"sub_appellation_id": sub_id}])
    with pytest.raises(ValidationError):
        profiles.generate_suggestions(
            profile["id"],
            [{"sub_appellation_id": sub_id, "wines": [{"wine_id": wine_id}, {"wine_id": wine_id, "vintage": "2018"}]}],
        )
    with pytest.raises(ValidationError):
        profiles.generate_suggestions(profile["id"], [{"wines": []}])
    with pytest.raises(NotFoundError):
        profiles.generate_suggestions(
            profile["id"], [{"sub_appellation_id": sub_id, "wines": [{"wine_id": "missing"}]}]
        )

    # Failed calls leave the previous snapshot in place.
    assert _row_counts() == (1, 0)


def test_generate_against_archived_profile_fails(burgundy, user):
    old = profiles.activate_profile(user["id"], "likes reds", "Reds")
    profiles.activate_profile(user["id"], "likes whites", "Whites")

    with pytest.raises(InvalidStateError) as exc:
        profiles.generate_suggestions(old["id"], [{"sub_appellation_id": burgundy["sub_appellation"]["id"]}])
    assert exc.value.code == "profile_archived"
    with pytest.raises(NotFoundError):
        profiles.generate_suggestions("missing", [])


def test_candidate_limit(burgundy, user, monkeypatch):
    monkeypatch.setattr(profiles, "settings", replace(profiles.settings, max_suggestion_candidates=1))
    profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")
    with pytest.raises(ValidationError) as exc:
        profiles.generate_suggestions(profile["id"], [{"sub_appellation_id": "a"}, {"sub_appellation_id": "b"}])
    assert exc.value.code == "too_many_candidates"


def test_reason_and_vintage_are_normalized(burgundy, user):
    profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")
    out = profiles.generate_suggestions(
        profile["id"],
        [
            {
                "sub_appellation_id": burgundy["sub_appellation"]["id"],
                "reason": "  Rich\r\nand   buttery \n",
                "wines": [{"wine_id": burgundy["wine"]["id"], "vintage": " 2018 "}],
            }
        ],
    )
    assert out[0]["reason"] == "Rich and buttery"
    assert out[0]["wines"][0]["vintage"] == "2018"

    with pytest.raises(ValidationError):
        profiles.generate_suggestions(
            profile["id"], [{"sub_appellation_id": burgundy["sub_appellation"]["id"], "reason": "x" * 513}]
        )
    with pytest.raises(ValidationError):
        profiles.generate_suggestions(
            profile["id"],
            [
                {
                    "sub_appellation_id": burgundy["sub_appellation"]["id"],
                    "wines": [{"wine_id": burgundy["wine"]["id"], "vintage": "y" * 33}],
                }
            ],
        )


def test_activation_can_carry_initial_suggestions(burgundy, user):
    profile = profiles.activate_profile(
        user["id"],
        "loves buttery whites",
        "Burgundy whites",
        candidates=[{"sub_appellation_id": burgundy["sub_appellation"]["id"]}],
    )
    assert [s["taste_profile_id"] for s in profiles.get_active_suggestions(user["id"])] == [profile["id"]]

    with pytest.raises(NotFoundError):
        profiles.activate_profile(user["id"], "next", "next", candidates=[{"sub_appellation_id": "missing"}])
    assert profiles.get_active_profile(user["id"])["id"] == profile["id"]


def test_active_suggestions_are_ordered_by_place(burgundy, user):
    italy = taxonomy.upsert_country("Italy")
    piedmont = taxonomy.upsert_region("Piedmont", italy["id"])
    barolo = taxonomy.upsert_appellation("Barolo", piedmont["id"])
    cannubi = taxonomy.upsert_sub_appellation("Cannubi", barolo["id"])
    profile = profiles.activate_profile(user["id"], "everything", "Everything")
    profiles.generate_suggestions(
        profile["id"],
        [{"sub_appellation_id": cannubi["id"]}, {"sub_appellation_id": burgundy["sub_appellation"]["id"]}],
    )

    names = [s["country"] for s in profiles.get_active_suggestions(user["id"])]
    assert names == ["France", "Italy"]
    assert profiles.get_active_suggestions("nobody") == []


def test_deleting_profile_cascades_to_suggestions(burgundy, user, other_user):
    profile = profiles.activate_profile(
        user["id"],
        "loves buttery whites",
        "Burgundy whites",
        candidates=[
            {"sub_appellation_id": burgundy["sub_appellation"]["id"], "wines": [{"wine_id": burgundy["wine"]["id"]}]}
        ],
    )
    with pytest.raises(AuthorizationError):
        profiles.delete_profile(profile["id"], other_user["id"])

    profiles.delete_profile(profile["id"], user["id"])
    assert _row_counts() == (0, 0)
    assert profiles.get_active_profile(user["id"]) is None


def test_generate_suggestions_latency_gate(burgundy, user):
    profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")
    candidates = [
        {"sub_appellation_id": burgundy["sub_appellation"]["id"], "wines": [{"wine_id": burgundy["wine"]["id"]}]}
    ]
    for _ in range(20):
        profiles.generate_suggestions(profile["id"], candidates)

    timing = snapshot()["timings_ms"]["profiles.generate_suggestions"]
    assert timing["count"] == 20
    assert timing["p95"] < GENERATE_P95_MS_GATE
    assert snapshot()["counters"]["profiles.suggestions.generated"] == 20


def test_candidate_models_passed_in_are_left_untouched(burgundy, user):
    profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")
    candidate = SuggestionCandidate(
        sub_appellation_id=burgundy["sub_appellation"]["id"],
        reason="Rich\n\nand  buttery",
        wines=[SuggestedWineCandidate(wine_id=burgundy["wine"]["id"], vintage="")],
    )

    out = profiles.generate_suggestions(profile["id"], [candidate])

    assert out[0]["reason"] == "Rich and buttery"
    assert out[0]["wines"][0]["vintage"] is None
    assert candidate.reason == "Rich\n\nand  buttery"
    assert candidate.wines[0].vintage == ""
