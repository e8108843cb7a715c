from __future__ import annotations

from sqlalchemy import select

from cellar_core import catalog, cellar, notifications, profiles, social, tasting, users, wishlists
from cellar_core.db import (
    bottle,
    bottle_location,
    country,
    metadata,
    session_scope,
    sisterhood_invitation,
    taste_profile,
)
from cellar_core.integrity import CASCADE, RESTRICT, SET_NULL, build_delete_policy, dependents_of


def _actions(table) -> dict[tuple[str, str], str]:
    return {(d.table.name, d.column.name): d.action for d in dependents_of(table)}


def test_policy_graph_matches_foreign_keys():
    assert build_delete_policy(metadata)["country"][0].action == RESTRICT
    assert _actions(country) == {("region", "country_id"): RESTRICT}

    from cellar_core.db import user_account, wine_vintage

    user_actions = _actions(user_account)
    assert user_actions[("bottle", "user_id")] == SET_NULL
    assert user_actions[("bottle_share", "shared_by_user_id")] == RESTRICT
    assert user_actions[("bottle_share", "shared_with_user_id")] == RESTRICT
    assert user_actions[("taste_profile", "user_id")] == CASCADE
    assert user_actions[("bottle_location", "user_id")] == CASCADE
    assert _actions(bottle_location) == {("bottle", "bottle_location_id"): SET_NULL}
    assert user_actions[("sisterhood_invitation", "invitee_user_id")] == SET_NULL

    vintage_actions = _actions(wine_vintage)
    assert vintage_actions[("bottle", "wine_vintage_id")] == CASCADE
    assert vintage_actions[("wine_vintage_evolution_score", "wine_vintage_id")] == CASCADE


def test_deleting_user_applies_every_action(burgundy, user, other_user):
    location = cellar.create_location(user["id"], "Cellar A")
    item = cellar.add_bottle(burgundy["vintage"]["id"], user["id"], location["id"])
    tasting.add_tasting_note(item["id"], user["id"], "Lovely")
    catalog.record_evolution_score(user["id"], burgundy["vintage"]["id"], 2025, 90)
    profiles.activate_profile(
        user["id"], "whites", "Whites", candidates=[{"sub_appellation_id": burgundy["sub_appellation"]["id"]}]
    )
    wishlists.create_wishlist(user["id"], "Birthday")
    notifications.dismiss(user["id"], "invitations", "x")
    group = social.create_sisterhood("Les Soeurs", other_user["id"])
    invitation = social.invite(group["id"], "ursula@example.com", other_user["id"])

    users.delete_user(user["id"])

    kept = cellar.get_bottle(item["id"])
    assert kept["user_id"] is None
    # The bottle's location went with its owner.
    assert kept["bottle_location_id"] is None
    assert tasting.list_tasting_notes(item["id"]) == []
    assert catalog.list_evolution_scores(user["id"], burgundy["vintage"]["id"]) == []
    assert wishlists.list_wishlists(user["id"]) == []
    with session_scope() as session:
        assert session.execute(select(taste_profile.c.id)).all() == []
        assert session.execute(select(bottle_location.c.id)).all() == []
        invitee = session.execute(
            select(sisterhood_invitation.c.invitee_user_id).where(sisterhood_invitation.c.id == invitation["id"])
        ).scalar_one()
        assert session.execute(select(bottle.c.id)).scalars().all() == [item["id"]]
    assert invitee is None
