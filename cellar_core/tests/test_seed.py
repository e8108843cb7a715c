from __future__ import annotations

from cellar_core import cellar, profiles
from scripts.seed import main as seed_main


def test_seed_builds_burgundy_scenario_once():
    first = seed_main()
    second = seed_main()

    assert second == first
    suggestions = profiles.get_active_suggestions(first["user_id"])
    assert len(suggestions) == 1
    assert suggestions[0]["country"] == "France"
    assert [w["wine_name"] for w in suggestions[0]["wines"]] == ["Meursault"]
    assert len(cellar.list_bottles(first["user_id"])) == 1
