from __future__ import annotations

import pytest

from cellar_core import catalog, db, taxonomy
from cellar_core.db import new_id, session_scope, sub_appellation
from cellar_core.errors import ConflictError, NotFoundError, ValidationError


def test_upsert_returns_existing_rows():
    france = taxonomy.upsert_country("France")
    assert taxonomy.upsert_country("  France ")["id"] == france["id"]

    region = taxonomy.upsert_region("Burgundy", france["id"])
    assert taxonomy.upsert_region("Burgundy", france["id"])["id"] == region["id"]

    italy = taxonomy.upsert_country("Italy")
    assert taxonomy.upsert_region("Burgundy", italy["id"])["id"] != region["id"]
    assert [c["name"] for c in taxonomy.list_countries()] == ["France", "Italy"]


def test_blank_and_overlong_names_are_rejected():
    with pytest.raises(ValidationError):
        taxonomy.upsert_country("   ")
    with pytest.raises(ValidationError):
        taxonomy.upsert_country("x" * 129)


def test_unknown_parent_is_not_found():
    with pytest.raises(NotFoundError):
        taxonomy.upsert_region("Burgundy", new_id())


def test_null_named_sub_appellation_is_shared(burgundy):
    appellation_id = burgundy["appellation"]["id"]
    again = taxonomy.upsert_sub_appellation(None, appellation_id)
    assert again["id"] == burgundy["sub_appellation"]["id"]
    assert taxonomy.upsert_sub_appellation("", appellation_id)["id"] == again["id"]

    named = taxonomy.upsert_sub_appellation("Meursault-Charmes", appellation_id)
    assert named["id"] != again["id"]
    assert len(taxonomy.list_sub_appellations(appellation_id)) == 2


def test_partial_unique_index_only_applies_to_named_rows(burgundy):
    appellation_id = burgundy["appellation"]["id"]
    taxonomy.upsert_sub_appellation("Perrières", appellation_id)

    with session_scope() as session:
        session.execute(sub_appellation.insert().values(id=new_id(), name=None, appellation_id=appellation_id))
        session.commit()

    with pytest.raises(ConflictError):
        with session_scope() as session:
            session.execute(
                sub_appellation.insert().values(id=new_id(), name="Perrières", appellation_id=appellation_id)
            )
            session.commit()


def test_deleting_referenced_nodes_is_restricted(burgundy):
    with pytest.raises(ConflictError) as exc:
        taxonomy.delete_sub_appellation(burgundy["sub_appellation"]["id"])
    assert exc.value.code == "delete_restricted"
    assert exc.value.details["referenced_by"] == "wine"

    with pytest.raises(ConflictError):
        taxonomy.delete_country(burgundy["country"]["id"])

    catalog.delete_wine(burgundy["wine"]["id"])
    taxonomy.delete_sub_appellation(burgundy["sub_appellation"]["id"])
    taxonomy.delete_appellation(burgundy["appellation"]["id"])
    taxonomy.delete_region(burgundy["region"]["id"])
    taxonomy.delete_country(burgundy["country"]["id"])
    assert taxonomy.list_countries() == []


def test_describe_path(burgundy):
    path = taxonomy.describe_path(burgundy["sub_appellation"]["id"])
    assert path["country"] == "France"
    assert path["region"] == "Burgundy"
    assert path["appellation"] == "Côte de Beaune"
    assert path["sub_appellation"] is None

    with pytest.raises(NotFoundError):
        taxonomy.describe_path(new_id())


def test_upsert_tolerates_repeated_null_named_rows(burgundy):
    appellation_id = burgundy["appellation"]["id"]
    with session_scope() as session:
        session.execute(sub_appellation.insert().values(id=new_id(), name=None, appellation_id=appellation_id))
        session.commit()

    first = taxonomy.upsert_sub_appellation(None, appellation_id)
    assert taxonomy.upsert_sub_appellation(None, appellation_id)["id"] == first["id"]
    assert first["name"] is None
    assert len(taxonomy.list_sub_appellations(appellation_id)) == 2


def test_upsert_returns_row_written_by_concurrent_writer(monkeypatch):
    france = taxonomy.upsert_country("France")
    real_find_by = db.find_by
    calls = []

    def stale_first_lookup(session, table, match):
        calls.append(match)
        if len(calls) == 1:
            return None
        return real_find_by(session, table, match)

    monkeypatch.setattr(db, "find_by", stale_first_lookup)
    assert taxonomy.upsert_country("France")["id"] == france["id"]
    assert len(calls) == 2
    assert [c["name"] for c in taxonomy.list_countries()] == ["France"]
