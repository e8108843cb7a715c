from __future__ import annotations

from dataclasses import replace

import pytest

from cellar_core import catalog, db, taxonomy, users
from cellar_core.db import dispose_engines, init_db
from cellar_core.observability import reset


@pytest.fixture(autouse=True)
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cellar.db'}"
    monkeypatch.setattr(db, "settings", replace(db.settings, db_url=url))
    init_db()
    reset()
    yield url
    dispose_engines()


@pytest.fixture
def user():
    return users.create_user("Ursula", "ursula@example.com")


@pytest.fixture
def other_user():
    return users.create_user("Olga", "olga@example.com")


@pytest.fixture
def burgundy():
    france = taxonomy.upsert_country("France")
    region = taxonomy.upsert_region("Burgundy", france["id"])
    beaune = taxonomy.upsert_appellation("Côte de Beaune", region["id"])
    generic = taxonomy.upsert_sub_appellation(None, beaune["id"])
    meursault = catalog.get_or_create_wine("Meursault", generic["id"])
    vintage = catalog.get_or_create_vintage(meursault["id"], 2018)
    return {
        "country": france,
        "region": region,
        "appellation": beaune,
        "sub_appellation": generic,
        "wine": meursault,
        "vintage": vintage,
    }
