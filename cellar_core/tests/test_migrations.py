from __future__ import annotations

import pytest
from sqlalchemy import inspect

from cellar_core.db import metadata, new_id, now_ms, session_scope, taste_profile, upgrade_db, user_account
from cellar_core.errors import ConflictError


def test_migration_upgrade_fresh_db(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'fresh.db'}"

    upgrade_db(db_url=db_url)

    with session_scope(db_url) as session:
        insp = inspect(session.bind)
        tables = set(insp.get_table_names())
        profile_indexes = {ix["name"] for ix in insp.get_indexes("taste_profile")}

    assert set(metadata.tables) | {"alembic_version"} == tables
    assert "ux_taste_profile_user_in_use" in profile_indexes


def test_migrated_schema_enforces_single_active_profile(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'fresh.db'}"
    upgrade_db(db_url=db_url)

    user_id = new_id()
    with session_scope(db_url) as session:
        session.execute(user_account.insert().values(id=user_id, name="Ursula", created_at=now_ms()))
        session.execute(
            taste_profile.insert().values(
                id=new_id(), user_id=user_id, profile="a", summary="a", created_at=now_ms(), in_use=True
            )
        )
        session.execute(
            taste_profile.insert().values(
                id=new_id(), user_id=user_id, profile="b", summary="b", created_at=now_ms(), in_use=False
            )
        )
        session.commit()

    with pytest.raises(ConflictError):
        with session_scope(db_url) as session:
            session.execute(
                taste_profile.insert().values(
                    id=new_id(), user_id=user_id, profile="c", summary="c", created_at=now_ms(), in_use=True
                )
            )
            session.commit()
