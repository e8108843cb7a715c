from __future__ import annotations

import argparse
import threading
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cellar_core.config import settings
from cellar_core.errors import CellarError, not_found, translate_db_error
from cellar_core.observability import record_error

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

metadata = MetaData()

user_account = Table(
    "user_account",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(256), nullable=False),
    Column("email", String(256), unique=True),
    Column("created_at", BigInteger, nullable=False),
    Column("profile_photo", LargeBinary),
    Column("profile_photo_content_type", String(128)),
)

# Taxonomy: every level restricts deletion of its parent.
country = Table(
    "country",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(128), nullable=False, unique=True),
)

region = Table(
    "region",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(128), nullable=False),
    Column("country_id", String(36), ForeignKey("country.id", ondelete="RESTRICT"), nullable=False, index=True),
    UniqueConstraint("name", "country_id", name="uq_region_name_country"),
)

appellation = Table(
    "appellation",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(256), nullable=False),
    Column("region_id", String(36), ForeignKey("region.id", ondelete="RESTRICT"), nullable=False, index=True),
    UniqueConstraint("name", "region_id", name="uq_appellation_name_region"),
)

sub_appellation = Table(
    "sub_appellation",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(256)),
    Column(
        "appellation_id",
        String(36),
        ForeignKey("appellation.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
)

wine = Table(
    "wine",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(256), nullable=False),
    Column("grape_variety", String(256)),
    Column("color", String(16)),
    Column(
        "sub_appellation_id",
        String(36),
        ForeignKey("sub_appellation.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    UniqueConstraint("name", "sub_appellation_id", name="uq_wine_name_sub_appellation"),
)

wine_vintage = Table(
    "wine_vintage",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("wine_id", String(36), ForeignKey("wine.id", ondelete="CASCADE"), nullable=False),
    Column("vintage", Integer, nullable=False),
    UniqueConstraint("wine_id", "vintage", name="uq_wine_vintage_wine_year"),
)

wine_vintage_evolution_score = Table(
    "wine_vintage_evolution_score",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), nullable=False),
    Column(
        "wine_vintage_id",
        String(36),
        ForeignKey("wine_vintage.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("year", Integer, nullable=False),
    Column("score", Numeric(18, 2), nullable=False),
    UniqueConstraint("user_id", "wine_vintage_id", "year", name="uq_evolution_score_user_vintage_year"),
)

wine_vintage_drinking_window = Table(
    "wine_vintage_drinking_window",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), nullable=False),
    Column(
        "wine_vintage_id",
        String(36),
        ForeignKey("wine_vintage.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("start_at", BigInteger, nullable=False),
    Column("end_at", BigInteger, nullable=False),
    UniqueConstraint("user_id", "wine_vintage_id", name="uq_drinking_window_user_vintage"),
)

bottle_location = Table(
    "bottle_location",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(128), nullable=False),
    Column("capacity", Integer),
    UniqueConstraint("user_id", "name", name="uq_bottle_location_user_name"),
)

bottle = Table(
    "bottle",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "wine_vintage_id",
        String(36),
        ForeignKey("wine_vintage.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="SET NULL"), index=True),
    Column(
        "bottle_location_id",
        String(36),
        ForeignKey("bottle_location.id", ondelete="SET NULL"),
        index=True,
    ),
    Column("price", Numeric(18, 2)),
    Column("is_drunk", Boolean, nullable=False, default=False),
    Column("drunk_at", BigInteger),
    Column("created_at", BigInteger, nullable=False),
)

tasting_note = Table(
    "tasting_note",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("bottle_id", String(36), ForeignKey("bottle.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("note", String(2048), nullable=False),
    Column("score", Numeric(18, 2)),
    Column("created_at", BigInteger, nullable=False),
)

sisterhood = Table(
    "sisterhood",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(256), nullable=False, unique=True),
    Column("description", String(2048)),
    Column("profile_photo", LargeBinary),
    Column("profile_photo_content_type", String(128)),
    Column("created_at", BigInteger, nullable=False),
)

user_sisterhood = Table(
    "user_sisterhood",
    metadata,
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), primary_key=True),
    Column("sisterhood_id", String(36), ForeignKey("sisterhood.id", ondelete="CASCADE"), primary_key=True),
    Column("is_admin", Boolean, nullable=False, default=False),
    Column("joined_at", BigInteger, nullable=False),
)

sisterhood_invitation = Table(
    "sisterhood_invitation",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("sisterhood_id", String(36), ForeignKey("sisterhood.id", ondelete="CASCADE"), nullable=False),
    Column("invitee_email", String(256), nullable=False),
    Column("invitee_user_id", String(36), ForeignKey("user_account.id", ondelete="SET NULL"), index=True),
    Column("status", String(16), nullable=False),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
    UniqueConstraint("sisterhood_id", "invitee_email", name="uq_invitation_sisterhood_email"),
)

sip_session = Table(
    "sip_session",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("sisterhood_id", String(36), ForeignKey("sisterhood.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(256), nullable=False),
    Column("description", String(2048)),
    Column("scheduled_at", BigInteger),
    Column("date", BigInteger),
    Column("location", String(256), nullable=False, default=""),
    Column("food_suggestion", String(4096)),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

bottle_sip_session = Table(
    "bottle_sip_session",
    metadata,
    Column("bottle_id", String(36), ForeignKey("bottle.id", ondelete="CASCADE"), primary_key=True),
    Column("sip_session_id", String(36), ForeignKey("sip_session.id", ondelete="CASCADE"), primary_key=True),
    Column("is_revealed", Boolean, nullable=False, default=False),
)

bottle_share = Table(
    "bottle_share",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("bottle_id", String(36), ForeignKey("bottle.id", ondelete="CASCADE"), nullable=False),
    Column(
        "shared_by_user_id",
        String(36),
        ForeignKey("user_account.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    Column(
        "shared_with_user_id",
        String(36),
        ForeignKey("user_account.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    Column("shared_at", BigInteger, nullable=False),
    UniqueConstraint("bottle_id", "shared_with_user_id", name="uq_bottle_share_bottle_recipient"),
)

taste_profile = Table(
    "taste_profile",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("profile", String(4096), nullable=False),
    Column("summary", String(512), nullable=False),
    Column("created_at", BigInteger, nullable=False),
    Column("in_use", Boolean, nullable=False, default=False),
)

suggested_appellation = Table(
    "suggested_appellation",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "taste_profile_id",
        String(36),
        ForeignKey("taste_profile.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "sub_appellation_id",
        String(36),
        ForeignKey("sub_appellation.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("reason", String(512)),
    UniqueConstraint("taste_profile_id", "sub_appellation_id", name="uq_suggested_appellation_profile_sub"),
)

suggested_wine = Table(
    "suggested_wine",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "suggested_appellation_id",
        String(36),
        ForeignKey("suggested_appellation.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("wine_id", String(36), ForeignKey("wine.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("vintage", String(32)),
    UniqueConstraint("suggested_appellation_id", "wine_id", name="uq_suggested_wine_appellation_wine"),
)

wishlist = Table(
    "wishlist",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(256), nullable=False),
    UniqueConstraint("user_id", "name", name="uq_wishlist_user_name"),
)

wine_vintage_wish = Table(
    "wine_vintage_wish",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("wishlist_id", String(36), ForeignKey("wishlist.id", ondelete="CASCADE"), nullable=False),
    Column(
        "wine_vintage_id",
        String(36),
        ForeignKey("wine_vintage.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    UniqueConstraint("wishlist_id", "wine_vintage_id", name="uq_wish_wishlist_vintage"),
)

notification_dismissal = Table(
    "notification_dismissal",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_account.id", ondelete="CASCADE"), nullable=False),
    Column("category", String(128), nullable=False),
    Column("stamp", String(512), nullable=False),
    Column("dismissed_at", BigInteger, nullable=False),
    UniqueConstraint("user_id", "category", "stamp", name="uq_dismissal_user_category_stamp"),
)

Index(
    "ux_sub_appellation_name_appellation",
    sub_appellation.c.name,
    sub_appellation.c.appellation_id,
    unique=True,
    sqlite_where=text("name IS NOT NULL"),
    postgresql_where=text("name IS NOT NULL"),
)
Index(
    "ux_taste_profile_user_in_use",
    taste_profile.c.user_id,
    unique=True,
    sqlite_where=text("in_use = 1"),
    postgresql_where=text("in_use = true"),
)
Index("ix_user_sisterhood_sisterhood_user", user_sisterhood.c.sisterhood_id, user_sisterhood.c.user_id, unique=True)
Index("ix_sip_session_sisterhood_scheduled", sip_session.c.sisterhood_id, sip_session.c.scheduled_at)
Index("ix_bottle_sip_session_session", bottle_sip_session.c.sip_session_id)

_engines: dict[str, Engine] = {}
_engines_lock = threading.Lock()


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_url: str | None = None) -> Engine:
    url = db_url or settings.db_url
    with _engines_lock:
        engine = _engines.get(url)
        if engine is None:
            if url.startswith("sqlite"):
                engine = create_engine(
                    url,
                    future=True,
                    connect_args={"timeout": settings.db_timeout_s, "check_same_thread": False},
                )
                event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            else:
                engine = create_engine(url, future=True, pool_pre_ping=True)
            _engines[url] = engine
        return engine


def dispose_engines() -> None:
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()


@contextmanager
def session_scope(db_url: str | None = None):
    engine = get_engine(db_url)
    with Session(engine) as session:
        try:
            yield session
        except CellarError as exc:
            session.rollback()
            record_error(exc.code)
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            translated = translate_db_error(exc)
            if translated is None:
                raise
            record_error(translated.code, error=type(exc).__name__)
            raise translated from exc


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


def init_db(db_url: str | None = None) -> None:
    url = db_url or settings.db_url
    _ensure_sqlite_dir(url)
    metadata.create_all(get_engine(url))


def upgrade_db(db_url: str | None = None, revision: str = "head") -> None:
    from alembic import command
    from alembic.config import Config

    url = db_url or settings.db_url
    _ensure_sqlite_dir(url)
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    command.upgrade(cfg, revision)


def now_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def fetch_one(session: Session, table: Table, row_id: str, what: str | None = None) -> dict:
    row = session.execute(select(table).where(table.c.id == row_id)).mappings().one_or_none()
    if row is None:
        raise not_found(what or table.name.replace("_", " ").capitalize(), {"id": row_id})
    return dict(row)


def find_by(session: Session, table: Table, match: dict) -> dict | None:
    conditions = [table.c[key].is_(None) if value is None else table.c[key] == value for key, value in match.items()]
    # Rows without a unique constraint (null-named sub-appellations) may repeat; the lowest id wins.
    row = session.execute(select(table).where(*conditions).order_by(table.c.id).limit(1)).mappings().first()
    return dict(row) if row is not None else None


def get_or_insert(session: Session, table: Table, match: dict, extra: dict | None = None) -> tuple[dict, bool]:
    existing = find_by(session, table, match)
    if existing is not None:
        return existing, False
    row = {"id": new_id(), **match, **(extra or {})}
    try:
        session.execute(table.insert().values(**row))
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = find_by(session, table, match)
        if existing is None:
            raise
        return existing, False
    return row, True


def _cli() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--db-url", default=None)
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init")
    sub.add_parser("upgrade")
    args = parser.parse_args()
    if args.command == "init":
        init_db(args.db_url)
    elif args.command == "upgrade":
        upgrade_db(args.db_url)


if __name__ == "__main__":
    _cli()
