"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_account",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("email", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("profile_photo", sa.LargeBinary(), nullable=True),
        sa.Column("profile_photo_content_type", sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "country",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "region",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("country_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["country_id"], ["country.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "country_id", name="uq_region_name_country"),
    )
    op.create_index("ix_region_country_id", "region", ["country_id"], unique=False)

    op.create_table(
        "appellation",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("region_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["region_id"], ["region.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "region_id", name="uq_appellation_name_region"),
    )
    op.create_index("ix_appellation_region_id", "appellation", ["region_id"], unique=False)

    op.create_table(
        "sub_appellation",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=True),
        sa.Column("appellation_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["appellation_id"], ["appellation.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sub_appellation_appellation_id", "sub_appellation", ["appellation_id"], unique=False)
    op.create_index(
        "ux_sub_appellation_name_appellation",
        "sub_appellation",
        ["name", "appellation_id"],
        unique=True,
        sqlite_where=sa.text("name IS NOT NULL"),
        postgresql_where=sa.text("name IS NOT NULL"),
    )

    op.create_table(
        "wine",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("grape_variety", sa.String(length=256), nullable=True),
        sa.Column("color", sa.String(length=16), nullable=True),
        sa.Column("sub_appellation_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["sub_appellation_id"], ["sub_appellation.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "sub_appellation_id", name="uq_wine_name_sub_appellation"),
    )
    op.create_index("ix_wine_sub_appellation_id", "wine", ["sub_appellation_id"], unique=False)

    op.create_table(
        "wine_vintage",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("wine_id", sa.String(length=36), nullable=False),
        sa.Column("vintage", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["wine_id"], ["wine.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("wine_id", "vintage", name="uq_wine_vintage_wine_year"),
    )

    op.create_table(
        "wine_vintage_evolution_score",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("wine_vintage_id", sa.String(length=36), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("score", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["wine_vintage_id"], ["wine_vintage.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "wine_vintage_id", "year", name="uq_evolution_score_user_vintage_year"),
    )
    op.create_index(
        "ix_wine_vintage_evolution_score_wine_vintage_id",
        "wine_vintage_evolution_score",
        ["wine_vintage_id"],
        unique=False,
    )

    op.create_table(
        "wine_vintage_drinking_window",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("wine_vintage_id", sa.String(length=36), nullable=False),
        sa.Column("start_at", sa.BigInteger(), nullable=False),
        sa.Column("end_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["wine_vintage_id"], ["wine_vintage.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "wine_vintage_id", name="uq_drinking_window_user_vintage"),
    )
    op.create_index(
        "ix_wine_vintage_drinking_window_wine_vintage_id",
        "wine_vintage_drinking_window",
        ["wine_vintage_id"],
        unique=False,
    )

    op.create_table(
        "bottle_location",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "name", name="uq_bottle_location_user_name"),
    )

    op.create_table(
        "bottle",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("wine_vintage_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("bottle_location_id", sa.String(length=36), nullable=True),
        sa.Column("price", sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column("is_drunk", sa.Boolean(), nullable=False),
        sa.Column("drunk_at", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["wine_vintage_id"], ["wine_vintage.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["bottle_location_id"], ["bottle_location.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bottle_wine_vintage_id", "bottle", ["wine_vintage_id"], unique=False)
    op.create_index("ix_bottle_user_id", "bottle", ["user_id"], unique=False)
    op.create_index("ix_bottle_bottle_location_id", "bottle", ["bottle_location_id"], unique=False)

    op.create_table(
        "tasting_note",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("bottle_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("note", sa.String(length=2048), nullable=False),
        sa.Column("score", sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["bottle_id"], ["bottle.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasting_note_bottle_id", "tasting_note", ["bottle_id"], unique=False)
    op.create_index("ix_tasting_note_user_id", "tasting_note", ["user_id"], unique=False)

    op.create_table(
        "sisterhood",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.String(length=2048), nullable=True),
        sa.Column("profile_photo", sa.LargeBinary(), nullable=True),
        sa.Column("profile_photo_content_type", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "user_sisterhood",
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("sisterhood_id", sa.String(length=36), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("joined_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sisterhood_id"], ["sisterhood.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "sisterhood_id"),
    )
    op.create_index(
        "ix_user_sisterhood_sisterhood_user",
        "user_sisterhood",
        ["sisterhood_id", "user_id"],
        unique=True,
    )

    op.create_table(
        "sisterhood_invitation",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("sisterhood_id", sa.String(length=36), nullable=False),
        sa.Column("invitee_email", sa.String(length=256), nullable=False),
        sa.Column("invitee_user_id", sa.String(length=36), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["sisterhood_id"], ["sisterhood.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invitee_user_id"], ["user_account.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sisterhood_id", "invitee_email", name="uq_invitation_sisterhood_email"),
    )
    op.create_index(
        "ix_sisterhood_invitation_invitee_user_id",
        "sisterhood_invitation",
        ["invitee_user_id"],
        unique=False,
    )

    op.create_table(
        "sip_session",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("sisterhood_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.String(length=2048), nullable=True),
        sa.Column("scheduled_at", sa.BigInteger(), nullable=True),
        sa.Column("date", sa.BigInteger(), nullable=True),
        sa.Column("location", sa.String(length=256), nullable=False),
        sa.Column("food_suggestion", sa.String(length=4096), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["sisterhood_id"], ["sisterhood.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sip_session_sisterhood_scheduled",
        "sip_session",
        ["sisterhood_id", "scheduled_at"],
        unique=False,
    )

    op.create_table(
        "bottle_sip_session",
        sa.Column("bottle_id", sa.String(length=36), nullable=False),
        sa.Column("sip_session_id", sa.String(length=36), nullable=False),
        sa.Column("is_revealed", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["bottle_id"], ["bottle.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sip_session_id"], ["sip_session.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("bottle_id", "sip_session_id"),
    )
    op.create_index("ix_bottle_sip_session_session", "bottle_sip_session", ["sip_session_id"], unique=False)

    op.create_table(
        "bottle_share",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("bottle_id", sa.String(length=36), nullable=False),
        sa.Column("shared_by_user_id", sa.String(length=36), nullable=False),
        sa.Column("shared_with_user_id", sa.String(length=36), nullable=False),
        sa.Column("shared_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["bottle_id"], ["bottle.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shared_by_user_id"], ["user_account.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["shared_with_user_id"], ["user_account.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bottle_id", "shared_with_user_id", name="uq_bottle_share_bottle_recipient"),
    )
    op.create_index("ix_bottle_share_shared_by_user_id", "bottle_share", ["shared_by_user_id"], unique=False)
    op.create_index("ix_bottle_share_shared_with_user_id", "bottle_share", ["shared_with_user_id"], unique=False)

    op.create_table(
        "taste_profile",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("profile", sa.String(length=4096), nullable=False),
        sa.Column("summary", sa.String(length=512), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("in_use", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_taste_profile_user_id", "taste_profile", ["user_id"], unique=False)
    op.create_index(
        "ux_taste_profile_user_in_use",
        "taste_profile",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("in_use = 1"),
        postgresql_where=sa.text("in_use = true"),
    )

    op.create_table(
        "suggested_appellation",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("taste_profile_id", sa.String(length=36), nullable=False),
        sa.Column("sub_appellation_id", sa.String(length=36), nullable=False),
        sa.Column("reason", sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(["taste_profile_id"], ["taste_profile.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sub_appellation_id"], ["sub_appellation.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "taste_profile_id", "sub_appellation_id", name="uq_suggested_appellation_profile_sub"
        ),
    )
    op.create_index(
        "ix_suggested_appellation_sub_appellation_id",
        "suggested_appellation",
        ["sub_appellation_id"],
        unique=False,
    )

    op.create_table(
        "suggested_wine",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("suggested_appellation_id", sa.String(length=36), nullable=False),
        sa.Column("wine_id", sa.String(length=36), nullable=False),
        sa.Column("vintage", sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(["suggested_appellation_id"], ["suggested_appellation.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["wine_id"], ["wine.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("suggested_appellation_id", "wine_id", name="uq_suggested_wine_appellation_wine"),
    )
    op.create_index("ix_suggested_wine_wine_id", "suggested_wine", ["wine_id"], unique=False)

    op.create_table(
        "wishlist",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "name", name="uq_wishlist_user_name"),
    )

    op.create_table(
        "wine_vintage_wish",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("wishlist_id", sa.String(length=36), nullable=False),
        sa.Column("wine_vintage_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["wishlist_id"], ["wishlist.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["wine_vintage_id"], ["wine_vintage.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("wishlist_id", "wine_vintage_id", name="uq_wish_wishlist_vintage"),
    )
    op.create_index("ix_wine_vintage_wish_wine_vintage_id", "wine_vintage_wish", ["wine_vintage_id"], unique=False)

    op.create_table(
        "notification_dismissal",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("category", sa.String(length=128), nullable=False),
        sa.Column("stamp", sa.String(length=512), nullable=False),
        sa.Column("dismissed_at", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "category", "stamp", name="uq_dismissal_user_category_stamp"),
    )


def downgrade() -> None:
    op.drop_table("notification_dismissal")

    op.drop_index("ix_wine_vintage_wish_wine_vintage_id", table_name="wine_vintage_wish")
    op.drop_table("wine_vintage_wish")
    op.drop_table("wishlist")

    op.drop_index("ix_suggested_wine_wine_id", table_name="suggested_wine")
    op.drop_table("suggested_wine")
    op.drop_index("ix_suggested_appellation_sub_appellation_id", table_name="suggested_appellation")
    op.drop_table("suggested_appellation")
    op.drop_index("ux_taste_profile_user_in_use", table_name="taste_profile")
    op.drop_index("ix_taste_profile_user_id", table_name="taste_profile")
    op.drop_table("taste_profile")

    op.drop_index("ix_bottle_share_shared_with_user_id", table_name="bottle_share")
    op.drop_index("ix_bottle_share_shared_by_user_id", table_name="bottle_share")
    op.drop_table("bottle_share")

    op.drop_index("ix_bottle_sip_session_session", table_name="bottle_sip_session")
    op.drop_table("bottle_sip_session")
    op.drop_index("ix_sip_session_sisterhood_scheduled", table_name="sip_session")
    op.drop_table("sip_session")
    op.drop_index("ix_sisterhood_invitation_invitee_user_id", table_name="sisterhood_invitation")
    op.drop_table("sisterhood_invitation")
    op.drop_index("ix_user_sisterhood_sisterhood_user", table_name="user_sisterhood")
    op.drop_table("user_sisterhood")
    op.drop_table("sisterhood")

    op.drop_index("ix_tasting_note_user_id", table_name="tasting_note")
    op.drop_index("ix_tasting_note_bottle_id", table_name="tasting_note")
    op.drop_table("tasting_note")
    op.drop_index("ix_bottle_bottle_location_id", table_name="bottle")
    op.drop_index("ix_bottle_user_id", table_name="bottle")
    op.drop_index("ix_bottle_wine_vintage_id", table_name="bottle")
    op.drop_table("bottle")
    op.drop_table("bottle_location")

    op.drop_index("ix_wine_vintage_drinking_window_wine_vintage_id", table_name="wine_vintage_drinking_window")
    op.drop_table("wine_vintage_drinking_window")
    op.drop_index("ix_wine_vintage_evolution_score_wine_vintage_id", table_name="wine_vintage_evolution_score")
    op.drop_table("wine_vintage_evolution_score")
    op.drop_table("wine_vintage")
    op.drop_index("ix_wine_sub_appellation_id", table_name="wine")
    op.drop_table("wine")

    op.drop_index("ux_sub_appellation_name_appellation", table_name="sub_appellation")
    op.drop_index("ix_sub_appellation_appellation_id", table_name="sub_appellation")
    op.drop_table("sub_appellation")
    op.drop_index("ix_appellation_region_id", table_name="appellation")
    op.drop_table("appellation")
    op.drop_index("ix_region_country_id", table_name="region")
    op.drop_table("region")
    op.drop_table("country")
    op.drop_table("user_account")
