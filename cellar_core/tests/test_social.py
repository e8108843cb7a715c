from __future__ import annotations

from dataclasses import replace

import pytest

from cellar_core import social, users
from cellar_core.db import now_ms
from cellar_core.errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError, ValidationError


@pytest.fixture
def group(user):
    return social.create_sisterhood("Les Soeurs", user["id"], description="Monthly tastings")


def test_create_sisterhood_makes_creator_admin(group, user):
    assert social.is_admin(group["id"], user["id"]) is True
    members = social.list_members(group["id"])
    assert [(m["user_id"], m["is_admin"]) for m in members] == [(user["id"], True)]

    with pytest.raises(ConflictError):
        social.create_sisterhood("Les Soeurs", user["id"])


def test_invite_and_accept(group, user, other_user):
    invitation = social.invite(group["id"], "  OLGA@example.com ", user["id"])
    assert invitation["invitee_email"] == "olga@example.com"
    assert invitation["status"] == social.PENDING
    assert [i["id"] for i in social.list_invitations_for_invitee(other_user["id"])] == [invitation["id"]]

    accepted = social.accept_invitation(invitation["id"], other_user["id"])
    assert accepted["status"] == social.ACCEPTED
    assert accepted["invitee_user_id"] == other_user["id"]
    assert social.is_admin(group["id"], other_user["id"]) is False
    assert {m["user_id"] for m in social.list_members(group["id"])} == {user["id"], other_user["id"]}

    with pytest.raises(InvalidStateError):
        social.accept_invitation(invitation["id"], other_user["id"])


def test_accept_without_invitation_is_not_found(group, other_user):
    with pytest.raises(NotFoundError):
        social.accept_invitation("missing", other_user["id"])
    with pytest.raises(NotFoundError):
        social.accept_invitation_by_email(group["id"], other_user["id"])


def test_accept_by_email(group, user, other_user):
    social.invite(group["id"], "olga@example.com", user["id"])
    social.accept_invitation_by_email(group["id"], other_user["id"])
    with pytest.raises(InvalidStateError):
        social.accept_invitation_by_email(group["id"], other_user["id"])


def test_only_admins_invite(group, other_user):
    with pytest.raises(AuthorizationError):
        social.invite(group["id"], "someone@example.com", other_user["id"])
    with pytest.raises(ValidationError):
        social.invite(group["id"], "not-an-email", other_user["id"])


def test_reinvite_rules(group, user, other_user):
    first = social.invite(group["id"], "olga@example.com", user["id"])
    with pytest.raises(ConflictError) as exc:
        social.invite(group["id"], "Olga@Example.com", user["id"])
    assert exc.value.code == "invitation_exists"

    social.decline_invitation(first["id"], other_user["id"])
    second = social.invite(group["id"], "olga@example.com", user["id"])
    assert second["id"] != first["id"]
    assert second["status"] == social.PENDING
    assert [i["id"] for i in social.list_pending_invitations(group["id"])] == [second["id"]]


def test_invitation_for_someone_else_is_forbidden(group, user, other_user):
    third = users.create_user("Thea", "thea@example.com")
    invitation = social.invite(group["id"], "olga@example.com", user["id"])
    with pytest.raises(AuthorizationError):
        social.accept_invitation(invitation["id"], third["id"])
    assert social.get_invitation(invitation["id"])["status"] == social.PENDING


def test_failed_accept_leaves_invitation_pending(group, user, other_user):
    invitation = social.invite(group["id"], "olga@example.com", user["id"])
    social.add_member(group["id"], other_user["id"], user["id"])

    with pytest.raises(ConflictError):
        social.accept_invitation(invitation["id"], other_user["id"])
    assert social.get_invitation(invitation["id"])["status"] == social.PENDING


def test_expire_invitations(group, user, other_user, monkeypatch):
    invitation = social.invite(group["id"], "olga@example.com", user["id"])
    later = now_ms() + social.settings.invitation_ttl_ms + 1000

    assert social.expire_invitations(now=now_ms()) == 0
    assert social.expire_invitations(now=later) == 1
    assert social.get_invitation(invitation["id"])["status"] == social.EXPIRED
    with pytest.raises(InvalidStateError):
        social.accept_invitation(invitation["id"], other_user["id"])

    fresh = social.invite(group["id"], "olga@example.com", user["id"])
    monkeypatch.setattr(social, "settings", replace(social.settings, invitation_ttl_ms=-1))
    with pytest.raises(InvalidStateError) as exc:
        social.accept_invitation(fresh["id"], other_user["id"])
    assert exc.value.code == "invitation_expired"


def test_membership_admin_rules(group, user, other_user):
    social.add_member(group["id"], other_user["id"], user["id"])
    with pytest.raises(ConflictError):
        social.add_member(group["id"], other_user["id"], user["id"])
    with pytest.raises(AuthorizationError):
        social.set_admin(group["id"], user["id"], False, other_user["id"])
    with pytest.raises(InvalidStateError):
        social.set_admin(group["id"], user["id"], False, user["id"])
    with pytest.raises(InvalidStateError):
        social.remove_member(group["id"], user["id"], user["id"])

    social.set_admin(group["id"], other_user["id"], True, user["id"])
    social.remove_member(group["id"], user["id"], user["id"])
    assert [m["user_id"] for m in social.list_members(group["id"])] == [other_user["id"]]
    assert social.list_sisterhoods_for_user(user["id"]) == []
    assert [s["id"] for s in social.list_sisterhoods_for_user(other_user["id"])] == [group["id"]]


def test_update_and_delete_sisterhood(group, user, other_user):
    updated = social.update_sisterhood(group["id"], user["id"], name="Les Grandes Soeurs", description=None)
    assert updated["name"] == "Les Grandes Soeurs"
    assert updated["description"] is None
    with pytest.raises(AuthorizationError):
        social.delete_sisterhood(group["id"], other_user["id"])

    social.invite(group["id"], "olga@example.com", user["id"])
    social.delete_sisterhood(group["id"], user["id"])
    with pytest.raises(NotFoundError):
        social.get_sisterhood(group["id"])
    assert social.list_invitations_for_invitee(other_user["id"]) == []


def test_sisterhood_photo(group, user):
    assert social.get_sisterhood_photo(group["id"]) is None
    social.set_sisterhood_photo(group["id"], user["id"], b"\x89PNG", "IMAGE/PNG")
    photo = social.get_sisterhood_photo(group["id"])
    assert photo.payload == b"\x89PNG"
    assert photo.content_type == "image/png"

    with pytest.raises(ValidationError):
        social.set_sisterhood_photo(group["id"], user["id"], b"", "image/png")
    social.clear_sisterhood_photo(group["id"], user["id"])
    assert social.get_sisterhood_photo(group["id"]) is None


def test_former_member_can_be_invited_again(group, user, other_user):
    first = social.invite(group["id"], "olga@example.com", user["id"])
    social.accept_invitation(first["id"], other_user["id"])
    with pytest.raises(ConflictError) as exc:
        social.invite(group["id"], "olga@example.com", user["id"])
    assert exc.value.code == "already_member"

    social.remove_member(group["id"], other_user["id"], other_user["id"])
    again = social.invite(group["id"], "olga@example.com", user["id"])
    assert again["id"] != first["id"]
    assert again["status"] == social.PENDING

    social.accept_invitation(again["id"], other_user["id"])
    assert {m["user_id"] for m in social.list_members(group["id"])} == {user["id"], other_user["id"]}
