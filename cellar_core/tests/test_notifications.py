from __future__ import annotations

import pytest

from cellar_core import notifications
from cellar_core.errors import ValidationError


def test_dismiss_is_an_upsert(user):
    first = notifications.dismiss(user["id"], " Invitations ", "inv-1", at=1_000)
    again = notifications.dismiss(user["id"], "invitations", " inv-1 ", at=2_000)

    assert again["id"] == first["id"]
    assert again["dismissed_at"] == 2_000
    assert notifications.is_dismissed(user["id"], "INVITATIONS", "inv-1") is True
    assert notifications.is_dismissed(user["id"], "invitations", "inv-2") is False


def test_dismissed_stamps_by_category(user, other_user):
    notifications.dismiss(user["id"], "invitations", "inv-1")
    notifications.dismiss(user["id"], "invitations", "inv-2")
    notifications.dismiss(user["id"], "sessions", "s-1")
    notifications.dismiss(other_user["id"], "invitations", "inv-3")

    assert notifications.dismissed_stamps(user["id"], ["Invitations", "drinking"]) == {
        "invitations": {"inv-1", "inv-2"},
        "drinking": set(),
    }
    assert notifications.dismissed_stamps(user["id"]) == {
        "invitations": {"inv-1", "inv-2"},
        "sessions": {"s-1"},
    }
    assert notifications.dismissed_stamps(user["id"], []) == {}


def test_dismiss_validates_fields(user):
    with pytest.raises(ValidationError):
        notifications.dismiss(user["id"], "", "stamp")
    with pytest.raises(ValidationError):
        notifications.dismiss(user["id"], "c" * 129, "stamp")
    with pytest.raises(ValidationError):
        notifications.dismiss(user["id"], "invitations", "s" * 513)
