from __future__ import annotations

import pytest

from cellar_core import catalog, wishlists
from cellar_core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError


def test_wishlist_names(user):
    wishlist = wishlists.create_wishlist(user["id"], "  Birthday ")
    assert wishlist["name"] == "Birthday"

    with pytest.raises(ValidationError):
        wishlists.create_wishlist(user["id"], "x")
    with pytest.raises(ValidationError):
        wishlists.create_wishlist(user["id"], "x" * 257)
    with pytest.raises(ConflictError):
        wishlists.create_wishlist(user["id"], "Birthday")

    other = wishlists.create_wishlist(user["id"], "Someday")
    with pytest.raises(ConflictError):
        wishlists.rename_wishlist(other["id"], user["id"], "Birthday")
    wishlists.rename_wishlist(other["id"], user["id"], "Anniversary")
    assert [w["name"] for w in wishlists.list_wishlists(user["id"])] == ["Anniversary", "Birthday"]


def test_wishes(burgundy, user, other_user):
    wishlist = wishlists.create_wishlist(user["id"], "Birthday")
    older = catalog.get_or_create_vintage(burgundy["wine"]["id"], 2014)

    wishlists.add_wish(wishlist["id"], burgundy["vintage"]["id"], user["id"])
    wishlists.add_wish(wishlist["id"], older["id"], user["id"])
    with pytest.raises(ConflictError):
        wishlists.add_wish(wishlist["id"], older["id"], user["id"])
    with pytest.raises(AuthorizationError):
        wishlists.add_wish(wishlist["id"], older["id"], other_user["id"])

    assert [w["vintage"] for w in wishlists.list_wishes(wishlist["id"])] == [2014, 2018]

    wishlists.remove_wish(wishlist["id"], older["id"], user["id"])
    with pytest.raises(NotFoundError):
        wishlists.remove_wish(wishlist["id"], older["id"], user["id"])

    catalog.delete_vintage(burgundy["vintage"]["id"])
    assert wishlists.list_wishes(wishlist["id"]) == []

    wishlists.delete_wishlist(wishlist["id"], user["id"])
    assert wishlists.list_wishlists(user["id"]) == []
