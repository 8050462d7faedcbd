"""Tests for pairing.models dataclasses."""

import dataclasses

import pytest

from pairing.errors import IdentityMissing, InsufficientItems, PairingError
from pairing.models import Category, Identity, Item


class TestItem:
    def test_basic_creation(self) -> None:
        item = Item(item_id="a1", category=Category.ANIMALS, url="https://img/a1.jpg")
        assert item.item_id == "a1"
        assert item.category is Category.ANIMALS
        assert item.url == "https://img/a1.jpg"

    def test_equality(self) -> None:
        assert Item("a1", Category.ANIMALS, "u") == Item("a1", Category.ANIMALS, "u")

    def test_inequality_across_categories(self) -> None:
        assert Item("x", Category.ANIMALS, "u") != Item("x", Category.CULTURE, "u")

    def test_is_immutable(self) -> None:
        item = Item("a1", Category.ANIMALS, "u")
        with pytest.raises(dataclasses.FrozenInstanceError):
            item.url = "other"  # type: ignore[misc]

    def test_hashable(self) -> None:
        items = {Item("a1", Category.ANIMALS, "u"), Item("a1", Category.ANIMALS, "u")}
        assert len(items) == 1


class TestCategory:
    def test_values(self) -> None:
        assert Category.ANIMALS == "animals"
        assert Category.CULTURE == "culture"

    def test_closed_set(self) -> None:
        assert {c.value for c in Category} == {"animals", "culture"}

    def test_lookup_by_value(self) -> None:
        assert Category("culture") is Category.CULTURE

    def test_unknown_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            Category("landscapes")


class TestIdentity:
    def test_defaults_to_signed_out(self) -> None:
        identity = Identity()
        assert identity.user_id is None
        assert not identity.signed_in

    def test_require_returns_user_id(self) -> None:
        assert Identity("u1").require() == "u1"

    def test_require_raises_when_signed_out(self) -> None:
        with pytest.raises(IdentityMissing):
            Identity().require()


class TestErrors:
    def test_insufficient_items_carries_context(self) -> None:
        exc = InsufficientItems("animals", 1)
        assert exc.category == "animals"
        assert exc.available == 1
        assert "animals" in str(exc)

    def test_all_errors_share_base(self) -> None:
        assert issubclass(InsufficientItems, PairingError)
        assert issubclass(IdentityMissing, PairingError)
