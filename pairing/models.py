"""Core domain dataclasses shared across all pairing modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pairing.errors import IdentityMissing


class Category(str, Enum):
    """Closed set of image categories a pair can be drawn from."""

    ANIMALS = "animals"
    CULTURE = "culture"


@dataclass(frozen=True)
class Item:
    """A single image in the catalogue.

    Attributes:
        item_id: Identifier, unique within its category.
        category: The category the item belongs to.
        url: Display resource locator. Opaque to the core.
    """

    item_id: str
    category: Category
    url: str


@dataclass(frozen=True)
class CommonPair:
    """A curated pair from the ``common_pairs`` collection."""

    pair_id: str
    first_url: str
    second_url: str


@dataclass(frozen=True)
class ComparisonRecord:
    """One completed comparison round.

    Records are append-only: written once, never mutated, and listed most
    recent first.

    Attributes:
        score_id: Unique key the record is stored under.
        slider1: Slider value for the first item, in [0, 1].
        slider2: Slider value for the second item, in [0, 1].
        first_item_id: Identifier of the first displayed item.
        second_item_id: Identifier of the second displayed item.
        first_url: Resource locator of the first item.
        second_url: Resource locator of the second item.
        relational_score: ``|slider1 - slider2|``.
        created_at: When the round was submitted (UTC).
    """

    score_id: str
    slider1: float
    slider2: float
    first_item_id: str
    second_item_id: str
    first_url: str
    second_url: str
    relational_score: float
    created_at: datetime


@dataclass
class Identity:
    """Opaque handle on the signed-in user.

    ``user_id`` is ``None`` while nobody is signed in; preference and score
    operations become no-ops in that state.
    """

    user_id: str | None = None

    @property
    def signed_in(self) -> bool:
        return self.user_id is not None

    def require(self) -> str:
        """Return the current user id.

        Raises:
            IdentityMissing: If nobody is signed in.
        """
        if self.user_id is None:
            raise IdentityMissing("no user is signed in")
        return self.user_id
