"""Shared pytest fixtures for all pairing tests."""

from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from pairing.docstore import DocumentStoreClient
from pairing.models import Category, ComparisonRecord, Identity, Item
from pairing.rpc import to_struct


TS = datetime(2024, 9, 19, 12, 0, 0, tzinfo=timezone.utc)

ANIMAL_DOCS: list[dict[str, str]] = [
    {"id": "a1", "category": "animals", "url": "https://img/a1.jpg"},
    {"id": "a2", "category": "animals", "url": "https://img/a2.jpg"},
    {"id": "a3", "category": "animals", "url": "https://img/a3.jpg"},
    {"id": "a4", "category": "animals", "url": "https://img/a4.jpg"},
]

CULTURE_DOCS: list[dict[str, str]] = [
    {"id": "c1", "category": "culture", "url": "https://img/c1.jpg"},
    {"id": "c2", "category": "culture", "url": "https://img/c2.jpg"},
    {"id": "c3", "category": "culture", "url": "https://img/c3.jpg"},
]


def make_stub(
    images: list[dict[str, Any]] | None = None,
    preferences: dict[str, float] | None = None,
    scores: list[dict[str, Any]] | None = None,
) -> MagicMock:
    """Return a document store stub answering reads from the given data."""
    docs = ANIMAL_DOCS + CULTURE_DOCS if images is None else images

    def list_items(request, timeout=None):
        category = request.fields["category"].string_value
        return to_struct({"documents": [d for d in docs if d["category"] == category]})

    stub = MagicMock()
    stub.ListItems.side_effect = list_items
    stub.ListCommonPairs.return_value = to_struct({"documents": []})
    stub.GetPreferences.return_value = to_struct(
        {"preferences": preferences} if preferences is not None else {}
    )
    stub.ListScores.return_value = to_struct({"documents": scores or []})
    return stub


def make_items(category: Category, *ids: str) -> list[Item]:
    return [Item(i, category, f"https://img/{i}.jpg") for i in ids]


def make_record(score_id: str, created_at: datetime = TS, **overrides) -> ComparisonRecord:
    fields = dict(
        score_id=score_id,
        slider1=0.8,
        slider2=0.3,
        first_item_id="a1",
        second_item_id="a2",
        first_url="https://img/a1.jpg",
        second_url="https://img/a2.jpg",
        relational_score=0.5,
        created_at=created_at,
    )
    fields.update(overrides)
    return ComparisonRecord(**fields)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stub() -> MagicMock:
    return make_stub()


@pytest.fixture
def client(stub) -> DocumentStoreClient:
    return DocumentStoreClient(stub, timeout=1.0)


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id="u1")


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def animals() -> list[Item]:
    return make_items(Category.ANIMALS, "a1", "a2", "a3", "a4")


@pytest.fixture
def culture() -> list[Item]:
    return make_items(Category.CULTURE, "c1", "c2", "c3")
