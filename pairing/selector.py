"""Pair selector: serves pairs of not-yet-shown items from per-category pools."""

from __future__ import annotations

import logging
import random
import threading
from typing import Iterable

from pairing.errors import InsufficientItems
from pairing.models import Category, Item
from pairing.preferences import PreferenceStore

logger = logging.getLogger(__name__)

COOLDOWN_LIMIT = 5
_COOLDOWN_TRIM = 2


class _CategoryState:
    """Pool and cooldown bookkeeping for one category."""

    def __init__(self, category: Category) -> None:
        self.category = category
        self.lock = threading.Lock()
        self.items: list[Item] = []
        self.pool: list[Item] = []
        self.cooldown: list[Item] = []


class PairSelector:
    """Serves pairs of distinct items from the same category.

    Each category keeps a pool: a random permutation of its items from
    which dispatched items are removed. When fewer than two remain the pool
    is refilled with a fresh permutation of the whole category.

    Candidates are ordered by descending preference before every draw, but
    both draws are uniform over the pool, so the ordering does not bias
    which items come up. Likewise the cooldown list and the used-pairs set
    are recorded but not consulted when drawing.

    Args:
        preferences: Source of per-item preferences.
        rng: Random source for category choice, draws and shuffles. Pass a
            seeded :class:`random.Random` for reproducible sequences.
    """

    def __init__(
        self,
        preferences: PreferenceStore,
        rng: random.Random | None = None,
    ) -> None:
        self._preferences = preferences
        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()
        self._states: dict[Category, _CategoryState] = {
            c: _CategoryState(c) for c in Category
        }
        self._used_pairs: set[str] = set()
        self._used_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Loading and resetting
    # ------------------------------------------------------------------

    def load(self, category: Category, items: Iterable[Item]) -> None:
        """Replace *category*'s item list and refill its pool.

        Items repeating an earlier ``item_id`` are dropped.
        """
        unique: dict[str, Item] = {}
        for item in items:
            if item.item_id in unique:
                logger.warning(
                    "Duplicate %s item %r ignored.", category.value, item.item_id
                )
                continue
            unique[item.item_id] = item
        state = self._states[category]
        with state.lock:
            state.items = list(unique.values())
            self._refill(state)
        logger.debug("Loaded %d %s items into selector.", len(state.items), category.value)

    def reset(self) -> None:
        """Refill every pool and clear the cooldown lists and used pairs."""
        for state in self._states.values():
            with state.lock:
                self._refill(state)
                state.cooldown.clear()
        with self._used_lock:
            self._used_pairs.clear()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def next_pair(self, category: Category | None = None) -> tuple[Item, Item]:
        """Dispatch the next pair.

        Args:
            category: Restrict the draw to this category. When ``None`` a
                category is chosen uniformly at random.

        Returns:
            Two distinct items of the same category.

        Raises:
            InsufficientItems: If the chosen category's pool holds fewer
                than two items. Not retried; the caller may try again later.
        """
        if category is None:
            with self._rng_lock:
                category = self._rng.choice(list(Category))
        state = self._states[category]

        with state.lock:
            ordered = sorted(
                state.pool,
                key=lambda i: self._preferences.get(i.item_id),
                reverse=True,
            )
            if len(ordered) < 2:
                logger.info("Not enough %s images to form a pair.", category.value)
                raise InsufficientItems(category.value, len(ordered))

            with self._rng_lock:
                first = self._rng.choice(ordered)
                second = self._rng.choice(
                    [i for i in ordered if i.item_id != first.item_id]
                )

            state.pool = [
                i for i in state.pool if i.item_id not in (first.item_id, second.item_id)
            ]

            state.cooldown.extend((first, second))
            if len(state.cooldown) > COOLDOWN_LIMIT:
                del state.cooldown[:_COOLDOWN_TRIM]

            with self._used_lock:
                self._used_pairs.add(f"{first.item_id}-{second.item_id}")

            if len(state.pool) < 2:
                self._refill(state)

        logger.debug(
            "Dispatched %s pair %s / %s", category.value, first.item_id, second.item_id
        )
        return first, second

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def pool_size(self, category: Category) -> int:
        state = self._states[category]
        with state.lock:
            return len(state.pool)

    def pool(self, category: Category) -> list[Item]:
        state = self._states[category]
        with state.lock:
            return list(state.pool)

    def cooldown(self, category: Category) -> list[Item]:
        """Most recently dispatched items of *category*, oldest first."""
        state = self._states[category]
        with state.lock:
            return list(state.cooldown)

    @property
    def used_pairs(self) -> set[str]:
        with self._used_lock:
            return set(self._used_pairs)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _refill(self, state: _CategoryState) -> None:
        """Replace *state*'s pool with a fresh permutation. Caller holds the lock."""
        pool = list(state.items)
        with self._rng_lock:
            self._rng.shuffle(pool)
        state.pool = pool
