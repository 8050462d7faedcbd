"""Item catalogue: fetches and caches images per category from the document store."""

from __future__ import annotations

import logging
import threading

from pairing.docstore import DocumentStoreClient
from pairing.errors import HydrationFailure
from pairing.models import Category, CommonPair, Item

logger = logging.getLogger(__name__)


class ItemCatalogue:
    """Fetches and caches the image catalogue for one session.

    Items are loaded once per session by :meth:`load` and are immutable
    afterwards. A category whose fetch fails stays empty; the rest of the
    catalogue is still usable.

    All public methods are thread-safe.

    Args:
        client: The :class:`~pairing.docstore.DocumentStoreClient` to read from.
    """

    def __init__(self, client: DocumentStoreClient) -> None:
        self._client = client
        self._lock = threading.RLock()
        self._items: dict[Category, list[Item]] = {c: [] for c in Category}
        self._common_pairs: list[CommonPair] = []

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def load(self) -> dict[Category, list[Item]]:
        """Fetch every category and the curated common pairs.

        Blocks until all reads complete. A failed read is logged and leaves
        the affected collection empty.

        Returns:
            Snapshot of the loaded items keyed by category.
        """
        for category in Category:
            self.load_category(category)

        try:
            pairs = self._client.list_common_pairs()
        except HydrationFailure:
            logger.exception("Failed to load common pairs; continuing without them.")
            pairs = []
        with self._lock:
            self._common_pairs = pairs

        return {c: self.get_items(c) for c in Category}

    def load_category(self, category: Category) -> list[Item]:
        """Fetch the items of a single *category* and cache them.

        Returns:
            The cached items, empty if the read failed.
        """
        try:
            items = self._client.list_items(category)
        except HydrationFailure:
            logger.exception(
                "Failed to load %s images; category stays empty.", category.value
            )
            items = []
        with self._lock:
            self._items[category] = items
        logger.info("Loaded %d %s images.", len(items), category.value)
        return list(items)

    def get_items(self, category: Category) -> list[Item]:
        """Return a snapshot of the items in *category*."""
        with self._lock:
            return list(self._items[category])

    def get_item(self, item_id: str) -> Item | None:
        """Return an item by id from any category, or ``None`` if not found.

        Ids are only unique within a category; the first match wins, with
        categories searched in declaration order.
        """
        with self._lock:
            for category in Category:
                for item in self._items[category]:
                    if item.item_id == item_id:
                        return item
        return None

    def get_common_pairs(self) -> list[CommonPair]:
        with self._lock:
            return list(self._common_pairs)
