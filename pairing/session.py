"""Session context: owns every piece of per-session state and wires the components."""

from __future__ import annotations

import logging
import random
import threading
import uuid
from concurrent import futures
from datetime import datetime, timezone

from pairing.catalogue import ItemCatalogue
from pairing.docstore import DocumentStoreClient
from pairing.models import Category, ComparisonRecord, Identity, Item
from pairing.preferences import PreferenceStore
from pairing.scores import ScoreLedger
from pairing.selector import PairSelector

logger = logging.getLogger(__name__)


class Session:
    """One user-facing session of image comparisons.

    The presentation layer holds a single :class:`Session` and calls into
    it; nothing here is a module-level singleton.

    Lifecycle:

    1. :meth:`start` hydrates the catalogue in the background and loads the
       selector pools when it arrives.
    2. :meth:`sign_in` hydrates the user's preferences and starts the score
       feed.
    3. :meth:`next_pair` / :meth:`submit_comparison` per round.
    4. :meth:`sign_out` clears the user's data; :meth:`close` releases
       threads.

    Pairs may be requested before hydration completes; they fail with
    :class:`~pairing.errors.InsufficientItems` until items arrive.

    Args:
        client: The :class:`~pairing.docstore.DocumentStoreClient`.
        rng: Random source for the selector.
        max_workers: Size of the pool that runs backend reads.
    """

    def __init__(
        self,
        client: DocumentStoreClient,
        rng: random.Random | None = None,
        max_workers: int = 4,
    ) -> None:
        self._client = client
        self._reader = futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="backend-read"
        )
        # Writes are overwrites and appends; one worker keeps them ordered.
        self._writer = futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="backend-write"
        )
        # Serialises sign-in and sign-out so only one user's feed is live.
        self._identity_lock = threading.RLock()
        self.identity = Identity()
        self.catalogue = ItemCatalogue(client)
        self.preferences = PreferenceStore(client, self.identity, self._writer)
        self.scores = ScoreLedger(client, self.identity, self._writer)
        self.selector = PairSelector(self.preferences, rng=rng)
        self._pending: list[futures.Future] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> futures.Future:
        """Begin catalogue hydration.

        Returns:
            Future resolving to the loaded items keyed by category.
        """
        future = self._reader.submit(self._hydrate_catalogue)
        self._pending.append(future)
        return future

    def sign_in(self, user_id: str) -> futures.Future:
        """Switch to *user_id* and hydrate their preferences and scores.

        Returns:
            Future resolving to the loaded preference map.

        Raises:
            ValueError: If *user_id* is empty.
        """
        if not user_id:
            raise ValueError("user_id must be non-empty")
        with self._identity_lock:
            if self.identity.user_id is not None:
                self.sign_out()
            self.identity.user_id = user_id
            logger.info("Signed in as %r.", user_id)

            future = self._reader.submit(self.preferences.load_all)
            self._pending.append(future)
            self.scores.start_watch()
        return future

    def sign_out(self) -> None:
        """Forget the current user and everything loaded for them."""
        with self._identity_lock:
            user_id = self.identity.user_id
            self.scores.stop_watch()
            self.identity.user_id = None
            self.preferences.clear()
            self.scores.clear()
        if user_id is not None:
            logger.info("Signed out %r.", user_id)

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until all outstanding hydration has finished.

        Returns:
            ``True`` if everything finished within *timeout*.
        """
        pending = list(self._pending)
        done, not_done = futures.wait(pending, timeout=timeout)
        self._pending = [f for f in self._pending if f not in done]
        return not not_done

    def close(self) -> None:
        """Stop the score feed and shut down the backend pools."""
        self.scores.stop_watch()
        self._reader.shutdown(wait=True)
        self._writer.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def next_pair(self, category: Category | None = None) -> tuple[Item, Item]:
        """See :meth:`~pairing.selector.PairSelector.next_pair`."""
        return self.selector.next_pair(category)

    def submit_comparison(
        self,
        first: Item,
        second: Item,
        slider1: float,
        slider2: float,
    ) -> ComparisonRecord:
        """Record one completed round and learn from it.

        Builds the comparison record, appends it to the user's scores and
        updates each item's preference from its own slider value. Without a
        signed-in user the record is returned but nothing is stored or
        learned.

        Args:
            first: The item shown with the first slider.
            second: The item shown with the second slider.
            slider1: First slider value in [0, 1].
            slider2: Second slider value in [0, 1].

        Returns:
            The new :class:`~pairing.models.ComparisonRecord`.

        Raises:
            ValueError: If a slider value is outside [0, 1].
        """
        for name, value in (("slider1", slider1), ("slider2", slider2)):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value!r}")

        record = ComparisonRecord(
            score_id=str(uuid.uuid4()),
            slider1=slider1,
            slider2=slider2,
            first_item_id=first.item_id,
            second_item_id=second.item_id,
            first_url=first.url,
            second_url=second.url,
            relational_score=abs(slider1 - slider2),
            created_at=datetime.now(timezone.utc),
        )

        if not self.identity.signed_in:
            logger.debug("No signed-in user; comparison %s not recorded.", record.score_id)
            return record

        self.scores.append(record)
        self.preferences.record_round(first.item_id, slider1, second.item_id, slider2)
        return record

    def reset(self) -> None:
        """Start a fresh shuffle cycle. See :meth:`PairSelector.reset`."""
        self.selector.reset()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _hydrate_catalogue(self) -> dict[Category, list[Item]]:
        loaded = self.catalogue.load()
        for category, items in loaded.items():
            self.selector.load(category, items)
        return loaded
