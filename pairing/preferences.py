"""Preference store: per-item preference scalars learned from slider input."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future

from pairing.docstore import DocumentStoreClient
from pairing.errors import HydrationFailure, IdentityMissing
from pairing.models import Identity

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCE = 0.5
PREFERENCE_STEP = 0.1
_LIKE_THRESHOLD = 0.5


class PreferenceStore:
    """Thread-safe mapping from item id to a preference in [0, 1].

    The in-memory mapping is the source of truth for the session. Every
    mutation is followed by a fire-and-forget overwrite of the user's stored
    map; a failed write is logged and never rolls the mapping back.

    Updates that arrive before :meth:`load_all` has finished are applied
    immediately and queued. Once the stored map is loaded they are replayed
    on top of it, so no write can clobber the stored map with a partial one.

    Args:
        client: The :class:`~pairing.docstore.DocumentStoreClient`.
        identity: The session's :class:`~pairing.models.Identity`.
        executor: Executor that runs the writes. A single worker keeps
            overwrites in submission order.
    """

    def __init__(
        self,
        client: DocumentStoreClient,
        identity: Identity,
        executor: Executor,
    ) -> None:
        self._client = client
        self._identity = identity
        self._executor = executor
        self._lock = threading.RLock()
        self._preferences: dict[str, float] = {}
        self._pending: list[tuple[str, float]] = []
        self._hydrated = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> float:
        """Return the preference for *item_id*, or 0.5 if none is recorded."""
        with self._lock:
            return self._preferences.get(item_id, DEFAULT_PREFERENCE)

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._preferences)

    @property
    def hydrated(self) -> bool:
        with self._lock:
            return self._hydrated

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update(self, item_id: str, slider_value: float) -> float:
        """Nudge *item_id*'s preference by ±0.1 depending on *slider_value*.

        A slider value of 0.5 or more counts as a like. The result is
        clamped to [0, 1] and persisted.

        Returns:
            The new preference.
        """
        with self._lock:
            value = self._apply(item_id, slider_value)
            if not self._hydrated:
                self._pending.append((item_id, slider_value))
                return value
            self.persist()
        return value

    def record_round(
        self,
        first_id: str,
        first_slider: float,
        second_id: str,
        second_slider: float,
    ) -> tuple[float, float]:
        """Update both items of a completed round, then persist once."""
        with self._lock:
            first = self._apply(first_id, first_slider)
            second = self._apply(second_id, second_slider)
            if not self._hydrated:
                self._pending.extend(
                    [(first_id, first_slider), (second_id, second_slider)]
                )
                return first, second
            self.persist()
        return first, second

    def clear(self) -> None:
        """Forget everything, including queued updates. Used on sign-out."""
        with self._lock:
            self._preferences = {}
            self._pending = []
            self._hydrated = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_all(self) -> dict[str, float]:
        """Hydrate the mapping from the current user's stored preferences.

        With no signed-in user, no stored data, or a failed read, the stored
        map is treated as empty. Updates queued before hydration are then
        replayed and, if there were any, the result is persisted.

        Returns:
            Snapshot of the mapping after hydration.
        """
        # The read is made for this user; a result for anyone else is stale.
        user_id = self._identity.user_id
        loaded: dict[str, float] = {}
        if user_id is None:
            logger.debug("No signed-in user; preferences start empty.")
        else:
            try:
                loaded = self._client.get_preferences(user_id)
            except HydrationFailure:
                logger.exception("Failed to load image preferences; starting empty.")

        with self._lock:
            if user_id != self._identity.user_id:
                logger.info("Identity changed during preference load; discarding result.")
                return dict(self._preferences)
            self._preferences = {k: _clamp(v) for k, v in loaded.items()}
            pending, self._pending = self._pending, []
            for item_id, slider_value in pending:
                self._apply(item_id, slider_value)
            self._hydrated = True
            if pending:
                self.persist()
            snapshot = dict(self._preferences)

        logger.info(
            "Loaded %d image preferences (%d queued updates replayed).",
            len(loaded),
            len(pending),
        )
        return snapshot

    def persist(self) -> Future | None:
        """Submit an overwrite of the stored map with the current mapping.

        The snapshot is taken and submitted under the lock, so writes reach
        the executor in the same order as the mutations they carry.

        Returns:
            The write's :class:`~concurrent.futures.Future`, or ``None`` if
            nobody is signed in.
        """
        with self._lock:
            try:
                user_id = self._identity.require()
            except IdentityMissing:
                logger.debug("No signed-in user; skipping preference write.")
                return None
            future = self._executor.submit(
                self._client.set_preferences, user_id, dict(self._preferences)
            )
        future.add_done_callback(_log_write_failure)
        return future

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply(self, item_id: str, slider_value: float) -> float:
        delta = PREFERENCE_STEP if slider_value >= _LIKE_THRESHOLD else -PREFERENCE_STEP
        value = _clamp(self._preferences.get(item_id, DEFAULT_PREFERENCE) + delta)
        self._preferences[item_id] = value
        return value


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _log_write_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Failed to persist image preferences: %s", exc)
