"""Score ledger: appends comparison records and mirrors the user's score feed."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future

from pairing.docstore import DocumentStoreClient, ScoreFeed
from pairing.errors import HydrationFailure, IdentityMissing
from pairing.models import ComparisonRecord, Identity

logger = logging.getLogger(__name__)


class ScoreLedger:
    """Thread-safe, most-recent-first view of the signed-in user's scores.

    Appends are fire-and-forget. The appended record is materialised
    locally straight away; the change feed started by :meth:`start_watch`
    then replaces the local list with whatever the store reports.

    Args:
        client: The :class:`~pairing.docstore.DocumentStoreClient`.
        identity: The session's :class:`~pairing.models.Identity`.
        executor: Executor that runs the writes.
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
        self._records: list[ComparisonRecord] = []
        # Guards the feed and thread; never held while joining the thread.
        self._watch_lock = threading.Lock()
        self._feed: ScoreFeed | None = None
        self._watch_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, record: ComparisonRecord) -> Future | None:
        """Store *record* under the current user.

        Returns:
            The write's :class:`~concurrent.futures.Future`, or ``None`` if
            nobody is signed in (the record is then dropped).
        """
        try:
            user_id = self._identity.require()
        except IdentityMissing:
            logger.debug("No signed-in user; dropping score %s.", record.score_id)
            return None

        with self._lock:
            self._records = _merge(self._records, [record])

        future = self._executor.submit(self._client.add_score, user_id, record)
        future.add_done_callback(_log_write_failure)
        return future

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def refresh(self) -> list[ComparisonRecord]:
        """Reload the user's records once. A failed read keeps the current list."""
        try:
            user_id = self._identity.require()
            records = self._client.list_scores(user_id)
        except IdentityMissing:
            return []
        except HydrationFailure:
            logger.exception("Failed to list scores; keeping %d cached.", len(self._records))
            return self.get_scores()
        with self._lock:
            self._records = records
        return list(records)

    def get_scores(self) -> list[ComparisonRecord]:
        """Return the materialised records, most recent first."""
        with self._lock:
            return list(self._records)

    def get_score(self, score_id: str) -> ComparisonRecord | None:
        with self._lock:
            for record in self._records:
                if record.score_id == score_id:
                    return record
        return None

    def clear(self) -> None:
        with self._lock:
            self._records = []

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def start_watch(self) -> None:
        """Start a daemon thread that mirrors the user's score feed.

        Safe to call multiple times; only one watch runs. Does nothing when
        nobody is signed in.
        """
        with self._watch_lock:
            if self._watch_thread is not None and self._watch_thread.is_alive():
                return
            try:
                user_id = self._identity.require()
            except IdentityMissing:
                logger.debug("No signed-in user; not watching scores.")
                return
            self._feed = self._client.watch_scores(user_id)
            self._watch_thread = threading.Thread(
                target=self._watch_loop,
                args=(self._feed,),
                name="score-watch",
                daemon=True,
            )
            self._watch_thread.start()
        logger.debug("Score watch started for user %r.", user_id)

    def stop_watch(self, timeout: float | None = None) -> None:
        """Cancel the feed and wait up to *timeout* seconds for the thread.

        Snapshots the cancelled feed delivers after this call are ignored.
        """
        with self._watch_lock:
            feed, thread = self._feed, self._watch_thread
            self._feed = None
            self._watch_thread = None
            if feed is not None:
                feed.cancel()
        if thread is not None:
            thread.join(timeout)

    def _watch_loop(self, feed: ScoreFeed) -> None:
        """Apply every feed snapshot. Runs in a daemon thread."""
        try:
            for records in feed:
                with self._watch_lock, self._lock:
                    if self._feed is not feed:
                        logger.debug("Dropping snapshot from a stopped score feed.")
                        return
                    self._records = records
                logger.debug("Score feed delivered %d records.", len(records))
        except HydrationFailure:
            logger.exception("Score feed ended with an error.")


def _merge(
    current: list[ComparisonRecord], new: list[ComparisonRecord]
) -> list[ComparisonRecord]:
    by_id = {r.score_id: r for r in current}
    for record in new:
        by_id[record.score_id] = record
    return sorted(by_id.values(), key=lambda r: r.created_at, reverse=True)


def _log_write_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Failed to add score: %s", exc)
