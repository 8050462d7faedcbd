"""Client for the external document store that backs the pairing core.

The store owns four collections: the image catalogue, the curated common
pairs, one preference document per user and one score collection per user.
All traffic is ``Struct`` documents over gRPC (see :mod:`pairing.rpc`).
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

import grpc

from pairing.errors import HydrationFailure, PersistenceFailure
from pairing.models import Category, CommonPair, ComparisonRecord, Item
from pairing.rpc import (
    add_struct_service_to_server,
    datetime_to_json,
    from_struct,
    json_to_datetime,
    stream_method,
    to_struct,
    unary_method,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "pairing.DocumentStore"

UNARY_METHODS = (
    "ListItems",
    "ListCommonPairs",
    "GetPreferences",
    "SetPreferences",
    "AddScore",
    "ListScores",
)
STREAM_METHODS = ("WatchScores",)


class DocumentStoreStub:
    """Client stub for ``pairing.DocumentStore``.

    Args:
        channel: A :class:`grpc.Channel` connected to the document store.
    """

    def __init__(self, channel: grpc.Channel) -> None:
        self.ListItems = unary_method(channel, SERVICE_NAME, "ListItems")
        self.ListCommonPairs = unary_method(channel, SERVICE_NAME, "ListCommonPairs")
        self.GetPreferences = unary_method(channel, SERVICE_NAME, "GetPreferences")
        self.SetPreferences = unary_method(channel, SERVICE_NAME, "SetPreferences")
        self.AddScore = unary_method(channel, SERVICE_NAME, "AddScore")
        self.ListScores = unary_method(channel, SERVICE_NAME, "ListScores")
        self.WatchScores = stream_method(channel, SERVICE_NAME, "WatchScores")


def add_DocumentStoreServicer_to_server(servicer: Any, server: grpc.Server) -> None:
    """Register a document store implementation on *server*."""
    add_struct_service_to_server(
        server, SERVICE_NAME, servicer, UNARY_METHODS, STREAM_METHODS
    )


class ScoreFeed:
    """Live view of a user's score collection.

    Iterating yields the full, most-recent-first list of records every time
    the collection changes. :meth:`cancel` ends the stream; iteration then
    stops quietly.
    """

    def __init__(self, call: Any) -> None:
        self._call = call

    def __iter__(self) -> Iterator[list[ComparisonRecord]]:
        try:
            for snapshot in self._call:
                yield score_records_from_documents(from_struct(snapshot).get("documents", []))
        except grpc.RpcError as exc:
            if isinstance(exc, grpc.Call) and exc.code() == grpc.StatusCode.CANCELLED:
                return
            raise HydrationFailure(f"score feed failed: {exc}") from exc

    def cancel(self) -> None:
        self._call.cancel()


class DocumentStoreClient:
    """Typed access to the document store.

    Translates transport errors into the pairing taxonomy: failed reads
    raise :class:`~pairing.errors.HydrationFailure`, failed writes raise
    :class:`~pairing.errors.PersistenceFailure`.

    Args:
        stub: A :class:`DocumentStoreStub` (or any object exposing the same
            callables; tests pass a ``MagicMock``).
        timeout: Deadline in seconds applied to every unary call.
    """

    def __init__(self, stub: Any, timeout: float = 5.0) -> None:
        self._stub = stub
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_items(self, category: Category) -> list[Item]:
        """Return every item tagged with *category*.

        Documents missing a string ``id``, ``category`` or ``url`` are
        skipped.
        """
        response = self._read("ListItems", {"category": category.value})
        items = []
        for doc in response.get("documents", []):
            item = _item_from_document(doc)
            if item is None:
                logger.debug("Skipping malformed item document: %r", doc)
                continue
            items.append(item)
        return items

    def list_common_pairs(self) -> list[CommonPair]:
        response = self._read("ListCommonPairs", {})
        pairs = []
        for doc in response.get("documents", []):
            pair_id = doc.get("pair_id")
            first_url = doc.get("image1_url")
            second_url = doc.get("image2_url")
            if not all(isinstance(v, str) for v in (pair_id, first_url, second_url)):
                continue
            pairs.append(CommonPair(pair_id, first_url, second_url))
        return pairs

    def get_preferences(self, user_id: str) -> dict[str, float]:
        """Return the stored preference map for *user_id* (``{}`` if none)."""
        response = self._read("GetPreferences", {"user_id": user_id})
        raw = response.get("preferences") or {}
        return {
            item_id: float(value)
            for item_id, value in raw.items()
            if isinstance(value, (int, float))
        }

    def list_scores(self, user_id: str) -> list[ComparisonRecord]:
        response = self._read("ListScores", {"user_id": user_id})
        return score_records_from_documents(response.get("documents", []))

    def watch_scores(self, user_id: str) -> ScoreFeed:
        """Subscribe to *user_id*'s score collection. No deadline is applied."""
        call = self._stub.WatchScores(to_struct({"user_id": user_id}))
        return ScoreFeed(call)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_preferences(self, user_id: str, preferences: dict[str, float]) -> None:
        """Overwrite *user_id*'s stored preference map."""
        self._write(
            "SetPreferences",
            {"user_id": user_id, "preferences": dict(preferences)},
        )

    def add_score(self, user_id: str, record: ComparisonRecord) -> None:
        self._write(
            "AddScore",
            {
                "user_id": user_id,
                "score_id": record.score_id,
                "score": score_record_to_document(record),
            },
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self, method: str, request: dict[str, Any]) -> dict[str, Any]:
        try:
            response = getattr(self._stub, method)(
                to_struct(request), timeout=self._timeout
            )
        except grpc.RpcError as exc:
            raise HydrationFailure(f"{method} failed: {exc}") from exc
        return from_struct(response)

    def _write(self, method: str, request: dict[str, Any]) -> None:
        try:
            getattr(self._stub, method)(to_struct(request), timeout=self._timeout)
        except grpc.RpcError as exc:
            raise PersistenceFailure(f"{method} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Document conversion
# ---------------------------------------------------------------------------


def _item_from_document(doc: dict[str, Any]) -> Item | None:
    item_id = doc.get("id")
    category = doc.get("category")
    url = doc.get("url")
    if not all(isinstance(v, str) for v in (item_id, category, url)):
        return None
    try:
        return Item(item_id=item_id, category=Category(category), url=url)
    except ValueError:
        return None


def score_record_to_document(record: ComparisonRecord) -> dict[str, Any]:
    """Serialise *record* with the field names the store uses."""
    return {
        "slider1": record.slider1,
        "slider2": record.slider2,
        "image1_id": record.first_item_id,
        "image2_id": record.second_item_id,
        "image1_url": record.first_url,
        "image2_url": record.second_url,
        "relational_score": record.relational_score,
        "date": datetime_to_json(record.created_at),
    }


def score_record_from_document(doc: dict[str, Any]) -> ComparisonRecord | None:
    """Parse a stored score document, or return ``None`` if it is malformed."""
    try:
        return ComparisonRecord(
            score_id=_require(doc, "score_id", str),
            slider1=float(_require(doc, "slider1", (int, float))),
            slider2=float(_require(doc, "slider2", (int, float))),
            first_item_id=_require(doc, "image1_id", str),
            second_item_id=_require(doc, "image2_id", str),
            first_url=_require(doc, "image1_url", str),
            second_url=_require(doc, "image2_url", str),
            relational_score=float(_require(doc, "relational_score", (int, float))),
            created_at=json_to_datetime(_require(doc, "date", str)),
        )
    except (KeyError, TypeError, ValueError):
        return None


def score_records_from_documents(docs: list[dict[str, Any]]) -> list[ComparisonRecord]:
    """Parse *docs*, drop malformed ones, and order most recent first."""
    records = []
    for doc in docs:
        record = score_record_from_document(doc)
        if record is None:
            logger.debug("Skipping malformed score document: %r", doc)
            continue
        records.append(record)
    records.sort(key=lambda r: r.created_at, reverse=True)
    return records


def _require(doc: dict[str, Any], key: str, kind: Any) -> Any:
    value = doc[key]
    if not isinstance(value, kind):
        raise TypeError(f"{key} has type {type(value).__name__}")
    return value
