"""
mock_server.py — Self-contained in-memory document store for local development.

Ports
-----
50052  gRPC  pairing.DocumentStore  (this server plays the hosted backend)

Startup order
-------------
1. python mock_server.py   — DocumentStore gRPC on 50052
2. python main.py          — pairing service connects to 50052, serves on 50051

No extra dependencies; uses only grpcio and protobuf plus Python stdlib.
"""

from __future__ import annotations

import logging
import threading
from concurrent import futures
from typing import Any, Iterator

import grpc
from google.protobuf import struct_pb2

from pairing.docstore import add_DocumentStoreServicer_to_server
from pairing.rpc import from_struct, to_struct

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MOCK_GRPC_PORT: int = 50052
GRPC_MAX_WORKERS: int = 10

# How often an idle WatchScores stream checks whether its client went away.
_WATCH_POLL_SECONDS = 0.5

logger = logging.getLogger("mock_server")

# ---------------------------------------------------------------------------
# Static image catalogue: 6 animals, 5 culture
# ---------------------------------------------------------------------------

SAMPLE_IMAGES: list[dict[str, str]] = [
    {"id": "ani_001", "category": "animals", "url": "https://img.example.com/animals/fox.jpg"},
    {"id": "ani_002", "category": "animals", "url": "https://img.example.com/animals/owl.jpg"},
    {"id": "ani_003", "category": "animals", "url": "https://img.example.com/animals/otter.jpg"},
    {"id": "ani_004", "category": "animals", "url": "https://img.example.com/animals/heron.jpg"},
    {"id": "ani_005", "category": "animals", "url": "https://img.example.com/animals/lynx.jpg"},
    {"id": "ani_006", "category": "animals", "url": "https://img.example.com/animals/hare.jpg"},
    {"id": "cul_001", "category": "culture", "url": "https://img.example.com/culture/opera.jpg"},
    {"id": "cul_002", "category": "culture", "url": "https://img.example.com/culture/mural.jpg"},
    {"id": "cul_003", "category": "culture", "url": "https://img.example.com/culture/temple.jpg"},
    {"id": "cul_004", "category": "culture", "url": "https://img.example.com/culture/market.jpg"},
    {"id": "cul_005", "category": "culture", "url": "https://img.example.com/culture/dance.jpg"},
]

SAMPLE_COMMON_PAIRS: list[dict[str, str]] = [
    {
        "pair_id": "cp_001",
        "image1_url": "https://img.example.com/animals/fox.jpg",
        "image2_url": "https://img.example.com/animals/lynx.jpg",
    },
]

# ---------------------------------------------------------------------------
# In-memory document store
# ---------------------------------------------------------------------------


class InMemoryDocumentStore:
    """Thread-safe in-memory copy of the backend collections.

    Collections::

        images          list of {id, category, url}
        common_pairs    list of {pair_id, image1_url, image2_url}
        preferences     user_id -> {item_id: float}
        scores          user_id -> {score_id: score document}

    Every score write bumps a version counter and wakes any watchers.
    """

    def __init__(
        self,
        images: list[dict[str, Any]] | None = None,
        common_pairs: list[dict[str, Any]] | None = None,
    ) -> None:
        self._changed = threading.Condition(threading.RLock())
        self._images = list(images if images is not None else SAMPLE_IMAGES)
        self._common_pairs = list(
            common_pairs if common_pairs is not None else SAMPLE_COMMON_PAIRS
        )
        self._preferences: dict[str, dict[str, float]] = {}
        self._scores: dict[str, dict[str, dict[str, Any]]] = {}
        self._version = 0

    @property
    def version(self) -> int:
        with self._changed:
            return self._version

    def images(self, category: str) -> list[dict[str, Any]]:
        with self._changed:
            return [dict(d) for d in self._images if d.get("category") == category]

    def common_pairs(self) -> list[dict[str, Any]]:
        with self._changed:
            return [dict(d) for d in self._common_pairs]

    def get_preferences(self, user_id: str) -> dict[str, float]:
        with self._changed:
            return dict(self._preferences.get(user_id, {}))

    def set_preferences(self, user_id: str, preferences: dict[str, float]) -> None:
        with self._changed:
            self._preferences[user_id] = dict(preferences)

    def add_score(self, user_id: str, score_id: str, score: dict[str, Any]) -> None:
        with self._changed:
            self._scores.setdefault(user_id, {})[score_id] = dict(score)
            self._version += 1
            self._changed.notify_all()

    def scores(self, user_id: str) -> list[dict[str, Any]]:
        """Return *user_id*'s score documents, newest first, with ``score_id``."""
        with self._changed:
            docs = [
                {**doc, "score_id": score_id}
                for score_id, doc in self._scores.get(user_id, {}).items()
            ]
        docs.sort(key=lambda d: d.get("date", ""), reverse=True)
        return docs

    def wait_for_change(self, version: int, timeout: float) -> int:
        """Block until the version moves past *version* or *timeout* elapses."""
        with self._changed:
            self._changed.wait_for(lambda: self._version != version, timeout=timeout)
            return self._version


# ---------------------------------------------------------------------------
# gRPC DocumentStore implementation
# ---------------------------------------------------------------------------


class MockDocumentStoreServicer:
    """Implements ``pairing.DocumentStore`` against an :class:`InMemoryDocumentStore`."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store

    def ListItems(
        self, request: struct_pb2.Struct, context: grpc.ServicerContext
    ) -> struct_pb2.Struct:
        category = from_struct(request).get("category", "")
        docs = self._store.images(category)
        logger.info("ListItems(%s) → %d images", category, len(docs))
        return to_struct({"documents": docs})

    def ListCommonPairs(
        self, request: struct_pb2.Struct, context: grpc.ServicerContext
    ) -> struct_pb2.Struct:
        return to_struct({"documents": self._store.common_pairs()})

    def GetPreferences(
        self, request: struct_pb2.Struct, context: grpc.ServicerContext
    ) -> struct_pb2.Struct:
        user_id = from_struct(request).get("user_id", "")
        return to_struct({"preferences": self._store.get_preferences(user_id)})

    def SetPreferences(
        self, request: struct_pb2.Struct, context: grpc.ServicerContext
    ) -> struct_pb2.Struct:
        data = from_struct(request)
        if not data.get("user_id"):
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, "user_id is required")
        self._store.set_preferences(data["user_id"], data.get("preferences") or {})
        logger.info("SetPreferences for %s", data["user_id"])
        return struct_pb2.Struct()

    def AddScore(
        self, request: struct_pb2.Struct, context: grpc.ServicerContext
    ) -> struct_pb2.Struct:
        data = from_struct(request)
        if not data.get("user_id") or not data.get("score_id"):
            context.abort(
                grpc.StatusCode.INVALID_ARGUMENT, "user_id and score_id are required"
            )
        self._store.add_score(data["user_id"], data["score_id"], data.get("score") or {})
        logger.info("AddScore: %s for %s", data["score_id"], data["user_id"])
        return struct_pb2.Struct()

    def ListScores(
        self, request: struct_pb2.Struct, context: grpc.ServicerContext
    ) -> struct_pb2.Struct:
        user_id = from_struct(request).get("user_id", "")
        return to_struct({"documents": self._store.scores(user_id)})

    def WatchScores(
        self, request: struct_pb2.Struct, context: grpc.ServicerContext
    ) -> Iterator[struct_pb2.Struct]:
        """Send the current snapshot, then a new one after every score write."""
        user_id = from_struct(request).get("user_id", "")
        version = self._store.version
        yield to_struct({"documents": self._store.scores(user_id)})
        while context.is_active():
            latest = self._store.wait_for_change(version, _WATCH_POLL_SECONDS)
            if latest != version:
                version = latest
                yield to_struct({"documents": self._store.scores(user_id)})


# ---------------------------------------------------------------------------
# gRPC server
# ---------------------------------------------------------------------------


def build_grpc_server(
    store: InMemoryDocumentStore | None = None,
    address: str = f"0.0.0.0:{MOCK_GRPC_PORT}",
) -> tuple[grpc.Server, int]:
    """Build a DocumentStore server bound to *address*.

    Returns:
        The unstarted server and the port actually bound (useful with
        ``localhost:0``).
    """
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=GRPC_MAX_WORKERS))
    add_DocumentStoreServicer_to_server(
        MockDocumentStoreServicer(store or InMemoryDocumentStore()), server
    )
    port = server.add_insecure_port(address)
    return server, port


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Start the DocumentStore gRPC server and block until Ctrl-C."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    server, port = build_grpc_server()
    server.start()
    logger.info("DocumentStore gRPC server listening on port %d", port)
    logger.info("Start the pairing service with: python main.py")
    try:
        server.wait_for_termination()
    except KeyboardInterrupt:
        logger.info("Shutting down.")
        server.stop(grace=2)


if __name__ == "__main__":
    main()
