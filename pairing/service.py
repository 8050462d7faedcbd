"""gRPC servicer: the entry point for all inbound calls from the presentation layer."""

from __future__ import annotations

import logging
import time
from typing import Any

import grpc
from google.protobuf import struct_pb2

from pairing.docstore import score_record_to_document
from pairing.errors import InsufficientItems
from pairing.models import Category, Item
from pairing.rpc import add_struct_service_to_server, from_struct, to_struct
from pairing.session import Session

logger = logging.getLogger(__name__)

SERVICE_NAME = "pairing.PairingService"
UNARY_METHODS = (
    "SignIn",
    "SignOut",
    "NextPair",
    "SubmitComparison",
    "ListScores",
    "GetPreferences",
)

_NEXT_PAIR_WARN_THRESHOLD_MS = 50


def add_PairingServicer_to_server(servicer: "PairingServicer", server: grpc.Server) -> None:
    add_struct_service_to_server(server, SERVICE_NAME, servicer, UNARY_METHODS)


class PairingServicer:
    """Implements ``pairing.PairingService`` on top of a :class:`Session`.

    Every request and response is a ``google.protobuf.Struct``. Failures are
    reported through the gRPC status; the session is never left in a
    half-updated state by a failed call.

    Args:
        session: The :class:`~pairing.session.Session` to serve.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def SignIn(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Switch the session to ``user_id``.

        Args:
            request: ``{user_id}``.
            context: gRPC service context.

        Returns:
            Empty ``Struct``.
        """
        user_id = from_struct(request).get("user_id")
        if not isinstance(user_id, str) or not user_id:
            context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
            context.set_details("user_id must be a non-empty string")
            return struct_pb2.Struct()
        try:
            self._session.sign_in(user_id)
        except Exception:
            logger.exception("Error signing in user=%r", user_id)
            context.set_code(grpc.StatusCode.INTERNAL)
            context.set_details("Internal error signing in.")
        return struct_pb2.Struct()

    def SignOut(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        try:
            self._session.sign_out()
        except Exception:
            logger.exception("Error signing out")
            context.set_code(grpc.StatusCode.INTERNAL)
            context.set_details("Internal error signing out.")
        return struct_pb2.Struct()

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def NextPair(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Return the next pair to display.

        Args:
            request: ``{}`` or ``{category}`` to restrict the draw.
            context: gRPC service context.

        Returns:
            ``{category, first: {id, url}, second: {id, url}}``. On
            ``FAILED_PRECONDITION`` no pair is available yet.
        """
        try:
            category = _parse_category(from_struct(request).get("category"))
        except ValueError as exc:
            context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
            context.set_details(str(exc))
            return struct_pb2.Struct()

        start_ms = time.monotonic() * 1000
        try:
            first, second = self._session.next_pair(category)
        except InsufficientItems as exc:
            context.set_code(grpc.StatusCode.FAILED_PRECONDITION)
            context.set_details(str(exc))
            return struct_pb2.Struct()
        except Exception:
            logger.exception("Unexpected error selecting next pair")
            context.set_code(grpc.StatusCode.INTERNAL)
            context.set_details("Internal error selecting next pair.")
            return struct_pb2.Struct()
        finally:
            elapsed_ms = time.monotonic() * 1000 - start_ms
            if elapsed_ms > _NEXT_PAIR_WARN_THRESHOLD_MS:
                logger.warning("NextPair took %.1fms", elapsed_ms)

        return to_struct(
            {
                "category": first.category.value,
                "first": _item_to_document(first),
                "second": _item_to_document(second),
            }
        )

    def SubmitComparison(
        self, request: struct_pb2.Struct, context: Any
    ) -> struct_pb2.Struct:
        """Record a completed round.

        Args:
            request: ``{category, first_id, second_id, slider1, slider2}``.
            context: gRPC service context.

        Returns:
            The stored score document, including ``score_id``.
        """
        data = from_struct(request)
        try:
            category = _parse_category(data.get("category"))
            if category is None:
                raise ValueError("category is required")
            first = self._find_item(category, data.get("first_id"))
            second = self._find_item(category, data.get("second_id"))
            slider1 = _parse_slider(data, "slider1")
            slider2 = _parse_slider(data, "slider2")
            record = self._session.submit_comparison(first, second, slider1, slider2)
        except ValueError as exc:
            context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
            context.set_details(str(exc))
            return struct_pb2.Struct()
        except Exception:
            logger.exception("Error recording comparison %r", data)
            context.set_code(grpc.StatusCode.INTERNAL)
            context.set_details("Internal error recording comparison.")
            return struct_pb2.Struct()

        document = score_record_to_document(record)
        document["score_id"] = record.score_id
        return to_struct(document)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def ListScores(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Return the materialised scores, most recent first."""
        documents = []
        for record in self._session.scores.get_scores():
            document = score_record_to_document(record)
            document["score_id"] = record.score_id
            documents.append(document)
        return to_struct({"documents": documents})

    def GetPreferences(
        self, request: struct_pb2.Struct, context: Any
    ) -> struct_pb2.Struct:
        return to_struct({"preferences": self._session.preferences.snapshot()})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_item(self, category: Category, item_id: Any) -> Item:
        if not isinstance(item_id, str):
            raise ValueError("item ids must be strings")
        for item in self._session.catalogue.get_items(category):
            if item.item_id == item_id:
                return item
        raise ValueError(f"unknown {category.value} item {item_id!r}")


def _parse_category(value: Any) -> Category | None:
    if value is None or value == "":
        return None
    try:
        return Category(value)
    except ValueError:
        raise ValueError(f"unknown category {value!r}") from None


def _parse_slider(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _item_to_document(item: Item) -> dict[str, str]:
    return {"id": item.item_id, "url": item.url}
