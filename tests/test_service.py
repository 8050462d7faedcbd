"""Tests for PairingServicer (gRPC service layer)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import grpc
import pytest
from google.protobuf import struct_pb2

from conftest import make_items, make_record
from pairing.errors import InsufficientItems
from pairing.models import Category
from pairing.rpc import from_struct, to_struct
from pairing.service import PairingServicer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_context() -> MagicMock:
    """Return a mock gRPC context."""
    ctx = MagicMock()
    ctx.set_code = MagicMock()
    ctx.set_details = MagicMock()
    return ctx


def _make_servicer(next_pair_raises: Exception | None = None) -> PairingServicer:
    animals = make_items(Category.ANIMALS, "a1", "a2", "a3")
    culture = make_items(Category.CULTURE, "c1", "c2")
    session = MagicMock()
    session.catalogue.get_items.side_effect = (
        lambda category: animals if category is Category.ANIMALS else culture
    )
    if next_pair_raises:
        session.next_pair.side_effect = next_pair_raises
    else:
        session.next_pair.return_value = (animals[0], animals[1])
    session.submit_comparison.return_value = make_record("s1")
    return PairingServicer(session)


def _submit_request(**overrides) -> struct_pb2.Struct:
    data = {
        "category": "animals",
        "first_id": "a1",
        "second_id": "a2",
        "slider1": 0.8,
        "slider2": 0.3,
    }
    data.update(overrides)
    return to_struct({k: v for k, v in data.items() if v is not None})


# ---------------------------------------------------------------------------
# SignIn / SignOut tests
# ---------------------------------------------------------------------------


class TestSignIn:
    def test_calls_sign_in(self) -> None:
        servicer = _make_servicer()
        servicer.SignIn(to_struct({"user_id": "u1"}), _make_context())
        servicer._session.sign_in.assert_called_once_with("u1")

    @pytest.mark.parametrize("payload", [{}, {"user_id": ""}, {"user_id": 5}])
    def test_bad_user_id_sets_invalid_argument(self, payload) -> None:
        servicer = _make_servicer()
        ctx = _make_context()
        servicer.SignIn(to_struct(payload), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INVALID_ARGUMENT)
        servicer._session.sign_in.assert_not_called()

    def test_session_error_sets_internal_status(self) -> None:
        servicer = _make_servicer()
        servicer._session.sign_in.side_effect = RuntimeError("pool closed")
        ctx = _make_context()
        servicer.SignIn(to_struct({"user_id": "u1"}), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INTERNAL)


class TestSignOut:
    def test_calls_sign_out(self) -> None:
        servicer = _make_servicer()
        result = servicer.SignOut(struct_pb2.Struct(), _make_context())
        servicer._session.sign_out.assert_called_once()
        assert isinstance(result, struct_pb2.Struct)


# ---------------------------------------------------------------------------
# NextPair tests
# ---------------------------------------------------------------------------


class TestNextPair:
    def test_returns_pair_documents(self) -> None:
        servicer = _make_servicer()
        response = from_struct(servicer.NextPair(struct_pb2.Struct(), _make_context()))
        assert response == {
            "category": "animals",
            "first": {"id": "a1", "url": "https://img/a1.jpg"},
            "second": {"id": "a2", "url": "https://img/a2.jpg"},
        }

    def test_no_category_draws_randomly(self) -> None:
        servicer = _make_servicer()
        servicer.NextPair(struct_pb2.Struct(), _make_context())
        servicer._session.next_pair.assert_called_once_with(None)

    def test_passes_requested_category(self) -> None:
        servicer = _make_servicer()
        servicer.NextPair(to_struct({"category": "culture"}), _make_context())
        servicer._session.next_pair.assert_called_once_with(Category.CULTURE)

    def test_unknown_category_sets_invalid_argument(self) -> None:
        servicer = _make_servicer()
        ctx = _make_context()
        servicer.NextPair(to_struct({"category": "landscapes"}), ctx)
        ctx.set_code.assert_called_with(grpc.StatusCode.INVALID_ARGUMENT)
        servicer._session.next_pair.assert_not_called()

    def test_insufficient_items_sets_failed_precondition(self) -> None:
        servicer = _make_servicer(next_pair_raises=InsufficientItems("animals", 1))
        ctx = _make_context()
        servicer.NextPair(struct_pb2.Struct(), ctx)
        ctx.set_code.assert_called_with(grpc.StatusCode.FAILED_PRECONDITION)

    def test_runtime_error_sets_internal(self) -> None:
        servicer = _make_servicer(next_pair_raises=RuntimeError("crash"))
        ctx = _make_context()
        servicer.NextPair(struct_pb2.Struct(), ctx)
        ctx.set_code.assert_called_with(grpc.StatusCode.INTERNAL)

    def test_slow_response_logs_warning(self) -> None:
        servicer = _make_servicer()
        with patch("pairing.service._NEXT_PAIR_WARN_THRESHOLD_MS", -1):
            with patch("pairing.service.logger") as mock_logger:
                servicer.NextPair(struct_pb2.Struct(), _make_context())
                mock_logger.warning.assert_called_once()


# ---------------------------------------------------------------------------
# SubmitComparison tests
# ---------------------------------------------------------------------------


class TestSubmitComparison:
    def test_calls_session_with_items_and_sliders(self) -> None:
        servicer = _make_servicer()
        servicer.SubmitComparison(_submit_request(), _make_context())
        first, second, slider1, slider2 = servicer._session.submit_comparison.call_args[0]
        assert (first.item_id, second.item_id) == ("a1", "a2")
        assert (slider1, slider2) == (pytest.approx(0.8), pytest.approx(0.3))

    def test_returns_score_document(self) -> None:
        servicer = _make_servicer()
        response = from_struct(servicer.SubmitComparison(_submit_request(), _make_context()))
        assert response["score_id"] == "s1"
        assert response["relational_score"] == pytest.approx(0.5)
        assert response["date"] == "2024-09-19T12:00:00Z"

    @pytest.mark.parametrize("overrides", [
        {"category": None},
        {"category": "landscapes"},
        {"first_id": "zz"},
        {"second_id": "c1"},
        {"slider1": None},
        {"slider2": "high"},
    ])
    def test_bad_request_sets_invalid_argument(self, overrides) -> None:
        servicer = _make_servicer()
        ctx = _make_context()
        servicer.SubmitComparison(_submit_request(**overrides), ctx)
        ctx.set_code.assert_called_with(grpc.StatusCode.INVALID_ARGUMENT)
        servicer._session.submit_comparison.assert_not_called()

    def test_session_value_error_sets_invalid_argument(self) -> None:
        servicer = _make_servicer()
        servicer._session.submit_comparison.side_effect = ValueError("slider1 out of range")
        ctx = _make_context()
        servicer.SubmitComparison(_submit_request(slider1=1.5), ctx)
        ctx.set_code.assert_called_with(grpc.StatusCode.INVALID_ARGUMENT)

    def test_internal_error_sets_internal_status(self) -> None:
        servicer = _make_servicer()
        servicer._session.submit_comparison.side_effect = RuntimeError("crash")
        ctx = _make_context()
        servicer.SubmitComparison(_submit_request(), ctx)
        ctx.set_code.assert_called_with(grpc.StatusCode.INTERNAL)


# ---------------------------------------------------------------------------
# Read tests
# ---------------------------------------------------------------------------


class TestReads:
    def test_list_scores_returns_documents(self) -> None:
        servicer = _make_servicer()
        servicer._session.scores.get_scores.return_value = [make_record("s2"), make_record("s1")]
        response = from_struct(servicer.ListScores(struct_pb2.Struct(), _make_context()))
        assert [d["score_id"] for d in response["documents"]] == ["s2", "s1"]
        assert response["documents"][0]["image1_id"] == "a1"

    def test_get_preferences_returns_snapshot(self) -> None:
        servicer = _make_servicer()
        servicer._session.preferences.snapshot.return_value = {"a1": 0.6}
        response = from_struct(servicer.GetPreferences(struct_pb2.Struct(), _make_context()))
        assert response == {"preferences": {"a1": pytest.approx(0.6)}}
