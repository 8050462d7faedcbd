"""gRPC plumbing for services whose messages are ``google.protobuf.Struct``.

Both the document store and the pairing service exchange schemaless
documents, so their stubs and servicers are assembled here from generic
method handlers instead of generated code.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import grpc
from google.protobuf import json_format, struct_pb2
from google.protobuf.timestamp_pb2 import Timestamp


def to_struct(data: dict[str, Any]) -> struct_pb2.Struct:
    """Convert a JSON-compatible dict into a ``Struct`` message."""
    msg = struct_pb2.Struct()
    json_format.ParseDict(data, msg)
    return msg


def from_struct(msg: struct_pb2.Struct) -> dict[str, Any]:
    """Convert a ``Struct`` message back into a plain dict.

    Numbers always come back as ``float``.
    """
    return json_format.MessageToDict(msg)


def unary_method(
    channel: grpc.Channel, service: str, method: str
) -> grpc.UnaryUnaryMultiCallable:
    """Return a unary-unary callable for ``/{service}/{method}``."""
    return channel.unary_unary(
        f"/{service}/{method}",
        request_serializer=struct_pb2.Struct.SerializeToString,
        response_deserializer=struct_pb2.Struct.FromString,
    )


def stream_method(
    channel: grpc.Channel, service: str, method: str
) -> grpc.UnaryStreamMultiCallable:
    """Return a unary-stream callable for ``/{service}/{method}``."""
    return channel.unary_stream(
        f"/{service}/{method}",
        request_serializer=struct_pb2.Struct.SerializeToString,
        response_deserializer=struct_pb2.Struct.FromString,
    )


def add_struct_service_to_server(
    server: grpc.Server,
    service: str,
    servicer: Any,
    unary_methods: Iterable[str],
    stream_methods: Iterable[str] = (),
) -> None:
    """Register *servicer*'s methods on *server* under *service*.

    Each named method must exist on *servicer* with the usual
    ``(request, context)`` signature.
    """
    handlers: dict[str, grpc.RpcMethodHandler] = {}
    for name in unary_methods:
        handlers[name] = grpc.unary_unary_rpc_method_handler(
            _bound(servicer, name),
            request_deserializer=struct_pb2.Struct.FromString,
            response_serializer=struct_pb2.Struct.SerializeToString,
        )
    for name in stream_methods:
        handlers[name] = grpc.unary_stream_rpc_method_handler(
            _bound(servicer, name),
            request_deserializer=struct_pb2.Struct.FromString,
            response_serializer=struct_pb2.Struct.SerializeToString,
        )
    server.add_generic_rpc_handlers(
        (grpc.method_handlers_generic_handler(service, handlers),)
    )


def _bound(servicer: Any, name: str) -> Callable[..., Any]:
    method = getattr(servicer, name, None)
    if method is None:
        raise TypeError(f"{type(servicer).__name__} does not implement {name}")
    return method


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def datetime_to_json(dt: datetime) -> str:
    """Render *dt* as an RFC 3339 string via ``google.protobuf.Timestamp``.

    Naive datetimes are assumed UTC.
    """
    ts = Timestamp()
    ts.FromDatetime(dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc))
    return ts.ToJsonString()


def json_to_datetime(value: str) -> datetime:
    """Parse an RFC 3339 string into a UTC-aware ``datetime``.

    Raises:
        ValueError: If *value* is not a valid timestamp.
    """
    ts = Timestamp()
    ts.FromJsonString(value)
    return ts.ToDatetime(tzinfo=timezone.utc)
