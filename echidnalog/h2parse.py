"""Decoders for HTTP/2 control-frame payloads and gRPC message framing."""

from __future__ import annotations

import struct
from collections import namedtuple

from echidnalog.h2frames import INITIAL_MAX_FRAME_SIZE, ErrorCode, Setting

__all__ = [
    "parse_settings",
    "parse_goaway",
    "parse_window_update",
    "grpc_message",
    "parse_grpc_prefix",
]

_SETTING = struct.Struct(">HI")
_GOAWAY = struct.Struct(">II")
_UINT32 = struct.Struct(">I")
_GRPC_PREFIX = struct.Struct(">BI")

_RESERVED_MASK = 0x7FFFFFFF
_GOAWAY_MESSAGE_LIMIT = 1024

_GoAway = namedtuple("GoAway", "last_stream_id error_code message")
_GrpcPrefix = namedtuple("GrpcPrefix", "compressed length")


def _known(enum_type, value):
    try:
        return enum_type(value)
    except ValueError:
        return value


def parse_settings(payload):
    """Decode a SETTINGS payload into a list of ``(identifier, value)`` pairs.

    Known identifiers are returned as :class:`Setting` members. Raises
    ValueError if the payload is not a whole number of 6-byte entries.
    """
    raw = bytes(payload)
    if len(raw) % _SETTING.size:
        raise ValueError(
            f"settings payload length {len(raw)} is not a multiple of {_SETTING.size}"
        )
    return [
        (_known(Setting, identifier), value)
        for identifier, value in _SETTING.iter_unpack(raw)
    ]


def parse_goaway(payload):
    """Decode a GOAWAY payload.

    Returns ``(last_stream_id, error_code, message)``; the reserved bit of
    the stream id is ignored, a known error code is an :class:`ErrorCode`,
    and at most 1024 bytes of debug data are kept.
    """
    raw = bytes(payload)
    if len(raw) < _GOAWAY.size:
        raise ValueError(f"goaway payload needs {_GOAWAY.size} bytes, got {len(raw)}")
    stream_id, error_code = _GOAWAY.unpack_from(raw)
    message = raw[_GOAWAY.size:_GOAWAY.size + _GOAWAY_MESSAGE_LIMIT]
    return _GoAway(stream_id & _RESERVED_MASK, _known(ErrorCode, error_code), message)


def parse_window_update(payload):
    """Decode a WINDOW_UPDATE payload into its window size increment."""
    raw = bytes(payload)
    if len(raw) != _UINT32.size:
        raise ValueError(f"window update payload must be 4 bytes, got {len(raw)}")
    (increment,) = _UINT32.unpack(raw)
    return increment & _RESERVED_MASK


def grpc_message(payload):
    """Frame ``payload`` as an uncompressed gRPC message.

    The result must fit one DATA frame of the initial maximum frame size.
    """
    raw = bytes(payload)
    if len(raw) + _GRPC_PREFIX.size >= INITIAL_MAX_FRAME_SIZE:
        raise ValueError(f"grpc message of {len(raw)} bytes does not fit one frame")
    return _GRPC_PREFIX.pack(0, len(raw)) + raw


def parse_grpc_prefix(data):
    """Decode the 5-byte gRPC prefix into ``(compressed, length)``."""
    raw = bytes(data[:_GRPC_PREFIX.size])
    if len(raw) < _GRPC_PREFIX.size:
        raise ValueError(
            f"a grpc prefix needs {_GRPC_PREFIX.size} bytes, got {len(raw)}"
        )
    flag, length = _GRPC_PREFIX.unpack(raw)
    return _GrpcPrefix(flag != 0, length)