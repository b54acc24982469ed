"""HTTP/2 frame types, flags, codes and the 9-byte frame header."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

__all__ = [
    "PREFACE",
    "PREFACE_SIZE",
    "FRAME_HEADER_SIZE",
    "HEADER_BUF_SIZE",
    "INITIAL_MAX_FRAME_SIZE",
    "MAX_MAX_FRAME_SIZE",
    "FrameType",
    "Setting",
    "ErrorCode",
    "FrameFlag",
    "StreamState",
    "ConnectionState",
    "FrameHeader",
    "check_preface",
    "settings_ack_frame",
    "ping_ack_frame",
]

PREFACE = b"PRI * HTTP/2.0\r\n\r\nSM\r\n\r\n"
PREFACE_SIZE = 24
FRAME_HEADER_SIZE = 9
HEADER_BUF_SIZE = 8192
INITIAL_MAX_FRAME_SIZE = 16384  # 2**14
MAX_MAX_FRAME_SIZE = 16777215  # 2**24 - 1

_MAX_STREAM_ID = 0x7FFFFFFF
_HEADER = struct.Struct(">BHBBI")


class FrameType(enum.IntEnum):
    DATA = 0x0
    HEADERS = 0x1
    PRIORITY = 0x2
    RST_STREAM = 0x3
    SETTINGS = 0x4
    PUSH_PROMISE = 0x5
    PING = 0x6
    GOAWAY = 0x7
    WINDOW_UPDATE = 0x8
    CONTINUATION = 0x9


class Setting(enum.IntEnum):
    HEADER_TABLE_SIZE = 0x1
    ENABLE_PUSH = 0x2
    MAX_CONCURRENT_STREAMS = 0x3
    INITIAL_WINDOW_SIZE = 0x4
    MAX_FRAME_SIZE = 0x5
    MAX_HEADER_LIST_SIZE = 0x6


class ErrorCode(enum.IntEnum):
    NO_ERROR = 0x0
    PROTOCOL_ERROR = 0x1
    INTERNAL_ERROR = 0x2
    FLOW_CONTROL_ERROR = 0x3
    SETTINGS_TIMEOUT = 0x4
    STREAM_CLOSED = 0x5
    FRAME_SIZE_ERROR = 0x6
    REFUSED_STREAM = 0x7
    CANCEL = 0x8
    COMPRESSION_ERROR = 0x9
    CONNECT_ERROR = 0xA
    ENHANCE_YOUR_CALM = 0xB
    INADEQUATE_SECURITY = 0xC
    HTTP_1_1_REQUIRED = 0xD


class FrameFlag(enum.IntFlag):
    END_STREAM = 0x1
    ACK = 0x1
    END_HEADERS = 0x4
    PADDED = 0x8
    PRIORITY = 0x20


class StreamState(enum.Enum):
    UNKNOWN = enum.auto()
    IDLE = enum.auto()
    OPEN = enum.auto()
    RESERVED_LOCAL = enum.auto()
    RESERVED_REMOTE = enum.auto()
    HALF_CLOSED_REMOTE = enum.auto()
    HALF_CLOSED_LOCAL = enum.auto()
    CLOSED = enum.auto()


class ConnectionState(enum.Enum):
    UNKNOWN = enum.auto()
    CONNECTING = enum.auto()
    PRE_HTTP = enum.auto()
    READ_FRAME_HEADER = enum.auto()
    READ_FRAME = enum.auto()
    CLOSED = enum.auto()


def _frame_type(value):
    try:
        return FrameType(value)
    except ValueError:
        return value


@dataclass
class FrameHeader:
    """The 9-byte header in front of every HTTP/2 frame.

    ``type`` is a :class:`FrameType` when the type is known, else a plain int.
    """

    type: int = FrameType.DATA
    length: int = 0
    flags: int = 0
    stream_id: int = 0

    def pack(self):
        """Encode the header as 9 bytes in network order."""
        if not 0 <= self.length <= MAX_MAX_FRAME_SIZE:
            raise ValueError(f"frame length {self.length} does not fit 24 bits")
        if not 0 <= self.stream_id <= _MAX_STREAM_ID:
            raise ValueError(f"stream id {self.stream_id} does not fit 31 bits")
        if not 0 <= int(self.type) <= 0xFF or not 0 <= int(self.flags) <= 0xFF:
            raise ValueError("frame type and flags must each fit one byte")
        return _HEADER.pack(
            self.length >> 16,
            self.length & 0xFFFF,
            int(self.type),
            int(self.flags),
            self.stream_id,
        )

    @classmethod
    def unpack(cls, data):
        """Decode a header from the first 9 bytes of ``data``.

        The reserved high bit of the stream identifier is ignored.
        """
        raw = bytes(data[:FRAME_HEADER_SIZE])
        if len(raw) < FRAME_HEADER_SIZE:
            raise ValueError(
                f"a frame header needs {FRAME_HEADER_SIZE} bytes, got {len(raw)}"
            )
        high, low, frame_type, flags, stream_id = _HEADER.unpack(raw)
        return cls(
            type=_frame_type(frame_type),
            length=(high << 16) | low,
            flags=flags,
            stream_id=stream_id & _MAX_STREAM_ID,
        )

    def reset(self):
        """Clear every field."""
        self.type = FrameType.DATA
        self.length = 0
        self.flags = 0
        self.stream_id = 0


def check_preface(data):
    """Check the client connection preface at the start of ``data``.

    Returns False while fewer than 24 bytes are present and True when they
    match; raises ValueError naming the first byte that differs.
    """
    head = bytes(data[:PREFACE_SIZE])
    if len(head) < PREFACE_SIZE:
        return False
    for index, (got, want) in enumerate(zip(head, PREFACE)):
        if got != want:
            raise ValueError(f"connection preface mismatch at byte {index}")
    return True


def settings_ack_frame():
    """Return an empty SETTINGS frame with the ACK flag set."""
    return FrameHeader(FrameType.SETTINGS, flags=FrameFlag.ACK).pack()


def ping_ack_frame():
    """Return an empty PING frame with the ACK flag set."""
    return FrameHeader(FrameType.PING, flags=FrameFlag.ACK).pack()