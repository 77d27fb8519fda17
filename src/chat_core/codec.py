"""Fixed-width encode/decode for the chat store header and content records.

No I/O lives here. Every function maps bytes <-> values and nothing else.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass

from .errors import FormatError, ValidationError
from .protocol import (
    HEADER_FMT,
    HEADER_LEN,
    MAGIC_CHAT_FILE,
    MAXIMUM_MESSAGE_SIZE,
    REC_HEADER_FMT,
    REC_HEADER_LEN,
    VERSION,
)

# Length is stored as u16, so no capacity may exceed it.
_MAX_LENGTH_FIELD = 0xFFFF


@dataclass(frozen=True)
class Header:
    magic: bytes = MAGIC_CHAT_FILE
    version: int = VERSION
    record: int = 0
    count: int = 0

    def next_id(self) -> int:
        """Identifier handed out by the next allocation request."""
        return self.count + 1


@dataclass(frozen=True)
class Content:
    """One transcript snapshot. Only the meaningful payload bytes are kept."""

    id: int = 0
    created_at: int = 0
    updated_at: int = 0
    content: bytes = b""

    @property
    def length(self) -> int:
        return len(self.content)


def record_len(capacity: int = MAXIMUM_MESSAGE_SIZE) -> int:
    return REC_HEADER_LEN + capacity


def record_offset(rid: int, capacity: int = MAXIMUM_MESSAGE_SIZE) -> int:
    """Strict offset math: HEADER_LEN + id * RECORD_LEN."""
    return HEADER_LEN + rid * record_len(capacity)


def encode_header(h: Header) -> bytes:
    try:
        return struct.pack(HEADER_FMT, h.magic, h.version, h.record, h.count)
    except struct.error as e:
        raise ValidationError(f"Header field out of range: {e}") from e


def decode_header(b: bytes) -> Header:
    if len(b) < HEADER_LEN:
        raise FormatError(f"Truncated header ({len(b)} < {HEADER_LEN} bytes)")

    magic, ver, record, count = struct.unpack(HEADER_FMT, b[:HEADER_LEN])
    if magic != MAGIC_CHAT_FILE:
        raise FormatError(f"Invalid file magic {magic!r}")
    if ver != VERSION:
        raise FormatError(f"Unsupported version {int(ver)}")

    return Header(magic=magic, version=int(ver), record=int(record), count=int(count))


def encode_record(c: Content, capacity: int = MAXIMUM_MESSAGE_SIZE) -> bytes:
    if capacity > _MAX_LENGTH_FIELD:
        raise ValidationError(f"Capacity {capacity} does not fit the u16 length field")
    if c.length > capacity:
        raise ValidationError(f"Content length {c.length} exceeds capacity {capacity}")

    try:
        header = struct.pack(REC_HEADER_FMT, c.id, c.created_at, c.updated_at, c.length)
    except struct.error as e:
        raise ValidationError(f"Record field out of range: {e}") from e

    return header + c.content.ljust(capacity, b"\x00")


def decode_record(b: bytes, capacity: int = MAXIMUM_MESSAGE_SIZE) -> Content:
    need = record_len(capacity)
    if len(b) < need:
        raise FormatError(f"Truncated record ({len(b)} < {need} bytes)")

    rid, created, updated, dlen = struct.unpack(REC_HEADER_FMT, b[:REC_HEADER_LEN])

    # Never trust the stored length past the payload window.
    if dlen > capacity:
        raise FormatError(f"Record {int(rid)} length {int(dlen)} exceeds capacity {capacity}")

    payload = b[REC_HEADER_LEN:REC_HEADER_LEN + dlen]
    return Content(id=int(rid), created_at=int(created), updated_at=int(updated), content=bytes(payload))
