"""Chat Core - record codec, format constants and error taxonomy."""
from .codec import (
    Content,
    Header,
    decode_header,
    decode_record,
    encode_header,
    encode_record,
    record_len,
    record_offset,
)
from .errors import FormatError, NotFoundError, StorageIOError, StoreError, ValidationError
from .ids import content_hash, record_key

__all__ = [
    "Content",
    "Header",
    "decode_header",
    "decode_record",
    "encode_header",
    "encode_record",
    "record_len",
    "record_offset",
    "FormatError",
    "NotFoundError",
    "StorageIOError",
    "StoreError",
    "ValidationError",
    "content_hash",
    "record_key",
]
