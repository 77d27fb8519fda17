"""Deterministic fingerprints for stored transcripts."""
from __future__ import annotations

import base64
import hashlib


def _hash(b: bytes, prefix: str) -> str:
    """Compute truncated SHA-256 hash with base32 encoding."""
    h = hashlib.sha256(b).digest()[:15]
    return prefix + base64.b32encode(h).decode("ascii").lower().rstrip("=")


def content_hash(payload: bytes) -> str:
    """Full SHA-256 of the meaningful payload bytes."""
    return hashlib.sha256(payload).hexdigest()


def record_key(rid: int, created_at: int) -> str:
    """Stable key for a conversation: survives overwrites of the same identifier."""
    return _hash(f"{rid}\x00{created_at}".encode("utf-8"), "r_")
