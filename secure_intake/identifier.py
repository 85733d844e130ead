# secure_intake/identifier.py
"""
Deterministic request identifiers.

    id = hex(BLAKE3(utf8(compact_json(canonical))))

The serialization keeps mapping insertion order (ordering is the
canonicalizer's job) and does not escape non-ASCII, so the digest matches
the collector's JSON.stringify-based computation.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from .primitives import blake3_digest

ID_HEX_LENGTH = 64


def serialize_canonical(canonical: Mapping[str, Any]) -> bytes:
    """Compact UTF-8 JSON of an already-canonical payload."""
    return json.dumps(
        canonical,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def generate_request_id(canonical: Mapping[str, Any]) -> str:
    """
    Content-address a canonical payload.

    Args:
        canonical: Value returned by the configured canonicalizer

    Returns:
        64-character lowercase hex BLAKE3 digest
    """
    return blake3_digest(serialize_canonical(canonical)).hex()
