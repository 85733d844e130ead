# secure_intake/normalize.py
"""
Normalization helpers for canonicalizers.

A canonicalizer is any callable mapping a raw payload to an ordered mapping
whose compact JSON serialization is byte-identical for semantically equal
input. The core never re-normalizes; these helpers are for the functions
callers pass as `canonicalize`.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, List, Mapping

Canonicalizer = Callable[[Any], Mapping[str, Any]]

_LINE_ENDINGS = re.compile(r"\r\n?")


def normalize_multiline(s: str) -> str:
    """Trim and collapse CRLF / CR line endings to LF."""
    return _LINE_ENDINGS.sub("\n", s.strip())


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_string_array(items: Iterable[str]) -> List[str]:
    """Sorted copy; input order is incidental."""
    return sorted(items)
