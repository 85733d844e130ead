# secure_intake/pending.py
"""
Secure Intake: Pending-Submission Tracking

Idempotency for retry-without-duplication. One PendingSubmission per
storage key (last-write-wins):

    {"id": "<64 hex>", "ts": <created-at millis>}

The record is written strictly before the network call, cleared on
definitive success or client-side rejection, and left in place on
server/network failure so a manual resubmission of the same payload is
recognized as a retry.

Storage is best-effort: a failing backend degrades to "no retry
detection" and never fails the submission.

Known limitation: two submissions racing on one context overwrite each
other's record (last write wins). Form submissions are human-paced.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from .config import DEFAULT_PENDING_TTL_MS, DEFAULT_STORAGE_KEY

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    return time.time() * 1000.0


# =============================================================================
# Scoped storage backends
# =============================================================================

class ScopedStorage(ABC):
    """Session-lifetime string key/value storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class MemoryStorage(ScopedStorage):
    """In-process storage; lives as long as the context that owns it."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JSONFileStorage(ScopedStorage):
    """
    Storage backed by one JSON object file, so a pending record survives a
    process restart mid-flight.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        with open(self._path, encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        tmp.replace(self._path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


# =============================================================================
# PendingStore
# =============================================================================

@dataclass(frozen=True)
class PendingSubmission:
    id: str
    ts: float

    def to_json(self) -> str:
        return json.dumps({"id": self.id, "ts": self.ts})

    @classmethod
    def from_json(cls, raw: str) -> "PendingSubmission":
        data = json.loads(raw)
        return cls(id=str(data["id"]), ts=float(data["ts"]))


class PendingStore:
    """Tracks at most one outstanding submission identifier per key."""

    def __init__(
        self,
        storage: Optional[ScopedStorage] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self._clock = clock or wall_clock_ms

    def get_pending_identifier(
        self,
        key: str = DEFAULT_STORAGE_KEY,
        ttl_ms: float = DEFAULT_PENDING_TTL_MS,
    ) -> Optional[str]:
        """Pending identifier, or None if absent, unreadable or expired."""
        try:
            raw = self.storage.get(key)
            if not raw:
                return None
            pending = PendingSubmission.from_json(raw)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Pending record unreadable, ignoring: %s", e)
            return None

        if self._clock() - pending.ts > ttl_ms:
            self.clear(key)
            return None
        return pending.id

    def set_pending_identifier(self, identifier: str, key: str = DEFAULT_STORAGE_KEY) -> None:
        """Unconditional overwrite; storage failures are logged and ignored."""
        record = PendingSubmission(id=identifier, ts=self._clock())
        try:
            self.storage.set(key, record.to_json())
        except Exception as e:
            logger.warning("Could not persist pending submission: %s", e)

    def clear(self, key: str = DEFAULT_STORAGE_KEY) -> None:
        try:
            self.storage.delete(key)
        except Exception as e:
            logger.warning("Could not clear pending submission: %s", e)

    def is_retry(self, identifier: str, key: str, ttl_ms: float) -> bool:
        return self.get_pending_identifier(key, ttl_ms) == identifier
