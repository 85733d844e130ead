# secure_intake/capability.py
"""
Secure Intake: Crypto Capability Detection

State Machine:
    UNINITIALIZED --check()--> CHECKED --reset()--> UNINITIALIZED

check() only probes the basic primitives needed for classical sealing.
The strong-suite module is never loaded here; the first real seal
loads it. strong_suite_usable starts False and is promoted by
upgrade() once the policy engine has sealed with the strong suite.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Callable, List, Optional, Tuple

from .primitives import probe_primitives

logger = logging.getLogger(__name__)

Probe = Callable[[], Tuple[bool, List[str]]]


@dataclass(frozen=True)
class CryptoCapability:
    """
    Result of a capability check.

    Attributes:
        available: Classical suite can run
        strong_suite_usable: Strong suite has been exercised successfully
        diagnostic: "Missing: ..." when unavailable, else None
    """
    available: bool
    strong_suite_usable: bool = False
    diagnostic: Optional[str] = None


class DetectorState(Enum):
    UNINITIALIZED = auto()
    CHECKED = auto()


class CapabilityDetector:
    """Process-scoped capability cache with explicit reset."""

    def __init__(self, probe: Optional[Probe] = None):
        self._probe = probe or probe_primitives
        self._cached: Optional[CryptoCapability] = None
        self._strong_usable = False

    @property
    def state(self) -> DetectorState:
        if self._cached is None:
            return DetectorState.UNINITIALIZED
        return DetectorState.CHECKED

    def check(self, force: bool = False) -> CryptoCapability:
        """
        Return the cached capability, probing when forced or uninitialized.

        A forced re-check recomputes `available` but keeps an earlier
        strong-suite promotion; only reset() forgets it.
        """
        if self._cached is not None and not force:
            return self._cached

        ok, missing = self._probe()
        diagnostic = None if ok else f"Missing: {', '.join(missing)}"
        if not ok:
            logger.warning("Crypto capability check failed: %s", diagnostic)

        self._cached = CryptoCapability(
            available=ok,
            strong_suite_usable=self._strong_usable,
            diagnostic=diagnostic,
        )
        return self._cached

    def upgrade(self) -> None:
        """One-way promotion after a successful strong-suite seal. Idempotent."""
        if self._strong_usable:
            return
        self._strong_usable = True
        if self._cached is not None:
            self._cached = replace(self._cached, strong_suite_usable=True)
        logger.debug("Strong suite marked usable")

    def reset(self) -> None:
        self._cached = None
        self._strong_usable = False
