# secure_intake/policy.py
"""
Secure Intake: Seal Policy / Decision Engine

State Machine:
    NOT_ATTEMPTED -> ATTEMPTING_STRONG -> SEALED_STRONG
                                       -> DOWNGRADING -> SEALED_CLASSICAL
                                       -> REJECTED
    NOT_ATTEMPTED -> SEALED_CLASSICAL          (attempt_strong_suite=False)

Strict mode (require_strong_suite=True) fails closed: no envelope, no
downgrade event. Best-effort mode classifies the failure into a closed set
of reason codes and seals classically. The DowngradeEvent travels on the
returned SealOutcome; raw error text is attached only with debug_downgrade.

Reason classification (first match wins, case-insensitive):
    module_blocked      policy / sandbox hints
    module_load_failed  import / load hints
    suite_unavailable   unavailability hints
    encapsulation_failed  KEM / encryption hints
    unknown
"""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional, Tuple

from .capability import CapabilityDetector
from .config import HybridPublicKeys
from .envelope import SUITE_CLASSICAL, HybridEnvelope, seal_classical, seal_hybrid
from .errors import StrictModeRejection, StrongSuiteError
from .strong_suite import StrongSuiteLoader

logger = logging.getLogger(__name__)

DOWNGRADE_EVENT_NAME = "secure_intake.crypto.downgrade"


# =============================================================================
# Reasons
# =============================================================================

class DowngradeReason(str, Enum):
    MODULE_BLOCKED = "module_blocked"
    MODULE_LOAD_FAILED = "module_load_failed"
    SUITE_UNAVAILABLE = "suite_unavailable"
    ENCAPSULATION_FAILED = "encapsulation_failed"
    UNKNOWN = "unknown"


_REASON_HINTS: Tuple[Tuple[DowngradeReason, Tuple[str, ...]], ...] = (
    (DowngradeReason.MODULE_BLOCKED, (
        "content security policy", "content-security-policy", "csp",
        "blocked", "sandbox", "not permitted", "permission denied",
    )),
    (DowngradeReason.MODULE_LOAD_FAILED, (
        "failed to load", "could not load", "cannot load", "no module named",
        "importerror", "modulenotfounderror", "cannot import", "import of",
        "cannot open shared object", "dlopen",
    )),
    (DowngradeReason.SUITE_UNAVAILABLE, (
        "unavailable", "not available", "not enabled", "unsupported", "not supported",
    )),
    (DowngradeReason.ENCAPSULATION_FAILED, (
        "encaps", "encrypt", "kem", "ciphertext",
    )),
)


def classify_failure(message: str) -> DowngradeReason:
    """Map an opaque strong-suite failure message to a reason code."""
    text = (message or "").lower()
    for reason, hints in _REASON_HINTS:
        if any(hint in text for hint in hints):
            return reason
    return DowngradeReason.UNKNOWN


# =============================================================================
# Events / Outcomes
# =============================================================================

@dataclass(frozen=True)
class DowngradeEvent:
    """
    Structured downgrade notice. Safe to forward to telemetry: `reason` is
    a closed enum and `raw_error` is only present in debug mode.
    """
    reason: DowngradeReason
    suite: str = SUITE_CLASSICAL
    runtime: Optional[str] = None
    policy_hint: Optional[str] = None
    raw_error: Optional[str] = None
    event: str = DOWNGRADE_EVENT_NAME
    pqc_used: bool = False
    require_strong_suite: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "event": self.event,
            "reason": self.reason.value,
            "suite": self.suite,
            "pqcUsed": self.pqc_used,
            "requireStrongSuite": self.require_strong_suite,
        }
        if self.runtime:
            data["runtime"] = self.runtime
        if self.policy_hint:
            data["policyHint"] = self.policy_hint
        if self.raw_error is not None:
            data["rawError"] = self.raw_error
        return data


class SealState(Enum):
    NOT_ATTEMPTED = auto()
    ATTEMPTING_STRONG = auto()
    DOWNGRADING = auto()
    SEALED_STRONG = auto()
    SEALED_CLASSICAL = auto()
    REJECTED = auto()


@dataclass
class SealOutcome:
    envelope: HybridEnvelope
    pqc_used: bool
    state: SealState
    downgrade: Optional[DowngradeEvent] = None


def _runtime_hint() -> str:
    return f"{platform.python_implementation()} {platform.python_version()}"


# =============================================================================
# SealPolicy
# =============================================================================

@dataclass
class SealPolicy:
    """
    Decides the seal strategy for one submission.

    Attributes:
        require_strong_suite: Fail closed when the strong suite fails
        attempt_strong_suite: False skips the strong suite without loading it
        debug_downgrade: Attach raw error text to downgrade events
    """
    require_strong_suite: bool = False
    attempt_strong_suite: bool = True
    debug_downgrade: bool = False
    state: SealState = field(default=SealState.NOT_ATTEMPTED, init=False)

    def seal(
        self,
        plaintext: bytes,
        public_keys: HybridPublicKeys,
        loader: StrongSuiteLoader,
        capability: CapabilityDetector,
        sender_name: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> SealOutcome:
        """
        Seal plaintext according to policy.

        Raises:
            StrictModeRejection: Strict mode and the strong suite failed or
                was disabled
            InvalidKeyError: Malformed classical recipient key
        """
        strict = self.require_strong_suite is True

        if not self.attempt_strong_suite:
            if strict:
                self.state = SealState.REJECTED
                raise StrictModeRejection("strong suite disabled by configuration")
            envelope = seal_classical(plaintext, public_keys.classical, sender_name, sender_id)
            self.state = SealState.SEALED_CLASSICAL
            return SealOutcome(envelope=envelope, pqc_used=False, state=self.state)

        self.state = SealState.ATTEMPTING_STRONG
        try:
            suite = loader.load()
            envelope = seal_hybrid(
                plaintext,
                public_keys.classical,
                public_keys.strong,
                suite,
                sender_name,
                sender_id,
            )
        except StrongSuiteError as e:
            return self._on_strong_failure(str(e), plaintext, public_keys, sender_name, sender_id)

        capability.upgrade()
        self.state = SealState.SEALED_STRONG
        return SealOutcome(envelope=envelope, pqc_used=True, state=self.state)

    def _on_strong_failure(
        self,
        message: str,
        plaintext: bytes,
        public_keys: HybridPublicKeys,
        sender_name: Optional[str],
        sender_id: Optional[str],
    ) -> SealOutcome:
        if self.require_strong_suite is True:
            self.state = SealState.REJECTED
            logger.warning("Strong suite failed in strict mode; submission rejected")
            logger.debug("Strong suite failure: %s", message)
            raise StrictModeRejection(message)

        self.state = SealState.DOWNGRADING
        reason = classify_failure(message)
        event = DowngradeEvent(
            reason=reason,
            runtime=_runtime_hint(),
            policy_hint=(
                "strong-suite module load was blocked; set attempt_strong_suite=False "
                "to skip it" if reason is DowngradeReason.MODULE_BLOCKED else None
            ),
            raw_error=message if self.debug_downgrade else None,
        )
        envelope = seal_classical(plaintext, public_keys.classical, sender_name, sender_id)
        self.state = SealState.SEALED_CLASSICAL
        return SealOutcome(envelope=envelope, pqc_used=False, state=self.state, downgrade=event)
