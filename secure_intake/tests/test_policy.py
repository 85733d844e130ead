# secure_intake/tests/test_policy.py
"""
Seal policy: strict mode, best-effort downgrade, reason classification.

Run: pytest secure_intake/tests/test_policy.py -v
"""

from dataclasses import replace

import pytest

from ..capability import CapabilityDetector
from ..config import HybridPublicKeys
from ..envelope import SUITE_CLASSICAL, SUITE_HYBRID, open_envelope
from ..errors import InvalidKeyError, ModuleUnavailableError, StrictModeRejection
from ..policy import (
    DOWNGRADE_EVENT_NAME,
    DowngradeReason,
    SealPolicy,
    SealState,
    classify_failure,
)
from ..strong_suite import StrongSuiteLoader
from .fakes import FailingKem, StandInKem, failing_factory, make_recipient_keys, ok_probe

PLAINTEXT = b'{"note":"hi"}'


def _seal(policy, loader, detector=None, keys=None):
    keys = keys or make_recipient_keys()
    detector = detector or CapabilityDetector(probe=ok_probe)
    return policy.seal(PLAINTEXT, keys.public, loader, detector)


# =============================================================================
# classify_failure
# =============================================================================

@pytest.mark.parametrize("message, reason", [
    ("Refused to load: violates Content Security Policy", DowngradeReason.MODULE_BLOCKED),
    ("operation not permitted in sandbox", DowngradeReason.MODULE_BLOCKED),
    ("Hybrid encryption unavailable: strong-suite module failed to load "
     "(ModuleNotFoundError: No module named 'oqs')", DowngradeReason.MODULE_LOAD_FAILED),
    ("dlopen(liboqs.so) returned NULL", DowngradeReason.MODULE_LOAD_FAILED),
    ("ML-KEM-768 is not available in this liboqs build", DowngradeReason.SUITE_UNAVAILABLE),
    ("mechanism unsupported", DowngradeReason.SUITE_UNAVAILABLE),
    ("ML-KEM-768 encapsulation failed: bad length", DowngradeReason.ENCAPSULATION_FAILED),
    ("kem ciphertext mismatch", DowngradeReason.ENCAPSULATION_FAILED),
    ("ML-KEM-768 encapsulation failed: invalid payload length", DowngradeReason.ENCAPSULATION_FAILED),
    ("kem download of important parameters aborted", DowngradeReason.ENCAPSULATION_FAILED),
    ("ImportError: cannot import name 'KeyEncapsulation'", DowngradeReason.MODULE_LOAD_FAILED),
    ("something odd happened", DowngradeReason.UNKNOWN),
    ("", DowngradeReason.UNKNOWN),
])
def test_classify_failure(message, reason):
    assert classify_failure(message) is reason


def test_classify_priority_blocked_beats_load():
    assert classify_failure("import blocked by policy") is DowngradeReason.MODULE_BLOCKED


def test_classify_priority_load_beats_unavailable():
    msg = "Hybrid encryption unavailable: module failed to load"
    assert classify_failure(msg) is DowngradeReason.MODULE_LOAD_FAILED


def test_classify_is_case_insensitive():
    assert classify_failure("BLOCKED") is DowngradeReason.MODULE_BLOCKED


# =============================================================================
# Strong path
# =============================================================================

def test_strong_success():
    keys = make_recipient_keys()
    kem = StandInKem()
    policy = SealPolicy()
    outcome = _seal(policy, StrongSuiteLoader(factory=lambda: kem), keys=keys)

    assert outcome.pqc_used is True
    assert outcome.downgrade is None
    assert outcome.state is SealState.SEALED_STRONG
    assert policy.state is SealState.SEALED_STRONG
    assert outcome.envelope.suite == SUITE_HYBRID
    assert open_envelope(outcome.envelope, keys.classical_secret_hex, keys.strong_secret, kem) == PLAINTEXT


def test_strong_success_upgrades_capability():
    detector = CapabilityDetector(probe=ok_probe)
    assert detector.check().strong_suite_usable is False

    _seal(SealPolicy(), StrongSuiteLoader(factory=StandInKem), detector=detector)
    assert detector.check().strong_suite_usable is True


def test_loader_is_reused_across_seals():
    loader = StrongSuiteLoader(factory=StandInKem)
    _seal(SealPolicy(), loader)
    _seal(SealPolicy(), loader)
    assert loader.load_attempts == 1


# =============================================================================
# Strict mode
# =============================================================================

def test_strict_load_failure_rejects():
    policy = SealPolicy(require_strong_suite=True)
    loader = StrongSuiteLoader(factory=failing_factory(ImportError("No module named 'oqs'")))

    with pytest.raises(StrictModeRejection) as exc:
        _seal(policy, loader)

    message = str(exc.value)
    assert "Post-quantum" in message
    assert "strict hybrid mode" in message
    assert policy.state is SealState.REJECTED


def test_strict_encapsulation_failure_rejects():
    policy = SealPolicy(require_strong_suite=True)
    with pytest.raises(StrictModeRejection):
        _seal(policy, StrongSuiteLoader(factory=FailingKem))


def test_strict_with_strong_suite_disabled_rejects_without_loading():
    policy = SealPolicy(require_strong_suite=True, attempt_strong_suite=False)
    loader = StrongSuiteLoader(factory=StandInKem)

    with pytest.raises(StrictModeRejection):
        _seal(policy, loader)
    assert loader.load_attempts == 0


def test_strict_success_is_plain_strong_seal():
    outcome = _seal(SealPolicy(require_strong_suite=True), StrongSuiteLoader(factory=StandInKem))
    assert outcome.pqc_used is True


# =============================================================================
# Best-effort downgrade
# =============================================================================

def test_downgrade_on_load_failure():
    keys = make_recipient_keys()
    policy = SealPolicy()
    loader = StrongSuiteLoader(factory=failing_factory(ImportError("No module named 'oqs'")))
    outcome = _seal(policy, loader, keys=keys)

    assert outcome.pqc_used is False
    assert outcome.state is SealState.SEALED_CLASSICAL
    assert outcome.envelope.suite == SUITE_CLASSICAL
    assert outcome.envelope.kyber_kem_ct == ""
    assert open_envelope(outcome.envelope, keys.classical_secret_hex) == PLAINTEXT

    event = outcome.downgrade
    assert event.reason is DowngradeReason.MODULE_LOAD_FAILED
    assert event.event == DOWNGRADE_EVENT_NAME
    assert event.suite == SUITE_CLASSICAL
    assert event.pqc_used is False
    assert event.require_strong_suite is False
    assert event.raw_error is None


def test_downgrade_on_encapsulation_failure():
    outcome = _seal(SealPolicy(), StrongSuiteLoader(factory=FailingKem))
    assert outcome.downgrade.reason is DowngradeReason.ENCAPSULATION_FAILED


def test_downgrade_on_missing_mechanism():
    loader = StrongSuiteLoader(
        factory=failing_factory(ModuleUnavailableError("ML-KEM-768 is not available in this liboqs build"))
    )
    outcome = _seal(SealPolicy(), loader)
    assert outcome.downgrade.reason is DowngradeReason.SUITE_UNAVAILABLE


def test_downgrade_event_dict_omits_raw_error():
    outcome = _seal(SealPolicy(), StrongSuiteLoader(factory=FailingKem))
    data = outcome.downgrade.to_dict()
    assert data["event"] == DOWNGRADE_EVENT_NAME
    assert data["reason"] == "encapsulation_failed"
    assert data["suite"] == "classical"
    assert data["pqcUsed"] is False
    assert "rawError" not in data


def test_debug_downgrade_includes_raw_error():
    loader = StrongSuiteLoader(factory=failing_factory(ImportError("No module named 'oqs'")))
    outcome = _seal(SealPolicy(debug_downgrade=True), loader)
    assert "No module named 'oqs'" in outcome.downgrade.raw_error
    assert "rawError" in outcome.downgrade.to_dict()


def test_downgrade_does_not_upgrade_capability():
    detector = CapabilityDetector(probe=ok_probe)
    _seal(SealPolicy(), StrongSuiteLoader(factory=FailingKem), detector=detector)
    assert detector.check().strong_suite_usable is False


def test_attempt_disabled_never_loads():
    loader = StrongSuiteLoader(factory=StandInKem)
    outcome = _seal(SealPolicy(attempt_strong_suite=False), loader)

    assert loader.load_attempts == 0
    assert outcome.pqc_used is False
    assert outcome.downgrade is None
    assert outcome.envelope.suite == SUITE_CLASSICAL


def test_invalid_classical_key_propagates():
    keys = make_recipient_keys()
    bad = replace(keys, public=HybridPublicKeys(classical="nothex", strong=keys.public.strong))
    with pytest.raises(InvalidKeyError):
        _seal(SealPolicy(), StrongSuiteLoader(factory=StandInKem), keys=bad)
