# secure_intake/tests/test_capability.py
"""
Capability cache and strong-suite loader cell.

Run: pytest secure_intake/tests/test_capability.py -v
"""

import sys
import types

import pytest

from ..capability import CapabilityDetector, DetectorState
from ..errors import EncapsulationFailedError, ModuleUnavailableError
from ..strong_suite import (
    DEFAULT_KEM_ALGORITHM,
    LoaderState,
    OqsKem,
    StrongSuiteLoader,
    load_oqs_kem,
)
from .fakes import StandInKem, failing_factory, missing_x25519_probe, ok_probe


class CountingProbe:
    def __init__(self, result=(True, [])):
        self.calls = 0
        self.result = result

    def __call__(self):
        self.calls += 1
        return self.result


# =============================================================================
# CapabilityDetector
# =============================================================================

def test_default_probe_finds_classical_primitives():
    cap = CapabilityDetector().check()
    assert cap.available is True
    assert cap.strong_suite_usable is False
    assert cap.diagnostic is None


def test_check_is_cached():
    probe = CountingProbe()
    detector = CapabilityDetector(probe=probe)
    assert detector.state is DetectorState.UNINITIALIZED

    first = detector.check()
    second = detector.check()
    assert first is second
    assert probe.calls == 1
    assert detector.state is DetectorState.CHECKED


def test_force_reprobes():
    probe = CountingProbe()
    detector = CapabilityDetector(probe=probe)
    detector.check()
    detector.check(force=True)
    assert probe.calls == 2


def test_reset_returns_to_uninitialized():
    probe = CountingProbe()
    detector = CapabilityDetector(probe=probe)
    detector.check()
    detector.reset()
    assert detector.state is DetectorState.UNINITIALIZED
    detector.check()
    assert probe.calls == 2


def test_missing_primitive_diagnostic():
    cap = CapabilityDetector(probe=missing_x25519_probe).check()
    assert cap.available is False
    assert cap.diagnostic == "Missing: X25519"


def test_diagnostic_lists_all_missing():
    cap = CapabilityDetector(probe=CountingProbe((False, ["randomness", "BLAKE3"]))).check()
    assert cap.diagnostic == "Missing: randomness, BLAKE3"


def test_upgrade_is_one_way_and_idempotent():
    detector = CapabilityDetector(probe=ok_probe)
    detector.check()
    detector.upgrade()
    detector.upgrade()
    assert detector.check().strong_suite_usable is True


def test_upgrade_before_first_check():
    detector = CapabilityDetector(probe=ok_probe)
    detector.upgrade()
    assert detector.check().strong_suite_usable is True


def test_forced_check_keeps_upgrade():
    detector = CapabilityDetector(probe=ok_probe)
    detector.upgrade()
    assert detector.check(force=True).strong_suite_usable is True


def test_reset_clears_upgrade():
    detector = CapabilityDetector(probe=ok_probe)
    detector.upgrade()
    detector.reset()
    assert detector.check().strong_suite_usable is False


def test_check_does_not_import_kem_library():
    loaded_before = "oqs" in sys.modules
    CapabilityDetector().check(force=True)
    assert ("oqs" in sys.modules) == loaded_before


# =============================================================================
# StrongSuiteLoader
# =============================================================================

def test_loader_caches_success():
    loader = StrongSuiteLoader(factory=StandInKem)
    assert loader.state is LoaderState.EMPTY
    first = loader.load()
    assert loader.load() is first
    assert loader.load_attempts == 1
    assert loader.state is LoaderState.LOADED


def test_loader_caches_failure():
    loader = StrongSuiteLoader(factory=failing_factory(ImportError("No module named 'oqs'")))

    with pytest.raises(ModuleUnavailableError) as first:
        loader.load()
    with pytest.raises(ModuleUnavailableError) as second:
        loader.load()

    assert loader.load_attempts == 1
    assert loader.state is LoaderState.FAILED
    assert str(first.value) == str(second.value)
    assert "failed to load" in str(first.value)
    assert "No module named 'oqs'" in str(first.value)


def test_loader_passes_through_unavailable_message():
    error = ModuleUnavailableError("ML-KEM-768 is not available in this liboqs build")
    loader = StrongSuiteLoader(factory=failing_factory(error))
    with pytest.raises(ModuleUnavailableError) as exc:
        loader.load()
    assert str(exc.value) == "ML-KEM-768 is not available in this liboqs build"


def test_loader_reset_allows_retry():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise OSError("cannot open shared object file")
        return StandInKem()

    loader = StrongSuiteLoader(factory=flaky)
    with pytest.raises(ModuleUnavailableError):
        loader.load()
    loader.reset()
    assert loader.state is LoaderState.EMPTY
    assert isinstance(loader.load(), StandInKem)
    assert loader.load_attempts == 2


# =============================================================================
# liboqs adapter (fake module)
# =============================================================================

class FakeKeyEncapsulation:
    def __init__(self, name, secret_key=None):
        self.name = name
        self.secret_key = secret_key

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def encap_secret(self, public_key):
        if len(public_key) != 4:
            raise ValueError("bad public key length")
        return b"ct:" + public_key, b"ss:" + public_key

    def decap_secret(self, ciphertext):
        return b"ss:" + ciphertext[3:]


def _fake_oqs(enabled):
    return types.SimpleNamespace(
        get_enabled_kem_mechanisms=lambda: list(enabled),
        KeyEncapsulation=FakeKeyEncapsulation,
    )


def test_oqs_loader_checks_mechanism(monkeypatch):
    monkeypatch.setitem(sys.modules, "oqs", _fake_oqs(["Kyber512"]))
    with pytest.raises(ModuleUnavailableError) as exc:
        load_oqs_kem("ML-KEM-768")
    assert "not available" in str(exc.value)


def test_oqs_kem_roundtrip(monkeypatch):
    monkeypatch.setitem(sys.modules, "oqs", _fake_oqs([DEFAULT_KEM_ALGORITHM]))
    suite = StrongSuiteLoader().load()

    assert isinstance(suite, OqsKem)
    assert suite.name == DEFAULT_KEM_ALGORITHM
    ct, ss = suite.encapsulate(b"pkey")
    assert suite.decapsulate(b"secret", ct) == ss


def test_oqs_kem_wraps_errors(monkeypatch):
    monkeypatch.setitem(sys.modules, "oqs", _fake_oqs([DEFAULT_KEM_ALGORITHM]))
    suite = load_oqs_kem()
    with pytest.raises(EncapsulationFailedError) as exc:
        suite.encapsulate(b"too long")
    assert "encapsulation failed" in str(exc.value)


def test_missing_oqs_reported_as_load_failure(monkeypatch):
    monkeypatch.setitem(sys.modules, "oqs", None)
    with pytest.raises(ModuleUnavailableError) as exc:
        StrongSuiteLoader().load()
    assert "failed to load" in str(exc.value)
