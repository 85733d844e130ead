# secure_intake/tests/test_pending.py
"""
Pending-submission store and storage backends.

Run: pytest secure_intake/tests/test_pending.py -v
"""

import json

from ..pending import JSONFileStorage, MemoryStorage, PendingStore, PendingSubmission
from .fakes import BrokenStorage, FakeClock

KEY = "secure-intake.pending"
TTL = 5 * 60 * 1000
ID_A = "a" * 64
ID_B = "b" * 64


def _store(storage=None):
    clock = FakeClock()
    return PendingStore(storage=storage or MemoryStorage(), clock=clock), clock


# =============================================================================
# TTL / overwrite / clear
# =============================================================================

def test_empty_store():
    store, _ = _store()
    assert store.get_pending_identifier(KEY, TTL) is None


def test_set_then_get():
    store, _ = _store()
    store.set_pending_identifier(ID_A, KEY)
    assert store.get_pending_identifier(KEY, TTL) == ID_A


def test_record_format():
    storage = MemoryStorage()
    store, clock = _store(storage)
    store.set_pending_identifier(ID_A, KEY)
    assert json.loads(storage.get(KEY)) == {"id": ID_A, "ts": clock.now}


def test_within_ttl():
    store, clock = _store()
    store.set_pending_identifier(ID_A, KEY)
    clock.advance(TTL)
    assert store.get_pending_identifier(KEY, TTL) == ID_A


def test_expired_record_is_deleted():
    storage = MemoryStorage()
    store, clock = _store(storage)
    store.set_pending_identifier(ID_A, KEY)
    clock.advance(TTL + 1)

    assert store.get_pending_identifier(KEY, TTL) is None
    assert storage.get(KEY) is None


def test_last_write_wins():
    store, _ = _store()
    store.set_pending_identifier(ID_A, KEY)
    store.set_pending_identifier(ID_B, KEY)
    assert store.get_pending_identifier(KEY, TTL) == ID_B


def test_keys_are_independent():
    store, _ = _store()
    store.set_pending_identifier(ID_A, "form-a")
    store.set_pending_identifier(ID_B, "form-b")
    assert store.get_pending_identifier("form-a", TTL) == ID_A
    assert store.get_pending_identifier("form-b", TTL) == ID_B


def test_clear():
    store, _ = _store()
    store.set_pending_identifier(ID_A, KEY)
    store.clear(KEY)
    assert store.get_pending_identifier(KEY, TTL) is None


def test_is_retry():
    store, clock = _store()
    store.set_pending_identifier(ID_A, KEY)
    assert store.is_retry(ID_A, KEY, TTL) is True
    assert store.is_retry(ID_B, KEY, TTL) is False
    clock.advance(TTL + 1)
    assert store.is_retry(ID_A, KEY, TTL) is False


# =============================================================================
# Storage failures
# =============================================================================

def test_broken_storage_is_silent():
    store, _ = _store(BrokenStorage())
    store.set_pending_identifier(ID_A, KEY)
    store.clear(KEY)
    assert store.get_pending_identifier(KEY, TTL) is None


def test_corrupt_record_reads_as_absent():
    storage = MemoryStorage()
    storage.set(KEY, "{not json")
    store, _ = _store(storage)
    assert store.get_pending_identifier(KEY, TTL) is None


def test_record_missing_fields_reads_as_absent():
    storage = MemoryStorage()
    storage.set(KEY, json.dumps({"id": ID_A}))
    store, _ = _store(storage)
    assert store.get_pending_identifier(KEY, TTL) is None


def test_pending_submission_json():
    record = PendingSubmission.from_json(PendingSubmission(id=ID_A, ts=1.0).to_json())
    assert record == PendingSubmission(id=ID_A, ts=1.0)


# =============================================================================
# JSONFileStorage
# =============================================================================

def test_file_storage_survives_new_store(tmp_path):
    path = tmp_path / "state" / "pending.json"
    clock = FakeClock()

    PendingStore(storage=JSONFileStorage(path), clock=clock).set_pending_identifier(ID_A, KEY)
    reopened = PendingStore(storage=JSONFileStorage(path), clock=clock)

    assert reopened.get_pending_identifier(KEY, TTL) == ID_A


def test_file_storage_delete(tmp_path):
    storage = JSONFileStorage(tmp_path / "pending.json")
    assert storage.get(KEY) is None
    storage.set(KEY, "value")
    storage.set("other", "kept")
    storage.delete(KEY)
    storage.delete("missing")
    assert storage.get(KEY) is None
    assert storage.get("other") == "kept"


def test_file_storage_corrupt_file_reads_as_absent(tmp_path):
    path = tmp_path / "pending.json"
    path.write_text("garbage", encoding="utf-8")
    store = PendingStore(storage=JSONFileStorage(path), clock=FakeClock())
    assert store.get_pending_identifier(KEY, TTL) is None
