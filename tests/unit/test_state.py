"""
Tests for fingerprint persistence.
"""

from pathlib import Path

import orjson

from gitledger_py.state import FingerprintStore


def test_missing_file_has_no_fingerprints(tmp_path: Path) -> None:
    store = FingerprintStore(tmp_path / "fingerprints.json")
    assert store.get("offsite") is None


def test_record_and_get(tmp_path: Path) -> None:
    path = tmp_path / "state" / "fingerprints.json"
    store = FingerprintStore(path)

    assert store.record("offsite", "abc123") is True

    assert FingerprintStore(path).get("offsite") == "abc123"
    assert orjson.loads(path.read_bytes()) == {"offsite": "abc123"}


def test_record_never_overwrites(tmp_path: Path) -> None:
    """Once recorded, a fingerprint only changes through reset."""
    store = FingerprintStore(tmp_path / "fingerprints.json")
    store.record("offsite", "abc123")

    assert store.record("offsite", "def456") is False
    assert store.get("offsite") == "abc123"


def test_reset(tmp_path: Path) -> None:
    store = FingerprintStore(tmp_path / "fingerprints.json")
    store.record("offsite", "abc123")
    store.record("usb", "fff000")

    store.reset("offsite")

    assert store.get("offsite") is None
    assert store.get("usb") == "fff000"
    store.reset("never-recorded")


def test_corrupt_file_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "fingerprints.json"
    path.write_text("{not json")
    store = FingerprintStore(path)

    assert store.get("offsite") is None
    assert store.record("offsite", "abc123") is True
    assert store.get("offsite") == "abc123"


def test_non_object_file_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "fingerprints.json"
    path.write_text('["abc"]')
    assert FingerprintStore(path).get("offsite") is None
