"""Tests for the per-hostname state store."""

import json
import os
import stat
from datetime import datetime, timezone

import pytest

from fms_cert_manager.errors import StatePersistenceError
from fms_cert_manager.state import EPOCH, StateRecord, StateStore


def _record(**overrides):
    values = dict(
        hostname="example.com",
        email="admin@example.com",
        is_staging_environment=False,
        last_run_timestamp=datetime(2026, 10, 1, 6, 0, tzinfo=timezone.utc),
        certificate_confirmed_present=True,
    )
    values.update(overrides)
    return StateRecord(**values)


def test_read_missing_returns_none(tmp_path):
    assert StateStore(str(tmp_path)).read("example.com") is None


def test_written_file_uses_documented_keys(tmp_path):
    store = StateStore(str(tmp_path))
    store.write(_record())

    with open(store.path_for("example.com")) as f:
        data = json.load(f)

    assert data == {
        "hostname": "example.com",
        "email": "admin@example.com",
        "isStagingEnvironment": False,
        "lastRunTimestamp": "2026-10-01T06:00:00+00:00",
        "certificateConfirmedPresent": True,
    }
    assert store.read("example.com") == _record()


def test_file_is_owner_only(tmp_path):
    store = StateStore(str(tmp_path))
    store.write(_record())
    mode = stat.S_IMODE(os.stat(store.path_for("example.com")).st_mode)
    assert mode == 0o600


def test_write_replaces_and_leaves_no_temp_files(tmp_path):
    store = StateStore(str(tmp_path))
    store.write(_record(is_staging_environment=True))
    store.write(_record(is_staging_environment=False))

    assert os.listdir(tmp_path) == ["state_example.com.json"]
    assert store.read("example.com").is_staging_environment is False


def test_state_is_keyed_by_hostname(tmp_path):
    store = StateStore(str(tmp_path))
    store.write(_record(hostname="a.example.com"))
    store.write(_record(hostname="b.example.com", is_staging_environment=True))
    assert store.read("a.example.com").is_staging_environment is False
    assert store.read("b.example.com").is_staging_environment is True


def test_reads_legacy_shell_format(tmp_path):
    store = StateStore(str(tmp_path))
    with open(store.path_for("example.com"), "w") as f:
        json.dump({
            "hostname": "example.com",
            "email": "admin@example.com",
            "sandbox": "true",
            "last_run": "2025-06-01T10:00:00+02:00",
            "cert_exists": "true",
        }, f)

    record = store.read("example.com")
    assert record.is_staging_environment is True
    assert record.certificate_confirmed_present is True
    assert record.last_run_timestamp.utcoffset().total_seconds() == 7200


@pytest.mark.parametrize("last_run", ["", None])
def test_legacy_state_without_run_time_keeps_environment(tmp_path, last_run):
    store = StateStore(str(tmp_path))
    with open(store.path_for("example.com"), "w") as f:
        json.dump({
            "hostname": "example.com",
            "email": "admin@example.com",
            "sandbox": "false",
            "last_run": last_run,
            "cert_exists": "true",
        }, f)

    record = store.read("example.com")
    assert record is not None
    assert record.is_staging_environment is False
    assert record.last_run_timestamp == EPOCH


@pytest.mark.parametrize("content", [
    "{not json",
    "[]",
    json.dumps({"hostname": "example.com"}),
    json.dumps({
        "hostname": "example.com",
        "isStagingEnvironment": "maybe",
        "lastRunTimestamp": "2026-01-01T00:00:00+00:00",
        "certificateConfirmedPresent": True,
    }),
])
def test_unusable_state_is_treated_as_first_seen(tmp_path, content):
    store = StateStore(str(tmp_path))
    with open(store.path_for("example.com"), "w") as f:
        f.write(content)
    assert store.read("example.com") is None


def test_write_failure_raises(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = StateStore(str(blocker))
    with pytest.raises(StatePersistenceError):
        store.write(_record())


def test_missing_service_account_is_tolerated(tmp_path):
    store = StateStore(str(tmp_path), "fms-cert-manager-test-missing", "fms-cert-manager-test-missing")
    store.write(_record())
    assert store.read("example.com") is not None
