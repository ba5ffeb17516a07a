import json
from datetime import datetime, timedelta, timezone

import pytest

from trunk.update_check import (
    CheckState,
    Versions,
    announce_version,
    most_recent,
    need_check,
    record_checked,
    state_file,
    update_check,
)
from trunk.version import parse_version

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_state_file_name():
    assert state_file().name == "update.json"


def test_missing_file_needs_check(tmp_path):
    assert need_check(tmp_path / "update.json", NOW) == CheckState(True)


def test_recent_record_is_not_needed(tmp_path):
    path = tmp_path / "state" / "update.json"
    versions = Versions(parse_version("0.21.0"), parse_version("0.22.0-alpha.1"))
    record_checked(versions, path, NOW)
    state = need_check(path, NOW + timedelta(hours=12))
    assert state.needed is False
    assert state.versions == versions


def test_old_record_needs_check(tmp_path):
    path = tmp_path / "update.json"
    record_checked(Versions(parse_version("0.21.0")), path, NOW)
    assert need_check(path, NOW + timedelta(days=2)).needed is True


def test_record_omits_missing_versions(tmp_path):
    path = tmp_path / "update.json"
    record_checked(Versions(release=parse_version("1.2.3")), path, NOW)
    data = json.loads(path.read_text())
    assert data["versions"] == {"release": "1.2.3"}


def test_garbage_file_needs_check(tmp_path):
    path = tmp_path / "update.json"
    path.write_text("not json at all")
    assert need_check(path, NOW).needed is True


def test_unreadable_file_skips_check(tmp_path):
    assert need_check(tmp_path, NOW) == CheckState(False, Versions())


def test_fractional_timestamp_is_read(tmp_path):
    path = tmp_path / "update.json"
    path.write_text(
        json.dumps({"last_check": "2024-01-01T00:00:00.123456789Z", "versions": {}})
    )
    assert need_check(path, NOW + timedelta(hours=1)) == CheckState(False, Versions())


def test_announce_newer_release():
    message = announce_version(Versions(release=parse_version("0.22.0")), "0.21.0")
    assert message is not None
    assert "0.21.0 -> 0.22.0" in message


def test_announce_uses_prerelease_for_prerelease_builds():
    versions = Versions(parse_version("0.21.0"), parse_version("0.22.0-alpha.2"))
    message = announce_version(versions, "0.22.0-alpha.1")
    assert message is not None
    assert message.endswith("0.22.0-alpha.2")
    assert announce_version(versions, "0.21.0") is None


@pytest.mark.parametrize("current", ["0.22.0", "0.23.0", "not-a-version"])
def test_no_announcement(current):
    assert announce_version(Versions(release=parse_version("0.22.0")), current) is None


def test_announce_without_known_versions():
    assert announce_version(Versions(), "0.21.0") is None


def test_most_recent_filters_yanked_and_invalid():
    published = [
        ("0.20.0", False),
        ("0.21.0", False),
        ("0.22.0", True),
        ("0.22.0-alpha.1", False),
        ("garbage", False),
    ]
    versions = most_recent(lambda: published)
    assert versions.release == parse_version("0.21.0")
    assert versions.prerelease == parse_version("0.22.0-alpha.1")


def test_most_recent_empty():
    assert most_recent(lambda: []) == Versions()


def test_versions_dict_round_trip():
    versions = Versions(parse_version("1.0.0"), parse_version("1.1.0-rc.1"))
    assert Versions.from_dict(versions.to_dict()) == versions


def test_update_check_skipped():
    assert update_check(True) is None