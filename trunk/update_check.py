"""Periodic check for newer published releases of trunk."""

from __future__ import annotations

import json
import logging
import re
import threading
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import platformdirs

from .version import NAME, VERSION, Version, VersionError

_log = logging.getLogger(__name__)

CHECK_PERIOD = timedelta(days=1)
CRATES_API = "https://crates.io/api/v1/crates"
REQUEST_TIMEOUT = 1.0

_FRACTION = re.compile(r"\.(\d+)")

Fetcher = Callable[[], Iterable[tuple[str, bool]]]


@dataclass(frozen=True)
class Versions:
    """The most recent published release and pre-release."""

    release: Optional[Version] = None
    prerelease: Optional[Version] = None

    def to_dict(self) -> dict[str, str]:
        data = {}
        if self.release is not None:
            data["release"] = str(self.release)
        if self.prerelease is not None:
            data["prerelease"] = str(self.prerelease)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Versions":
        if not isinstance(data, dict):
            raise ValueError("versions must be an object")
        release = data.get("release")
        prerelease = data.get("prerelease")
        return cls(
            Version.parse(release) if release is not None else None,
            Version.parse(prerelease) if prerelease is not None else None,
        )


@dataclass(frozen=True)
class CheckState:
    """Whether a fresh check is due, and the versions known from the last one."""

    needed: bool
    versions: Versions = field(default_factory=Versions)


def state_file() -> Path:
    """Location of the file recording the last update check."""
    return Path(platformdirs.user_state_dir(NAME)) / "update.json"


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _format_timestamp(moment: datetime) -> str:
    return _utc(moment).isoformat().replace("+00:00", "Z")


def _parse_timestamp(text: str) -> datetime:
    if not isinstance(text, str):
        raise ValueError("timestamp must be a string")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return _utc(datetime.fromisoformat(text))


def need_check(
    file: Union[str, Path, None] = None, now: Optional[datetime] = None
) -> CheckState:
    """Decide whether the last check is old enough to check again."""
    path = state_file() if file is None else Path(file)
    now = _utc(now) if now is not None else datetime.now(timezone.utc)

    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return CheckState(True)
    except OSError as err:
        _log.debug("Failed to check update state file (%s), skipping: %s", path, err)
        return CheckState(False)

    try:
        data = json.loads(raw)
        last_check = _parse_timestamp(data["last_check"])
        versions = Versions.from_dict(data["versions"])
    except (ValueError, KeyError, TypeError):
        # An unreadable state file is simply rewritten after a fresh check.
        return CheckState(True)

    diff = now - last_check
    _log.debug("Time since last check: %s", diff)
    if diff > CHECK_PERIOD:
        return CheckState(True)
    return CheckState(False, versions)


def record_checked(
    versions: Versions,
    file: Union[str, Path, None] = None,
    now: Optional[datetime] = None,
) -> None:
    """Record that a check was performed; errors are ignored."""
    path = state_file() if file is None else Path(file)
    moment = now if now is not None else datetime.now(timezone.utc)
    state = json.dumps(
        {"last_check": _format_timestamp(moment), "versions": versions.to_dict()},
        separators=(",", ":"),
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        _log.debug("Failed to create parent directory for update state (%s): %s", path.parent, err)
        return
    try:
        path.write_text(state, encoding="utf-8")
    except OSError as err:
        _log.debug("Failed to write update state file (%s): %s", path, err)


def announce_version(versions: Versions, current: Optional[str] = None) -> Optional[str]:
    """Return (and log) an update notice if a newer version than ``current`` exists."""
    current_text = VERSION if current is None else current
    try:
        running = Version.parse(current_text)
    except VersionError:
        _log.debug("Failed to parse the current version (%s)", current_text)
        return None

    newest = versions.prerelease if running.pre else versions.release
    if newest is None:
        return None

    _log.debug("Current: %s, Most recent: %s", running, newest)
    if newest > running:
        message = f"Found an update of {NAME}: {current_text} -> {newest}"
        _log.info(message)
        return message
    return None


def _fetch_published() -> list[tuple[str, bool]]:
    request = urllib.request.Request(
        f"{CRATES_API}/{NAME}", headers={"User-Agent": f"{NAME}/{VERSION}"}
    )
    with urllib.request.urlopen(request, timeout=REQUEST_TIMEOUT) as response:
        data = json.load(response)
    return [(entry["num"], bool(entry.get("yanked"))) for entry in data["versions"]]


def most_recent(fetch: Optional[Fetcher] = None) -> Versions:
    """Find the newest release and pre-release among the published, non-yanked versions."""
    _log.debug("Checking for updates")
    published = (fetch or _fetch_published)()

    versions = []
    for number, yanked in published:
        if yanked:
            continue
        try:
            versions.append(Version.parse(number))
        except VersionError:
            continue

    release = max((v for v in versions if not v.pre), default=None)
    prerelease = max(versions, default=None)
    return Versions(release, prerelease)


def perform_update_check() -> Optional[str]:
    """Check for updates if due and return an update notice, if any."""
    _log.debug("Performing update check")
    state = need_check()
    if state.needed:
        try:
            versions = most_recent()
        except Exception as err:  # noqa: BLE001 - a failed check is never fatal
            _log.debug("Failed to check for new version: %s", err)
            return None
        _log.debug("New versions: %s", versions)
        record_checked(versions)
    else:
        _log.debug("No refresh needed")
        versions = state.versions
    return announce_version(versions)


def update_check(skip: bool) -> Optional[threading.Thread]:
    """Start a background update check unless ``skip`` is set."""
    _log.debug("Update check")
    if skip:
        return None
    _log.debug("Spawning update check")
    thread = threading.Thread(target=perform_update_check, name="update-check", daemon=True)
    thread.start()
    return thread