"""Rebuild on file system changes, with ignore lists, a blacklist and a cooldown."""

from __future__ import annotations

import enum
import logging
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .ws import WsState

_log = logging.getLogger(__name__)

PathLike = Union[str, Path]

BLACKLIST = frozenset({".git", ".DS_Store"})
"""Path segments which are ignored by the watcher."""

DEBOUNCE_DURATION = 0.025
"""Seconds over which file system events are debounced."""

WATCHER_COOLDOWN = 1.0
"""Seconds after a finished build during which changes do not start a new build.

Some operations, copying files for example, report modifications although the
content did not change; the cooldown keeps them from causing endless rebuilds.
"""


class EventKind(enum.Enum):
    """The kind of a file system event."""

    ANY = "any"
    ACCESS = "access"
    CREATE = "create"
    REMOVE = "remove"
    MODIFY_ANY = "modify"
    MODIFY_DATA = "modify-data"
    MODIFY_NAME = "modify-name"
    MODIFY_METADATA_WRITE_TIME = "modify-metadata-write-time"
    MODIFY_METADATA = "modify-metadata"
    MODIFY_OTHER = "modify-other"
    OTHER = "other"

    @property
    def is_relevant(self) -> bool:
        """True if events of this kind can cause a rebuild."""
        return self in _RELEVANT_KINDS


_RELEVANT_KINDS = frozenset(
    {
        EventKind.CREATE,
        EventKind.REMOVE,
        EventKind.MODIFY_ANY,
        EventKind.MODIFY_DATA,
        EventKind.MODIFY_NAME,
        EventKind.MODIFY_METADATA_WRITE_TIME,
    }
)


def build_error_reason(error: BaseException) -> str:
    """Render a build error and the chain of errors that caused it."""
    result = f"{error}\n\n"
    current = _cause_of(error)
    index = 0
    while current is not None:
        if index == 0:
            result += "Caused by:\n"
        result += f"\t{index}: {current}\n"
        index += 1
        current = _cause_of(current)
    return result


def _cause_of(error: BaseException) -> Optional[BaseException]:
    if error.__cause__ is not None:
        return error.__cause__
    if error.__suppress_context__:
        return None
    return error.__context__


def is_event_relevant(
    kind: EventKind, paths: Iterable[PathLike], ignored_paths: Iterable[PathLike]
) -> bool:
    """True if an event of ``kind`` on any of ``paths`` should trigger a build."""
    if not kind.is_relevant:
        return False

    ignored = {Path(path) for path in ignored_paths}
    for raw in paths:
        try:
            path = Path(raw).resolve(strict=True)
        except (OSError, RuntimeError):
            # The resource is gone, which happens for every staged output entry.
            continue
        if path in ignored or any(parent in ignored for parent in path.parents):
            continue
        if any(segment in BLACKLIST for segment in path.parts):
            continue
        _log.debug("accepted change in %s of type %s", path, kind.value)
        return True
    return False


def _clear_screen() -> None:
    stream = sys.stdout
    try:
        if not stream.isatty():
            return
        stream.write("\x1b[2J\x1b[H")
        stream.flush()
    except (OSError, ValueError) as err:
        _log.error("Unable to clear the screen due to error: #%s", err)
        return
    _log.debug("Clear screen is enabled, cleared the screen")


class WatchSystem:
    """Starts builds in response to relevant file system changes.

    ``build`` runs one build and raises on failure. Builds run on a background
    thread; their outcome is published through ``ws_state``, a callable taking
    a :class:`WsState`, if one is given.
    """

    def __init__(
        self,
        build: Callable[[], object],
        ignored_paths: Iterable[PathLike] = (),
        enable_cooldown: bool = True,
        clear_screen: bool = False,
        no_error_reporting: bool = False,
        ws_state: Optional[Callable[[WsState], object]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._build = build
        self.ignored_paths: list[Path] = [Path(path) for path in ignored_paths]
        self.watcher_cooldown: Optional[float] = WATCHER_COOLDOWN if enable_cooldown else None
        self.clear_screen = clear_screen
        self.no_error_reporting = no_error_reporting
        self._ws_state = ws_state
        self._clock = clock
        self._lock = threading.RLock()
        _log.debug("Build cooldown: %s", self.watcher_cooldown)

        now = clock()
        self.last_build_started = now
        self.last_build_finished = now
        self.last_change = now

    def is_build_active(self) -> bool:
        """True while a started build has not reported completion."""
        with self._lock:
            return self.last_build_started > self.last_build_finished

    def update_ignore_list(self, path: PathLike) -> None:
        """Add ``path`` (canonicalised where possible) to the ignored paths."""
        candidate = Path(path)
        try:
            candidate = candidate.resolve(strict=True)
        except (OSError, RuntimeError):
            pass
        with self._lock:
            if candidate not in self.ignored_paths:
                self.ignored_paths.append(candidate)

    def handle_watch_event(self, kind: EventKind, paths: Iterable[PathLike]) -> bool:
        """Process one file system event; return True if it was accepted."""
        paths = list(paths)
        _log.debug("change detected in %s of type %s", paths, kind.value)
        with self._lock:
            if not is_event_relevant(kind, paths, self.ignored_paths):
                _log.debug("Event not relevant, skipping")
                return False

            self.last_change = self._clock()

            if self.is_build_active():
                _log.debug("Build is active, postponing start")
                return True

            self.check_spawn_build()
            return True

    def build_complete(self, error: Optional[BaseException] = None) -> None:
        """Record the end of a build and publish its outcome."""
        _log.debug("Build reported completion")
        with self._lock:
            self.last_build_finished = self._clock()

            if self._ws_state is not None:
                if error is None:
                    self._ws_state(WsState())
                elif not self.no_error_reporting:
                    self._ws_state(WsState.failed(build_error_reason(error)))

            self.check_spawn_build()

    def check_spawn_build(self) -> bool:
        """Start a build if changes arrived since the last one; return True if started."""
        with self._lock:
            if self.last_change <= self.last_build_started:
                _log.debug("No changes since the last build was started")
                return False

            _log.debug("Changes since the last build was started, checking cooldown")

            if self.watcher_cooldown is not None:
                since_last_build = max(0.0, self.last_change - self.last_build_finished)
                if since_last_build < self.watcher_cooldown:
                    _log.debug(
                        "Cooldown is still active: %.3fs remaining",
                        self.watcher_cooldown - since_last_build,
                    )
                    return False

            if self.clear_screen:
                _clear_screen()

            self._spawn_build()
            return True

    def _spawn_build(self) -> None:
        self.last_build_started = self._clock()
        thread = threading.Thread(target=self._run_build, name="build", daemon=True)
        thread.start()

    def _run_build(self) -> None:
        error: Optional[BaseException] = None
        try:
            self._build()
        except Exception as err:  # noqa: BLE001 - every build failure is reported
            error = err
        self.build_complete(error)