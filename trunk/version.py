"""Semantic versions, version requirements and the project version check."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from functools import total_ordering
from typing import ClassVar, Optional, Union

VERSION = "0.21.0"
NAME = "trunk"

_log = logging.getLogger(__name__)

_NUMBER = re.compile(r"0|[1-9][0-9]*")
_IDENTIFIER = re.compile(r"[0-9A-Za-z-]+")
_WILDCARDS = frozenset({"*", "x", "X"})


class VersionError(ValueError):
    """Raised when a version or a version requirement cannot be parsed."""


class VersionMismatchError(Exception):
    """Raised when the running version does not satisfy a project's requirement."""


def _parse_number(text: str, what: str) -> int:
    if not _NUMBER.fullmatch(text):
        raise VersionError(f"invalid {what} number: {text!r}")
    return int(text)


def _parse_identifiers(text: str, what: str, *, numeric_leading_zero: bool) -> tuple[str, ...]:
    parts = tuple(text.split("."))
    for part in parts:
        if not _IDENTIFIER.fullmatch(part):
            raise VersionError(f"invalid {what} identifier: {part!r}")
        if not numeric_leading_zero and part.isdigit() and len(part) > 1 and part.startswith("0"):
            raise VersionError(f"leading zero in {what} identifier: {part!r}")
    return parts


def _pre_key(pre: tuple[str, ...]) -> tuple:
    # A version without pre-release identifiers sorts after any pre-release.
    if not pre:
        return (1,)
    return (0, tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in pre))


def _split_pre_build(text: str) -> tuple[str, tuple[str, ...], tuple[str, ...]]:
    core, plus, build_text = text.partition("+")
    core, dash, pre_text = core.partition("-")
    if plus and not build_text:
        raise VersionError(f"empty build metadata in {text!r}")
    if dash and not pre_text:
        raise VersionError(f"empty pre-release in {text!r}")
    pre = _parse_identifiers(pre_text, "pre-release", numeric_leading_zero=False) if pre_text else ()
    build = _parse_identifiers(build_text, "build", numeric_leading_zero=True) if build_text else ()
    return core, pre, build


@total_ordering
@dataclass(frozen=True)
class Version:
    """A semantic version: major.minor.patch with optional pre-release and build."""

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "Version":
        text = text.strip()
        if not text:
            raise VersionError("empty string, expected a semver version")
        core, pre, build = _split_pre_build(text)
        parts = core.split(".")
        if len(parts) != 3:
            raise VersionError(f"expected major.minor.patch, got {text!r}")
        major, minor, patch = (
            _parse_number(part, name) for part, name in zip(parts, ("major", "minor", "patch"))
        )
        return cls(major, minor, patch, pre, build)

    def _key(self) -> tuple:
        return (self.major, self.minor, self.patch, _pre_key(self.pre), self.build)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


class Op(enum.Enum):
    """The operator of a single requirement comparator."""

    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = ""


_OPERATORS = (
    (">=", Op.GREATER_EQ),
    ("<=", Op.LESS_EQ),
    (">", Op.GREATER),
    ("<", Op.LESS),
    ("=", Op.EXACT),
    ("~", Op.TILDE),
    ("^", Op.CARET),
)


@dataclass(frozen=True)
class Comparator:
    """One comparison inside a version requirement."""

    op: Op
    major: int
    minor: Optional[int] = None
    patch: Optional[int] = None
    pre: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> Optional["Comparator"]:
        """Parse one comparator; a bare wildcard yields None, which matches everything."""
        rest = text.strip()
        op: Optional[Op] = None
        for prefix, candidate in _OPERATORS:
            if rest.startswith(prefix):
                op = candidate
                rest = rest[len(prefix):].strip()
                break
        if not rest:
            raise VersionError(f"missing version in requirement {text!r}")

        core, pre, _build = _split_pre_build(rest)
        parts = core.split(".")
        if len(parts) > 3:
            raise VersionError(f"too many version components in {text!r}")

        numbers: list[int] = []
        wildcard = False
        for part, name in zip(parts, ("major", "minor", "patch")):
            if part in _WILDCARDS:
                wildcard = True
            elif wildcard:
                raise VersionError(f"unexpected {name} number after wildcard in {text!r}")
            else:
                numbers.append(_parse_number(part, name))

        if not numbers:
            if pre:
                raise VersionError(f"unexpected pre-release after wildcard in {text!r}")
            return None
        if pre and len(numbers) < 3:
            raise VersionError(f"pre-release requires a full version in {text!r}")
        if wildcard:
            if pre:
                raise VersionError(f"unexpected pre-release after wildcard in {text!r}")
            if op in (None, Op.EXACT, Op.CARET):
                op = Op.WILDCARD
        if op is None:
            op = Op.CARET

        minor = numbers[1] if len(numbers) > 1 else None
        patch = numbers[2] if len(numbers) > 2 else None
        return cls(op, numbers[0], minor, patch, pre)

    def _matches_exact(self, ver: Version) -> bool:
        if ver.major != self.major:
            return False
        if self.minor is not None and ver.minor != self.minor:
            return False
        if self.patch is not None and ver.patch != self.patch:
            return False
        return ver.pre == self.pre

    def _matches_greater(self, ver: Version) -> bool:
        if ver.major != self.major:
            return ver.major > self.major
        if self.minor is None:
            return False
        if ver.minor != self.minor:
            return ver.minor > self.minor
        if self.patch is None:
            return False
        if ver.patch != self.patch:
            return ver.patch > self.patch
        return _pre_key(ver.pre) > _pre_key(self.pre)

    def _matches_less(self, ver: Version) -> bool:
        if ver.major != self.major:
            return ver.major < self.major
        if self.minor is None:
            return False
        if ver.minor != self.minor:
            return ver.minor < self.minor
        if self.patch is None:
            return False
        if ver.patch != self.patch:
            return ver.patch < self.patch
        return _pre_key(ver.pre) < _pre_key(self.pre)

    def _matches_tilde(self, ver: Version) -> bool:
        if ver.major != self.major:
            return False
        if self.minor is not None and ver.minor != self.minor:
            return False
        if self.patch is not None and ver.patch != self.patch:
            return ver.patch > self.patch
        return _pre_key(ver.pre) >= _pre_key(self.pre)

    def _matches_caret(self, ver: Version) -> bool:
        if ver.major != self.major:
            return False
        if self.minor is None:
            return True
        minor = self.minor
        if self.patch is None:
            return ver.minor >= minor if self.major > 0 else ver.minor == minor
        patch = self.patch
        if self.major > 0:
            if ver.minor != minor:
                return ver.minor > minor
            if ver.patch != patch:
                return ver.patch > patch
        elif minor > 0:
            if ver.minor != minor:
                return False
            if ver.patch != patch:
                return ver.patch > patch
        elif ver.minor != minor or ver.patch != patch:
            return False
        return _pre_key(ver.pre) >= _pre_key(self.pre)

    def matches(self, ver: Version) -> bool:
        if self.op in (Op.EXACT, Op.WILDCARD):
            return self._matches_exact(ver)
        if self.op is Op.GREATER:
            return self._matches_greater(ver)
        if self.op is Op.GREATER_EQ:
            return self._matches_exact(ver) or self._matches_greater(ver)
        if self.op is Op.LESS:
            return self._matches_less(ver)
        if self.op is Op.LESS_EQ:
            return self._matches_exact(ver) or self._matches_less(ver)
        if self.op is Op.TILDE:
            return self._matches_tilde(ver)
        return self._matches_caret(ver)

    def allows_prerelease_of(self, ver: Version) -> bool:
        """True if this comparator names the same release as ``ver`` with a pre-release."""
        return (
            self.major == ver.major
            and self.minor == ver.minor
            and self.patch == ver.patch
            and bool(self.pre)
        )

    def __str__(self) -> str:
        numbers = [str(self.major)]
        if self.minor is not None:
            numbers.append(str(self.minor))
            if self.patch is not None:
                numbers.append(str(self.patch))
        if self.op is Op.WILDCARD:
            numbers.append("*")
        text = self.op.value + ".".join(numbers)
        if self.pre:
            text += "-" + ".".join(self.pre)
        return text


@dataclass(frozen=True)
class VersionReq:
    """A set of comparators which a version must all satisfy."""

    comparators: tuple[Comparator, ...] = ()

    STAR: ClassVar["VersionReq"]

    @classmethod
    def parse(cls, text: str) -> "VersionReq":
        if not text.strip():
            raise VersionError("empty string, expected a version requirement")
        parsed = (Comparator.parse(part) for part in text.split(","))
        return cls(tuple(comparator for comparator in parsed if comparator is not None))

    def matches(self, version: Union[Version, str]) -> bool:
        ver = version if isinstance(version, Version) else Version.parse(version)
        if not all(comparator.matches(ver) for comparator in self.comparators):
            return False
        if not ver.pre:
            return True
        # A pre-release only matches if a comparator explicitly names that release.
        return any(comparator.allows_prerelease_of(ver) for comparator in self.comparators)

    def __str__(self) -> str:
        if not self.comparators:
            return "*"
        return ", ".join(str(comparator) for comparator in self.comparators)


VersionReq.STAR = VersionReq()


def parse_version(text: str) -> Version:
    """Parse a semantic version."""
    return Version.parse(text)


def parse_requirement(text: str) -> VersionReq:
    """Parse a version requirement such as ``>=0.19.0`` or ``0.19``."""
    return VersionReq.parse(text)


def enforce_version_with(
    required: Union[VersionReq, str], actual: Union[Version, str]
) -> None:
    """Raise VersionMismatchError unless ``actual`` satisfies ``required``."""
    req = required if isinstance(required, VersionReq) else VersionReq.parse(required)
    ver = actual if isinstance(actual, Version) else Version.parse(actual)
    _log.debug("Enforce version - actual: %s, required: %s", ver, req)

    if req == VersionReq.STAR:
        # The wildcard excludes pre-releases when matching, but is accepted here anyway.
        return

    outcome = req.matches(ver)
    _log.debug("Current version: %s, required version: %s, matches: %s", ver, req, outcome)
    if not outcome:
        raise VersionMismatchError(
            f"Project requires a trunk version of '{req}', the current trunk version is: '{ver}'"
        )