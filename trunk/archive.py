"""Extraction of single files from downloaded release archives."""

from __future__ import annotations

import enum
import io
import logging
import os
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Union

_log = logging.getLogger(__name__)


class ArchiveError(Exception):
    """Raised when an archive cannot be read or a file cannot be extracted."""


class ArchiveKind(enum.Enum):
    """How a downloaded file is packed."""

    TAR_GZ = "tar.gz"
    ZIP = "zip"
    NONE = "none"


def _strip_first(name: str) -> PurePosixPath:
    # The first path component is usually the folder the archive was created from.
    parts = PurePosixPath(name).parts
    return PurePosixPath(*parts[1:]) if len(parts) > 1 else PurePosixPath()


def _set_permissions(path: Path, mode: int) -> None:
    if os.name != "posix":
        return
    _log.debug("Setting permission of '%s' to %#o", path, mode)
    try:
        path.chmod(mode & 0o7777)
    except OSError as err:
        raise ArchiveError(f"failed setting file permissions: {err}") from err


def _write_out(source: BinaryIO, name: str, target_directory: Path) -> Path:
    out = target_directory / name
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise ArchiveError(f"failed creating output directory: {err}") from err
    try:
        with out.open("wb") as sink:
            shutil.copyfileobj(source, sink)
    except OSError as err:
        raise ArchiveError(
            f"failed copying over final output file from archive: {err}"
        ) from err
    return out


class Archive:
    """A downloaded file from which named files can be extracted."""

    def __init__(self, path: Union[str, Path], kind: ArchiveKind) -> None:
        self.path = Path(path)
        self.kind = kind
        if kind is ArchiveKind.ZIP:
            try:
                with zipfile.ZipFile(self.path):
                    pass
            except (OSError, zipfile.BadZipFile) as err:
                raise ArchiveError(f"failed opening zip archive: {err}") from err

    def extract_file(self, name: str, target_directory: Union[str, Path]) -> Path:
        """Extract ``name`` into ``target_directory`` and return the written path.

        For packed archives, ``name`` is matched against entry paths with their
        first component dropped.
        """
        target = Path(target_directory)
        if self.kind is ArchiveKind.TAR_GZ:
            return self._extract_tar(name, target)
        if self.kind is ArchiveKind.ZIP:
            return self._extract_zip(name, target)
        return self._copy_plain(name, target)

    def _extract_tar(self, name: str, target: Path) -> Path:
        wanted = PurePosixPath(name)
        try:
            with tarfile.open(self.path, "r:gz") as archive:
                for member in archive:
                    if _strip_first(member.name) != wanted:
                        continue
                    # Non-regular entries have no data; they are written out empty.
                    source = archive.extractfile(member) or io.BytesIO()
                    with source:
                        out = _write_out(source, name, target)
                    _set_permissions(out, member.mode)
                    return out
        except (OSError, tarfile.TarError, EOFError) as err:
            raise ArchiveError(f"failed getting archive entries: {err}") from err
        raise ArchiveError("file not found in archive")

    def _extract_zip(self, name: str, target: Path) -> Path:
        wanted = PurePosixPath(name)
        try:
            with zipfile.ZipFile(self.path) as archive:
                for info in archive.infolist():
                    entry = PurePosixPath(info.filename)
                    if entry.is_absolute() or ".." in entry.parts:
                        raise ArchiveError("invalid entry path")
                    if _strip_first(info.filename) != wanted:
                        continue
                    with archive.open(info) as source:
                        out = _write_out(source, name, target)
                    mode = info.external_attr >> 16
                    if info.create_system == 3 and mode:
                        _set_permissions(out, mode)
                    return out
        except (OSError, zipfile.BadZipFile) as err:
            raise ArchiveError(f"error while getting archive entry: {err}") from err
        raise ArchiveError("file not found in archive")

    def _copy_plain(self, name: str, target: Path) -> Path:
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise ArchiveError(f"failed to create target directory: {err}") from err
        out = target / name
        try:
            with self.path.open("rb") as source, out.open("wb") as sink:
                shutil.copyfileobj(source, sink)
        except OSError as err:
            raise ArchiveError(f"failed to copy binary: {err}") from err
        _set_permissions(out, 0o755)
        return out