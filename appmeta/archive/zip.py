"""
Zip-backed package archive.

APK and IPA files are plain zip containers; this backend reads them with the
standard library zipfile module and never writes to them.
"""

from __future__ import annotations

import io
import zipfile
import zlib
from pathlib import Path
from typing import IO

from ..core.exceptions import ArchiveOpenError, EntryNotFoundError
from ..core.logging import get_logger
from .interface import PackageArchive

logger = get_logger(__name__)


class ZipPackageArchive(PackageArchive):
    """Package archive over a zip file on disk or in memory."""

    def __init__(self, source: Path | IO[bytes], name: str, size: int) -> None:
        """Open the zip container.

        Args:
            source: Path to the archive or a seekable binary stream.
            name: File name used for platform dispatch.
            size: Total archive size in bytes.

        Raises:
            ArchiveOpenError: If the source is not a readable zip archive.
        """
        self._name = name
        self._size = size
        try:
            self._zip = zipfile.ZipFile(source, "r")
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveOpenError(
                message=f"Cannot open {name} as a zip archive",
                path=str(source) if isinstance(source, Path) else name,
                cause=e,
            ) from e
        self._infos = {info.filename: info for info in self._zip.infolist()}
        logger.debug("Opened archive", name=name, size=size, entries=len(self._infos))

    @classmethod
    def from_path(cls, path: Path | str) -> ZipPackageArchive:
        """Open an archive file.

        Args:
            path: Location of the .apk or .ipa file.

        Returns:
            The opened archive.

        Raises:
            ArchiveOpenError: If the file is missing, unreadable or not a zip.
        """
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise ArchiveOpenError(message=f"Cannot read {path}", path=str(path), cause=e) from e
        return cls(path, path.name, size)

    @classmethod
    def from_bytes(cls, data: bytes, name: str) -> ZipPackageArchive:
        """Wrap an archive already held in memory."""
        return cls(io.BytesIO(data), name, len(data))

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return self._size

    def names(self) -> list[str]:
        return self._zip.namelist()

    def _info(self, entry_name: str) -> zipfile.ZipInfo:
        info = self._infos.get(entry_name)
        if info is None:
            raise EntryNotFoundError(
                message=f"Entry not found in {self._name}",
                entry_name=entry_name,
            )
        return info

    def file_size(self, entry_name: str) -> int:
        return self._info(entry_name).file_size

    def open(self, entry_name: str) -> IO[bytes]:
        return self._zip.open(self._info(entry_name), "r")

    def read(self, entry_name: str) -> bytes:
        info = self._info(entry_name)
        try:
            return self._zip.read(info)
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError) as e:
            raise ArchiveOpenError(
                message=f"Entry {entry_name} cannot be decompressed",
                path=self._name,
                cause=e,
            ) from e

    def close(self) -> None:
        self._zip.close()


def open_archive(path: Path | str) -> ZipPackageArchive:
    """Open an installer archive from disk."""
    return ZipPackageArchive.from_path(path)
