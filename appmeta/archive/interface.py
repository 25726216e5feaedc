"""
Package archive interface.

Defines the read-only view the extraction service needs over an installer
archive, so the zip reader can be swapped (an in-memory buffer, a remote
blob) without touching the decoders.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from types import TracebackType
from typing import IO


class PackageArchive(ABC):
    """Abstract read-only installer archive."""

    @property
    @abstractmethod
    def name(self) -> str:
        """File name of the archive, used for platform dispatch."""
        ...

    @property
    @abstractmethod
    def size(self) -> int:
        """Total on-disk size of the archive in bytes."""
        ...

    @abstractmethod
    def names(self) -> list[str]:
        """List entry names in archive order.

        Returns:
            Entry names exactly as stored in the central directory.
        """
        ...

    @abstractmethod
    def file_size(self, entry_name: str) -> int:
        """Get the decompressed length of an entry.

        Args:
            entry_name: Entry to inspect.

        Returns:
            Decompressed size in bytes.

        Raises:
            EntryNotFoundError: If the entry does not exist.
        """
        ...

    @abstractmethod
    def open(self, entry_name: str) -> IO[bytes]:
        """Open an entry as a readable byte stream.

        Args:
            entry_name: Entry to open.

        Returns:
            A binary stream the caller must close.

        Raises:
            EntryNotFoundError: If the entry does not exist.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the underlying handle."""
        ...

    def read(self, entry_name: str) -> bytes:
        """Read an entry fully into memory."""
        with self.open(entry_name) as stream:
            return stream.read()

    @property
    def extension(self) -> str:
        """Lower-cased file extension of the archive, including the dot."""
        return PurePosixPath(self.name).suffix.lower()

    def __enter__(self) -> PackageArchive:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
