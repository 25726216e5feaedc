"""
Bounds-checked byte cursor shared by the binary decoders.

Every read that would run past the end of the buffer raises the error class the
caller passed in, so a truncated manifest surfaces as MalformedManifestError and
a truncated plist as MalformedPlistError.
"""

from __future__ import annotations

import struct
from typing import NamedTuple

from ..core.exceptions import DecodeError

CHUNK_HEADER_SIZE = 8


class ByteReader:
    """Sequential reader over an immutable byte buffer."""

    def __init__(
        self,
        data: bytes,
        offset: int = 0,
        *,
        big_endian: bool = False,
        error_cls: type[DecodeError] = DecodeError,
    ) -> None:
        self.data = data
        self.pos = offset
        self.error_cls = error_cls
        self._prefix = ">" if big_endian else "<"

    def __len__(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self.data):
            raise self.error_cls(
                message=f"Seek to {offset} outside buffer of {len(self.data)} bytes",
                offset=offset,
            )
        self.pos = offset

    def skip(self, count: int) -> None:
        self.seek(self.pos + count)

    def _unpack(self, fmt: str, size: int) -> int:
        if size > self.remaining:
            raise self.error_cls(
                message=f"Truncated data: need {size} bytes, {self.remaining} left",
                offset=self.pos,
            )
        (value,) = struct.unpack_from(self._prefix + fmt, self.data, self.pos)
        self.pos += size
        return value

    def u8(self) -> int:
        return self._unpack("B", 1)

    def u16(self) -> int:
        return self._unpack("H", 2)

    def u32(self) -> int:
        return self._unpack("I", 4)

    def u64(self) -> int:
        return self._unpack("Q", 8)

    def read(self, count: int) -> bytes:
        if count < 0 or count > self.remaining:
            raise self.error_cls(
                message=f"Truncated data: need {count} bytes, {self.remaining} left",
                offset=self.pos,
            )
        chunk = self.data[self.pos : self.pos + count]
        self.pos += count
        return chunk

    def uint(self, width: int) -> int:
        """Read a big- or little-endian unsigned integer of arbitrary width."""
        raw = self.read(width)
        return int.from_bytes(raw, "big" if self._prefix == ">" else "little")


class ChunkHeader(NamedTuple):
    """ResChunk_header: the 8-byte prefix of every AXML/ARSC chunk."""

    type: int
    header_size: int
    size: int
    offset: int

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def body(self) -> int:
        return self.offset + self.header_size


def read_chunk_header(
    data: bytes,
    offset: int,
    error_cls: type[DecodeError],
    limit: int | None = None,
) -> ChunkHeader:
    """Read and validate the chunk header at ``offset``.

    Args:
        data: Whole buffer.
        offset: Start of the chunk.
        error_cls: Exception raised on an invalid header.
        limit: End of the enclosing chunk; defaults to the buffer end.

    Returns:
        The decoded header.
    """
    end = len(data) if limit is None else limit
    if offset + CHUNK_HEADER_SIZE > end:
        raise error_cls(message="Incomplete chunk header", offset=offset)
    chunk_type, header_size, size = struct.unpack_from("<HHI", data, offset)
    if header_size < CHUNK_HEADER_SIZE or header_size > size:
        raise error_cls(
            message=f"Invalid header size {header_size} for chunk of {size} bytes",
            offset=offset,
            context={"chunk_type": f"0x{chunk_type:04x}"},
        )
    if offset + size > end:
        raise error_cls(
            message=f"Chunk size {size} exceeds remaining {end - offset} bytes",
            offset=offset,
            context={"chunk_type": f"0x{chunk_type:04x}"},
        )
    return ChunkHeader(chunk_type, header_size, size, offset)
