"""
ResStringPool decoding.

Shared by binary XML and the resource table. Layout (little-endian):

    ResChunk_header header      (type 0x0001)
    uint32 stringCount
    uint32 styleCount
    uint32 flags                (0x100: UTF-8, else UTF-16LE)
    uint32 stringsStart         (relative to chunk start)
    uint32 stylesStart
    uint32 stringOffsets[stringCount]

Strings are decoded on first access; a pool in a large resource table often has
tens of thousands of entries and only a handful are ever looked up.
"""

from __future__ import annotations

import struct

from ..core.exceptions import MalformedStringPoolError
from ..core.logging import get_logger
from .stream import read_chunk_header

logger = get_logger(__name__)

RES_STRING_POOL_TYPE = 0x0001
STRING_POOL_HEADER_SIZE = 28

SORTED_FLAG = 1 << 0
UTF8_FLAG = 1 << 8

NO_INDEX = 0xFFFFFFFF


class StringPool:
    """Indexable, lazily decoded string table."""

    def __init__(self, data: bytes, strings_start: int, strings_end: int, offsets: list[int], utf8: bool) -> None:
        self._data = data
        self._start = strings_start
        self._end = strings_end
        self._offsets = offsets
        self._cache: dict[int, str] = {}
        self.utf8 = utf8

    def __len__(self) -> int:
        return len(self._offsets)

    def __getitem__(self, index: int) -> str:
        if not 0 <= index < len(self._offsets):
            raise MalformedStringPoolError(
                message=f"String index {index} out of range (pool has {len(self._offsets)})",
            )
        cached = self._cache.get(index)
        if cached is None:
            cached = self._decode(index)
            self._cache[index] = cached
        return cached

    def get(self, index: int) -> str | None:
        """Like indexing, but maps the 0xFFFFFFFF "no string" sentinel to None."""
        if index == NO_INDEX:
            return None
        return self[index]

    def _decode(self, index: int) -> str:
        pos = self._start + self._offsets[index]
        if pos >= self._end:
            raise MalformedStringPoolError(
                message=f"String #{index} starts past the end of the pool",
                offset=pos,
            )
        try:
            if self.utf8:
                # UTF-16 length first (unused), then the UTF-8 byte length
                _, pos = _read_length8(self._data, pos)
                length, pos = _read_length8(self._data, pos)
                raw = self._read(pos, length, index)
                return raw.decode("utf-8")
            length, pos = _read_length16(self._data, pos)
            raw = self._read(pos, length * 2, index)
            return raw.decode("utf-16-le")
        except (struct.error, IndexError, UnicodeDecodeError) as e:
            raise MalformedStringPoolError(
                message=f"Cannot decode string #{index}",
                offset=pos,
                cause=e,
            ) from e

    def _read(self, pos: int, length: int, index: int) -> bytes:
        if pos + length > self._end:
            raise MalformedStringPoolError(
                message=f"String #{index} of {length} bytes runs past the end of the pool",
                offset=pos,
            )
        return self._data[pos : pos + length]


def _read_length8(data: bytes, pos: int) -> tuple[int, int]:
    first = data[pos]
    if first & 0x80:
        return ((first & 0x7F) << 8) | data[pos + 1], pos + 2
    return first, pos + 1


def _read_length16(data: bytes, pos: int) -> tuple[int, int]:
    (first,) = struct.unpack_from("<H", data, pos)
    if first & 0x8000:
        (second,) = struct.unpack_from("<H", data, pos + 2)
        return ((first & 0x7FFF) << 16) | second, pos + 4
    return first, pos + 2


def decode_string_pool(data: bytes, offset: int = 0) -> StringPool:
    """Decode the string pool chunk starting at ``offset``.

    Args:
        data: Buffer holding the chunk.
        offset: Position of the chunk header.

    Returns:
        The decoded StringPool.

    Raises:
        MalformedStringPoolError: If the header or the offset table is invalid.
    """
    header = read_chunk_header(data, offset, MalformedStringPoolError)
    if header.type != RES_STRING_POOL_TYPE:
        raise MalformedStringPoolError(
            message=f"Expected string pool chunk, got type 0x{header.type:04x}",
            offset=offset,
        )
    if header.header_size < STRING_POOL_HEADER_SIZE:
        raise MalformedStringPoolError(
            message=f"String pool header too small ({header.header_size} bytes)",
            offset=offset,
        )

    string_count, style_count, flags, strings_start, styles_start = struct.unpack_from(
        "<IIIII", data, offset + 8
    )
    if header.header_size + string_count * 4 > header.size:
        raise MalformedStringPoolError(
            message=f"Offset table for {string_count} strings extends past chunk of {header.size} bytes",
            offset=offset,
        )
    offsets = list(struct.unpack_from(f"<{string_count}I", data, header.body)) if string_count else []

    if string_count and strings_start >= header.size:
        raise MalformedStringPoolError(
            message=f"String data starts at {strings_start}, after chunk end {header.size}",
            offset=offset,
        )
    if style_count and styles_start > strings_start:
        strings_end = offset + styles_start
    else:
        strings_end = header.end
    if strings_end > header.end:
        raise MalformedStringPoolError(
            message="Style data starts after chunk end",
            offset=offset,
        )

    utf8 = bool(flags & UTF8_FLAG)
    logger.debug("Decoded string pool", offset=offset, count=string_count, utf8=utf8)
    return StringPool(data, offset + strings_start, strings_end, offsets, utf8)
