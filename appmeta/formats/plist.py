"""
Apple property list decoding (binary ``bplist00`` and XML).

Values are returned as native Python objects, the same mapping plistlib uses:

    null -> None        bool -> bool        integer -> int
    real -> float       date -> datetime    data -> bytes
    string -> str       array/set -> list   dict -> dict[str, ...]
    UID -> PlistUID
"""

from __future__ import annotations

import base64
import binascii
import struct
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Union

from ..core.exceptions import MalformedPlistError
from ..core.logging import get_logger
from .stream import ByteReader

logger = get_logger(__name__)

BINARY_MAGIC = b"bplist00"
TRAILER_SIZE = 32

# Seconds between the Unix epoch and the Core Data epoch (2001-01-01T00:00:00Z)
APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

# Containers nested deeper than this are rejected
MAX_NESTING_DEPTH = 100


@dataclass(frozen=True)
class PlistUID:
    """Keyed-archiver object reference."""

    value: int


PlistValue = Union[
    None, bool, int, float, datetime, bytes, str, list["PlistValue"], dict[str, "PlistValue"], PlistUID
]


class BinaryPlistDecoder:
    """Decoder for the ``bplist00`` format.

    The object table is addressed through an offset table located by the
    32-byte trailer. Every object starts with a marker byte whose high nibble
    selects the type and whose low nibble carries a size or count.
    """

    def __init__(self, data: bytes) -> None:
        self.data = data
        self._offsets: list[int] = []
        self._ref_size = 0
        self._active: set[int] = set()
        self._decoded: dict[int, PlistValue] = {}
        self._markers: dict[int, Callable[[int, ByteReader], PlistValue]] = {
            0x0: self._decode_singleton,
            0x1: self._decode_int,
            0x2: self._decode_real,
            0x3: self._decode_date,
            0x4: self._decode_data,
            0x5: self._decode_ascii,
            0x6: self._decode_utf16,
            0x8: self._decode_uid,
            0xA: self._decode_array,
            0xC: self._decode_array,
            0xD: self._decode_dict,
        }

    def decode(self) -> PlistValue:
        data = self.data
        if len(data) < len(BINARY_MAGIC) + TRAILER_SIZE or not data.startswith(BINARY_MAGIC):
            raise MalformedPlistError(message="Not a bplist00 document")

        trailer = ByteReader(data, len(data) - TRAILER_SIZE, big_endian=True, error_cls=MalformedPlistError)
        trailer.skip(6)
        offset_size = trailer.u8()
        self._ref_size = trailer.u8()
        object_count = trailer.u64()
        top_object = trailer.u64()
        table_offset = trailer.u64()

        if offset_size not in (1, 2, 4, 8) or self._ref_size not in (1, 2, 4, 8):
            raise MalformedPlistError(
                message=f"Invalid trailer sizes (offset {offset_size}, ref {self._ref_size})",
                offset=len(data) - TRAILER_SIZE,
            )
        table_end = len(data) - TRAILER_SIZE
        if table_offset < len(BINARY_MAGIC) or table_offset + object_count * offset_size > table_end:
            raise MalformedPlistError(
                message=f"Offset table of {object_count} entries does not fit",
                offset=table_offset,
            )

        table = ByteReader(data, table_offset, big_endian=True, error_cls=MalformedPlistError)
        self._offsets = [table.uint(offset_size) for _ in range(object_count)]
        for index, offset in enumerate(self._offsets):
            if not len(BINARY_MAGIC) <= offset < table_offset:
                raise MalformedPlistError(message=f"Object #{index} offset out of range", offset=offset)

        return self._object(top_object)

    def _object(self, index: int) -> PlistValue:
        if index >= len(self._offsets):
            raise MalformedPlistError(
                message=f"Object index {index} out of range ({len(self._offsets)} objects)",
            )
        if index in self._decoded:
            return self._decoded[index]
        if index in self._active:
            raise MalformedPlistError(message=f"Object #{index} contains itself")
        if len(self._active) >= MAX_NESTING_DEPTH:
            raise MalformedPlistError(message=f"Objects nested deeper than {MAX_NESTING_DEPTH} levels")

        offset = self._offsets[index]
        reader = ByteReader(self.data, offset, big_endian=True, error_cls=MalformedPlistError)
        marker = reader.u8()
        handler = self._markers.get(marker >> 4)
        if handler is None:
            raise MalformedPlistError(message=f"Unknown object marker 0x{marker:02x}", offset=offset)

        self._active.add(index)
        try:
            value = handler(marker & 0x0F, reader)
        finally:
            self._active.discard(index)
        self._decoded[index] = value
        return value

    def _count(self, info: int, reader: ByteReader) -> int:
        if info != 0x0F:
            return info
        marker = reader.u8()
        if marker >> 4 != 0x1:
            raise MalformedPlistError(message=f"Bad length marker 0x{marker:02x}", offset=reader.pos - 1)
        return reader.uint(1 << (marker & 0x0F))

    def _decode_singleton(self, info: int, reader: ByteReader) -> PlistValue:
        if info == 0x0:
            return None
        if info == 0x8:
            return False
        if info == 0x9:
            return True
        raise MalformedPlistError(message=f"Unknown singleton 0x{info:02x}", offset=reader.pos - 1)

    def _decode_int(self, info: int, reader: ByteReader) -> int:
        width = 1 << info
        if width not in (1, 2, 4, 8, 16):
            raise MalformedPlistError(message=f"Invalid integer width {width}", offset=reader.pos - 1)
        raw = reader.read(width)
        # 1/2/4-byte integers are unsigned, 8/16-byte ones two's complement
        return int.from_bytes(raw, "big", signed=width >= 8)

    def _decode_real(self, info: int, reader: ByteReader) -> float:
        if info == 2:
            return struct.unpack(">f", reader.read(4))[0]
        if info == 3:
            return struct.unpack(">d", reader.read(8))[0]
        raise MalformedPlistError(message=f"Invalid real width {1 << info}", offset=reader.pos - 1)

    def _decode_date(self, info: int, reader: ByteReader) -> datetime:
        if info != 3:
            raise MalformedPlistError(message="Invalid date marker", offset=reader.pos - 1)
        seconds = struct.unpack(">d", reader.read(8))[0]
        try:
            return APPLE_EPOCH + timedelta(seconds=seconds)
        except OverflowError as e:
            raise MalformedPlistError(message="Date out of range", offset=reader.pos - 8, cause=e) from e

    def _decode_data(self, info: int, reader: ByteReader) -> bytes:
        return reader.read(self._count(info, reader))

    def _decode_ascii(self, info: int, reader: ByteReader) -> str:
        raw = reader.read(self._count(info, reader))
        try:
            return raw.decode("ascii")
        except UnicodeDecodeError as e:
            raise MalformedPlistError(message="Invalid ASCII string", offset=reader.pos, cause=e) from e

    def _decode_utf16(self, info: int, reader: ByteReader) -> str:
        raw = reader.read(self._count(info, reader) * 2)
        try:
            return raw.decode("utf-16-be")
        except UnicodeDecodeError as e:
            raise MalformedPlistError(message="Invalid UTF-16 string", offset=reader.pos, cause=e) from e

    def _decode_uid(self, info: int, reader: ByteReader) -> PlistUID:
        return PlistUID(reader.uint(info + 1))

    def _decode_array(self, info: int, reader: ByteReader) -> list[PlistValue]:
        count = self._count(info, reader)
        refs = [reader.uint(self._ref_size) for _ in range(count)]
        return [self._object(ref) for ref in refs]

    def _decode_dict(self, info: int, reader: ByteReader) -> dict[str, PlistValue]:
        count = self._count(info, reader)
        key_refs = [reader.uint(self._ref_size) for _ in range(count)]
        value_refs = [reader.uint(self._ref_size) for _ in range(count)]
        result: dict[str, PlistValue] = {}
        for key_ref, value_ref in zip(key_refs, value_refs):
            key = self._object(key_ref)
            if not isinstance(key, str):
                raise MalformedPlistError(message=f"Dictionary key #{key_ref} is not a string")
            result[key] = self._object(value_ref)
        return result


class XmlPlistDecoder:
    """Decoder for XML property lists."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self._depth = 0
        self._elements: dict[str, Callable[[ET.Element], PlistValue]] = {
            "dict": self._decode_dict,
            "array": self._decode_array,
            "string": lambda el: el.text or "",
            "integer": self._decode_integer,
            "real": self._decode_real,
            "true": lambda el: True,
            "false": lambda el: False,
            "date": self._decode_date,
            "data": self._decode_data,
        }

    def decode(self) -> PlistValue:
        try:
            root = ET.fromstring(self.data)
        except ET.ParseError as e:
            raise MalformedPlistError(message=f"Invalid XML: {e}", cause=e) from e
        if root.tag != "plist":
            raise MalformedPlistError(message=f"Root element is <{root.tag}>, not <plist>")
        children = list(root)
        if len(children) != 1:
            raise MalformedPlistError(message=f"<plist> must hold one value, found {len(children)}")
        return self._value(children[0])

    def _value(self, element: ET.Element) -> PlistValue:
        handler = self._elements.get(element.tag)
        if handler is None:
            raise MalformedPlistError(message=f"Unknown plist element <{element.tag}>")
        if self._depth >= MAX_NESTING_DEPTH:
            raise MalformedPlistError(message=f"Elements nested deeper than {MAX_NESTING_DEPTH} levels")
        self._depth += 1
        try:
            return handler(element)
        finally:
            self._depth -= 1

    def _decode_dict(self, element: ET.Element) -> dict[str, PlistValue]:
        children = list(element)
        if len(children) % 2:
            raise MalformedPlistError(message="<dict> has a key without a value")
        result: dict[str, PlistValue] = {}
        for key_el, value_el in zip(children[::2], children[1::2]):
            if key_el.tag != "key":
                raise MalformedPlistError(message=f"Expected <key> in <dict>, found <{key_el.tag}>")
            result[key_el.text or ""] = self._value(value_el)
        return result

    def _decode_array(self, element: ET.Element) -> list[PlistValue]:
        return [self._value(child) for child in element]

    def _decode_integer(self, element: ET.Element) -> int:
        text = (element.text or "").strip()
        try:
            return int(text, 16) if text.lower().startswith(("0x", "-0x")) else int(text)
        except ValueError as e:
            raise MalformedPlistError(message=f"Invalid integer '{text}'", cause=e) from e

    def _decode_real(self, element: ET.Element) -> float:
        text = (element.text or "").strip()
        try:
            return float(text)
        except ValueError as e:
            raise MalformedPlistError(message=f"Invalid real '{text}'", cause=e) from e

    def _decode_date(self, element: ET.Element) -> datetime:
        text = (element.text or "").strip()
        try:
            return datetime.strptime(text, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
        except ValueError as e:
            raise MalformedPlistError(message=f"Invalid date '{text}'", cause=e) from e

    def _decode_data(self, element: ET.Element) -> bytes:
        text = "".join((element.text or "").split())
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedPlistError(message="Invalid base64 in <data>", cause=e) from e


def decode_plist(data: bytes) -> PlistValue:
    """Decode a binary or XML property list.

    Args:
        data: Raw plist bytes.

    Returns:
        The root value.

    Raises:
        MalformedPlistError: If the bytes are neither a valid binary nor XML plist.
    """
    if data.startswith(b"bplist"):
        if not data.startswith(BINARY_MAGIC):
            raise MalformedPlistError(message=f"Unsupported binary plist version {data[6:8]!r}")
        value = BinaryPlistDecoder(data).decode()
        logger.debug("Decoded binary plist", size=len(data))
        return value

    stripped = data.lstrip(b"\xef\xbb\xbf \t\r\n")
    if not stripped.startswith(b"<"):
        raise MalformedPlistError(message="Data is neither a binary nor an XML property list")
    value = XmlPlistDecoder(stripped).decode()
    logger.debug("Decoded XML plist", size=len(data))
    return value


def decode_plist_dict(data: bytes) -> dict[str, Any]:
    """Decode a plist whose root must be a dictionary."""
    value = decode_plist(data)
    if not isinstance(value, dict):
        raise MalformedPlistError(message=f"Plist root is {type(value).__name__}, expected dict")
    return value
