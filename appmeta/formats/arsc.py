"""
Android resource table (resources.arsc) decoding and lookup.

The table is a RES_TABLE_TYPE chunk holding the global value string pool and one
or more package chunks. Each package carries a type-name pool, a key-name pool,
and a sequence of type-spec and type chunks; each type chunk holds the entries of
one resource type for one configuration (density, locale, ...).

Only what icon and label resolution needs is kept: for every resource id the
list of (configuration, value) pairs in table order.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from ..core.exceptions import MalformedResourceTableError, ReferenceCycleError, ResourceNotFoundError
from ..core.logging import get_logger
from .axml import (
    REFERENCE_TYPES,
    TYPE_INT_BOOLEAN,
    TYPE_INT_DEC,
    TYPE_INT_HEX,
    TYPE_STRING,
)
from .string_pool import RES_STRING_POOL_TYPE, StringPool, decode_string_pool
from .stream import ChunkHeader, read_chunk_header

logger = get_logger(__name__)

RES_TABLE_TYPE = 0x0002
RES_TABLE_PACKAGE_TYPE = 0x0200
RES_TABLE_TYPE_TYPE = 0x0201
RES_TABLE_TYPE_SPEC_TYPE = 0x0202
RES_TABLE_LIBRARY_TYPE = 0x0203

# ResTable_type flags
FLAG_SPARSE = 0x01
FLAG_OFFSET16 = 0x02

# ResTable_entry flags
FLAG_COMPLEX = 0x0001
FLAG_COMPACT = 0x0008

NO_ENTRY = 0xFFFFFFFF
NO_ENTRY16 = 0xFFFF

DENSITY_DEFAULT = 0
DENSITY_MEDIUM = 160
DENSITY_ANY = 0xFFFE
DENSITY_NONE = 0xFFFF

TYPE_HEADER_MIN_SIZE = 20
PACKAGE_NAME_BYTES = 256


class ValueKind(str, Enum):
    """Kinds of resource values the lookup distinguishes."""

    STRING = "string"
    REFERENCE = "reference"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OTHER = "other"


@dataclass(frozen=True)
class ResourceConfig:
    """The ResTable_config fields resolution cares about."""

    density: int = DENSITY_DEFAULT
    locale: bytes = b"\x00\x00\x00\x00"

    @property
    def has_locale(self) -> bool:
        return any(self.locale)

    @property
    def is_density_bucket(self) -> bool:
        return self.density not in (DENSITY_ANY, DENSITY_NONE)

    @property
    def effective_density(self) -> int:
        return DENSITY_MEDIUM if self.density == DENSITY_DEFAULT else self.density


@dataclass(frozen=True)
class ResourceValue:
    """A decoded Res_value; string values read their text from the value pool."""

    kind: ValueKind
    data: int
    pool: StringPool | None = field(default=None, repr=False, compare=False)

    @property
    def text(self) -> str | None:
        if self.kind is not ValueKind.STRING or self.pool is None:
            return None
        return self.pool[self.data]


@dataclass(frozen=True)
class ResourceEntry:
    """One (configuration, value) pair for a resource id."""

    config: ResourceConfig
    value: ResourceValue


class ResourceTable:
    """Resource id lookup with density-aware selection and bounded reference resolution."""

    def __init__(self, entries: dict[int, list[ResourceEntry]], max_reference_hops: int = 10) -> None:
        self._entries = entries
        self.max_reference_hops = max_reference_hops

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, resource_id: int) -> bool:
        return resource_id in self._entries

    def entries(self, resource_id: int) -> list[ResourceEntry]:
        """All configurations holding a value for ``resource_id``."""
        found = self._entries.get(resource_id)
        if not found:
            raise ResourceNotFoundError(
                message="Resource id not present in resources.arsc",
                resource_id=resource_id,
            )
        return found

    def select_density(self, resource_id: int, density: int) -> ResourceEntry:
        """Pick the entry whose density bucket best matches ``density``.

        Exact match first, then the smallest absolute difference, ties going to
        the higher density. anydpi/nodpi entries are used only when no density
        bucket holds the resource. Locale-specific configurations are ignored
        when a default-locale one exists.
        """
        candidates = self.entries(resource_id)
        default_locale = [e for e in candidates if not e.config.has_locale]
        if default_locale:
            candidates = default_locale

        buckets = [e for e in candidates if e.config.is_density_bucket]
        if not buckets:
            return candidates[0]

        best = buckets[0]
        for entry in buckets[1:]:
            if _closer(entry.config.effective_density, best.config.effective_density, density):
                best = entry
        return best

    def select_default(self, resource_id: int) -> ResourceEntry:
        """Pick the default-locale entry; no locale negotiation is done."""
        for entry in self.entries(resource_id):
            if not entry.config.has_locale:
                return entry
        raise ResourceNotFoundError(
            message="Resource has no default-locale value",
            resource_id=resource_id,
        )

    def resolve(self, resource_id: int, select: Callable[[int], ResourceEntry]) -> ResourceValue:
        """Follow references from ``resource_id`` until a non-reference value.

        Args:
            resource_id: Starting resource id.
            select: Picks one entry for an id (density- or locale-based).

        Returns:
            The first value that is not a reference.

        Raises:
            ReferenceCycleError: If more than ``max_reference_hops`` references
                are followed.
        """
        current = resource_id
        hops = 0
        while True:
            value = select(current).value
            if value.kind is not ValueKind.REFERENCE:
                return value
            if hops >= self.max_reference_hops:
                raise ReferenceCycleError(
                    message="Resource reference chain does not terminate",
                    resource_id=resource_id,
                    hops=self.max_reference_hops,
                )
            hops += 1
            logger.debug("Following resource reference", resource_id=current, target_id=value.data, hops=hops)
            current = value.data

    def resolve_file(self, resource_id: int, density: int = 720) -> str:
        """Resolve an icon-like resource to the archive path of its file."""
        value = self.resolve(resource_id, lambda rid: self.select_density(rid, density))
        if value.kind is not ValueKind.STRING or not value.text:
            raise ResourceNotFoundError(
                message=f"Resource resolves to a {value.kind.value} value, not a file path",
                resource_id=resource_id,
            )
        return value.text

    def resolve_string(self, resource_id: int) -> str:
        """Resolve a label-like resource to its default-locale string."""
        value = self.resolve(resource_id, self.select_default)
        if value.kind is not ValueKind.STRING or value.text is None:
            raise ResourceNotFoundError(
                message=f"Resource resolves to a {value.kind.value} value, not a string",
                resource_id=resource_id,
            )
        return value.text


def _closer(candidate: int, current: int, target: int) -> bool:
    candidate_diff = abs(candidate - target)
    current_diff = abs(current - target)
    if candidate_diff != current_diff:
        return candidate_diff < current_diff
    return candidate > current


class ResourceTableDecoder:
    """Decoder turning resources.arsc bytes into a ResourceTable."""

    def __init__(self, data: bytes, max_reference_hops: int = 10) -> None:
        self.data = data
        self.max_reference_hops = max_reference_hops
        self._values: StringPool | None = None
        self._entries: dict[int, list[ResourceEntry]] = {}
        self._table_handlers: dict[int, Callable[[ChunkHeader], None]] = {
            RES_STRING_POOL_TYPE: self._on_value_pool,
            RES_TABLE_PACKAGE_TYPE: self._on_package,
        }

    def decode(self) -> ResourceTable:
        table = read_chunk_header(self.data, 0, MalformedResourceTableError)
        if table.type != RES_TABLE_TYPE:
            raise MalformedResourceTableError(
                message=f"Not a resource table (type 0x{table.type:04x})",
                offset=0,
            )
        for chunk in self._children(table.body, table.end):
            handler = self._table_handlers.get(chunk.type)
            if handler is None:
                logger.debug("Skipping table chunk", chunk_type=f"0x{chunk.type:04x}", offset=chunk.offset)
                continue
            handler(chunk)

        logger.debug("Decoded resource table", resources=len(self._entries))
        return ResourceTable(self._entries, self.max_reference_hops)

    def _children(self, start: int, end: int) -> Iterator[ChunkHeader]:
        offset = start
        while offset < end:
            chunk = read_chunk_header(self.data, offset, MalformedResourceTableError, limit=end)
            yield chunk
            offset = chunk.end

    def _on_value_pool(self, chunk: ChunkHeader) -> None:
        if self._values is None:
            self._values = decode_string_pool(self.data, chunk.offset)

    def _on_package(self, chunk: ChunkHeader) -> None:
        if chunk.header_size < 12 + PACKAGE_NAME_BYTES:
            raise MalformedResourceTableError(message="Package header too small", offset=chunk.offset)
        (package_id,) = struct.unpack_from("<I", self.data, chunk.offset + 8)
        name_raw = self.data[chunk.offset + 12 : chunk.offset + 12 + PACKAGE_NAME_BYTES]
        name = name_raw.decode("utf-16-le", errors="replace").split("\x00", 1)[0]
        logger.debug("Decoding package", package_id=f"0x{package_id:02x}", name=name)

        for child in self._children(chunk.body, chunk.end):
            if child.type == RES_TABLE_TYPE_TYPE:
                self._on_type(package_id, child)
            # type spec, library and the type/key pools add nothing to id lookup

    def _on_type(self, package_id: int, chunk: ChunkHeader) -> None:
        data = self.data
        if chunk.header_size < TYPE_HEADER_MIN_SIZE + 4:
            raise MalformedResourceTableError(message="Type chunk header too small", offset=chunk.offset)
        type_id, flags, _, entry_count, entries_start = struct.unpack_from("<BBHII", data, chunk.offset + 8)
        if type_id == 0:
            raise MalformedResourceTableError(message="Type chunk has id 0", offset=chunk.offset)
        config = self._read_config(chunk)

        index_base = chunk.offset + chunk.header_size
        entries_base = chunk.offset + entries_start
        if entries_base > chunk.end:
            raise MalformedResourceTableError(message="Entries start past chunk end", offset=chunk.offset)

        for entry_index, entry_offset in self._entry_offsets(chunk, flags, entry_count, index_base):
            value = self._read_entry(entries_base + entry_offset, chunk)
            if value is None:
                continue
            resource_id = (package_id << 24) | (type_id << 16) | entry_index
            self._entries.setdefault(resource_id, []).append(ResourceEntry(config, value))

    def _entry_offsets(
        self, chunk: ChunkHeader, flags: int, entry_count: int, base: int
    ) -> Iterator[tuple[int, int]]:
        data = self.data
        width = 2 if flags & (FLAG_SPARSE | FLAG_OFFSET16) else 4
        per_entry = 4 if flags & FLAG_SPARSE else width
        if base + entry_count * per_entry > chunk.end:
            raise MalformedResourceTableError(
                message=f"Entry index of {entry_count} items runs past chunk end",
                offset=chunk.offset,
            )
        if flags & FLAG_SPARSE:
            for i in range(entry_count):
                index, offset = struct.unpack_from("<HH", data, base + i * 4)
                yield index, offset * 4
        elif flags & FLAG_OFFSET16:
            for i in range(entry_count):
                (offset,) = struct.unpack_from("<H", data, base + i * 2)
                if offset != NO_ENTRY16:
                    yield i, offset * 4
        else:
            for i in range(entry_count):
                (offset,) = struct.unpack_from("<I", data, base + i * 4)
                if offset != NO_ENTRY:
                    yield i, offset

    def _read_config(self, chunk: ChunkHeader) -> ResourceConfig:
        start = chunk.offset + TYPE_HEADER_MIN_SIZE
        (config_size,) = struct.unpack_from("<I", self.data, start)
        if config_size < 16 or start + config_size > chunk.body:
            raise MalformedResourceTableError(
                message=f"Invalid configuration size {config_size}",
                offset=chunk.offset,
            )
        locale = bytes(self.data[start + 8 : start + 12])
        (density,) = struct.unpack_from("<H", self.data, start + 14)
        return ResourceConfig(density=density, locale=locale)

    def _read_entry(self, pos: int, chunk: ChunkHeader) -> ResourceValue | None:
        data = self.data
        if pos + 8 > chunk.end:
            raise MalformedResourceTableError(message="Entry runs past chunk end", offset=pos)
        size, flags, key_or_data = struct.unpack_from("<HHI", data, pos)

        if flags & FLAG_COMPACT:
            # size holds the key index, the high byte of flags the data type
            return self._make_value(flags >> 8, key_or_data, pos)
        if flags & FLAG_COMPLEX:
            return ResourceValue(kind=ValueKind.OTHER, data=0)
        if pos + size + 8 > chunk.end:
            raise MalformedResourceTableError(message="Entry value runs past chunk end", offset=pos)
        _, _, data_type, value = struct.unpack_from("<HBBI", data, pos + size)
        return self._make_value(data_type, value, pos)

    def _make_value(self, data_type: int, value: int, pos: int) -> ResourceValue:
        if data_type in REFERENCE_TYPES:
            if value == 0:
                return ResourceValue(kind=ValueKind.OTHER, data=0)
            return ResourceValue(kind=ValueKind.REFERENCE, data=value)
        if data_type == TYPE_STRING:
            if self._values is None:
                raise MalformedResourceTableError(message="String value before the value pool", offset=pos)
            return ResourceValue(kind=ValueKind.STRING, data=value, pool=self._values)
        if data_type in (TYPE_INT_DEC, TYPE_INT_HEX):
            return ResourceValue(kind=ValueKind.INTEGER, data=value)
        if data_type == TYPE_INT_BOOLEAN:
            return ResourceValue(kind=ValueKind.BOOLEAN, data=value)
        return ResourceValue(kind=ValueKind.OTHER, data=value)


def decode_resource_table(data: bytes, max_reference_hops: int = 10) -> ResourceTable:
    """Decode resources.arsc bytes into a ResourceTable."""
    return ResourceTableDecoder(data, max_reference_hops).decode()
