"""
Android binary XML (AXML) manifest decoding.

Streams the chunk sequence of a compiled AndroidManifest.xml and keeps only what
metadata extraction needs: the ``package``, ``versionName`` and ``versionCode``
attributes of the root ``manifest`` element and the ``icon``/``label`` attributes
of the nested ``application`` element. No DOM is built.

Chunk layout reference (frameworks/base/libs/androidfw/ResourceTypes.h):

    ResXMLTree_node        header, lineNumber u32, comment u32
    ResXMLTree_attrExt     ns u32, name u32, attributeStart u16, attributeSize u16,
                           attributeCount u16, idIndex u16, classIndex u16, styleIndex u16
    ResXMLTree_attribute   ns u32, name u32, rawValue u32, Res_value typedValue
    Res_value              size u16, res0 u8, dataType u8, data u32
"""

from __future__ import annotations

import struct
from collections.abc import Callable
from dataclasses import dataclass, field

from ..core.exceptions import MalformedManifestError
from ..core.logging import get_logger
from ..models.app import AndroidManifestView, ResourceRef
from .string_pool import RES_STRING_POOL_TYPE, StringPool, decode_string_pool
from .stream import read_chunk_header

logger = get_logger(__name__)

RES_XML_TYPE = 0x0003
RES_XML_START_NAMESPACE_TYPE = 0x0100
RES_XML_END_NAMESPACE_TYPE = 0x0101
RES_XML_START_ELEMENT_TYPE = 0x0102
RES_XML_END_ELEMENT_TYPE = 0x0103
RES_XML_CDATA_TYPE = 0x0104
RES_XML_RESOURCE_MAP_TYPE = 0x0180

# Res_value data types
TYPE_NULL = 0x00
TYPE_REFERENCE = 0x01
TYPE_ATTRIBUTE = 0x02
TYPE_STRING = 0x03
TYPE_FLOAT = 0x04
TYPE_DYNAMIC_REFERENCE = 0x07
TYPE_INT_DEC = 0x10
TYPE_INT_HEX = 0x11
TYPE_INT_BOOLEAN = 0x12

REFERENCE_TYPES = frozenset({TYPE_REFERENCE, TYPE_DYNAMIC_REFERENCE})

# android:* attribute resource ids, used when attribute names are stripped
ATTR_LABEL = 0x01010001
ATTR_ICON = 0x01010002
ATTR_VERSION_CODE = 0x0101021B
ATTR_VERSION_NAME = 0x0101021C

ATTRIBUTE_IDS = {
    ATTR_LABEL: "label",
    ATTR_ICON: "icon",
    ATTR_VERSION_CODE: "versionCode",
    ATTR_VERSION_NAME: "versionName",
}

NODE_HEADER_SIZE = 16
ATTRIBUTE_MIN_SIZE = 20

AttributeValue = str | ResourceRef


@dataclass
class _ManifestState:
    """Mutable decoding state for one manifest stream."""

    strings: StringPool | None = None
    resource_ids: list[int] = field(default_factory=list)
    depth: int = 0
    root_seen: bool = False
    root_closed: bool = False
    manifest: dict[str, AttributeValue] = field(default_factory=dict)
    application: dict[str, AttributeValue] = field(default_factory=dict)


class BinaryXmlDecoder:
    """Decoder for a compiled AndroidManifest.xml."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self._handlers: dict[int, Callable[[_ManifestState, int, int, int], None]] = {
            RES_STRING_POOL_TYPE: self._on_string_pool,
            RES_XML_RESOURCE_MAP_TYPE: self._on_resource_map,
            RES_XML_START_ELEMENT_TYPE: self._on_start_element,
            RES_XML_END_ELEMENT_TYPE: self._on_end_element,
            # Namespace and text chunks carry nothing the manifest view needs
            RES_XML_START_NAMESPACE_TYPE: self._on_ignored,
            RES_XML_END_NAMESPACE_TYPE: self._on_ignored,
            RES_XML_CDATA_TYPE: self._on_ignored,
        }

    def decode(self) -> AndroidManifestView:
        """Stream the chunks and build the manifest view.

        Returns:
            AndroidManifestView with the root and application attributes.

        Raises:
            MalformedManifestError: On an unrecognized document header, a chunk that
                overruns the buffer, or missing required attributes.
        """
        data = self.data
        document = read_chunk_header(data, 0, MalformedManifestError)
        if document.type != RES_XML_TYPE:
            raise MalformedManifestError(
                message=f"Not a binary XML document (type 0x{document.type:04x})",
                offset=0,
            )

        state = _ManifestState()
        offset = document.body
        while offset < document.end and not state.root_closed:
            chunk = read_chunk_header(data, offset, MalformedManifestError, limit=document.end)
            handler = self._handlers.get(chunk.type)
            if handler is None:
                logger.debug("Skipping unknown XML chunk", chunk_type=f"0x{chunk.type:04x}", offset=offset)
            else:
                handler(state, offset, chunk.header_size, chunk.size)
            offset = chunk.end

        return self._build_view(state)

    def _on_ignored(self, state: _ManifestState, offset: int, header_size: int, size: int) -> None:
        pass

    def _on_string_pool(self, state: _ManifestState, offset: int, header_size: int, size: int) -> None:
        state.strings = decode_string_pool(self.data, offset)

    def _on_resource_map(self, state: _ManifestState, offset: int, header_size: int, size: int) -> None:
        count = (size - header_size) // 4
        state.resource_ids = list(struct.unpack_from(f"<{count}I", self.data, offset + header_size))

    def _on_start_element(self, state: _ManifestState, offset: int, header_size: int, size: int) -> None:
        if header_size < NODE_HEADER_SIZE or header_size + 20 > size:
            raise MalformedManifestError(message="Start element chunk too small", offset=offset)
        strings = self._require_strings(state, offset)

        ext = offset + header_size
        _, name_index, attr_start, attr_size, attr_count = struct.unpack_from("<IIHHH", self.data, ext)
        name = strings[name_index]
        depth = state.depth
        state.depth += 1

        if depth == 0:
            if name != "manifest":
                raise MalformedManifestError(message=f"Root element is <{name}>, not <manifest>", offset=offset)
            state.root_seen = True
            target = state.manifest
        elif depth == 1 and name == "application":
            target = state.application
        else:
            return

        if attr_size < ATTRIBUTE_MIN_SIZE:
            raise MalformedManifestError(message=f"Attribute size {attr_size} too small", offset=offset)
        first = ext + attr_start
        if first + attr_count * attr_size > offset + size:
            raise MalformedManifestError(
                message=f"{attr_count} attributes run past the end of <{name}>",
                offset=offset,
            )
        for i in range(attr_count):
            attr_name, value = self._read_attribute(state, strings, first + i * attr_size)
            target.setdefault(attr_name, value)

    def _on_end_element(self, state: _ManifestState, offset: int, header_size: int, size: int) -> None:
        if state.depth == 0:
            raise MalformedManifestError(message="End element without matching start", offset=offset)
        state.depth -= 1
        if state.depth == 0:
            state.root_closed = True

    def _read_attribute(self, state: _ManifestState, strings: StringPool, pos: int) -> tuple[str, AttributeValue]:
        _, name_index, raw_index, _, _, data_type, value = struct.unpack_from("<IIIHBBI", self.data, pos)

        # Resource ids win over names: obfuscators rename the strings, not the ids
        name = None
        if name_index < len(state.resource_ids):
            name = ATTRIBUTE_IDS.get(state.resource_ids[name_index])
        if name is None:
            name = strings[name_index]

        if data_type in REFERENCE_TYPES:
            return name, ResourceRef(resource_id=value)
        if data_type == TYPE_STRING:
            return name, strings[value]
        if data_type == TYPE_INT_DEC:
            return name, str(struct.unpack("<i", struct.pack("<I", value))[0])
        if data_type == TYPE_INT_HEX:
            return name, f"0x{value:x}"
        if data_type == TYPE_INT_BOOLEAN:
            return name, "true" if value else "false"
        raw = strings.get(raw_index)
        return name, raw if raw is not None else f"(type 0x{data_type:02x})0x{value:x}"

    def _require_strings(self, state: _ManifestState, offset: int) -> StringPool:
        if state.strings is None:
            raise MalformedManifestError(message="Element before string pool", offset=offset)
        return state.strings

    def _build_view(self, state: _ManifestState) -> AndroidManifestView:
        if not state.root_seen:
            raise MalformedManifestError(message="No <manifest> element found")
        if not state.root_closed:
            raise MalformedManifestError(message="<manifest> element is never closed")

        attrs = state.manifest
        package = attrs.get("package")
        version_name = attrs.get("versionName")
        if not isinstance(package, str) or not package:
            raise MalformedManifestError(message="<manifest> has no package attribute")
        if version_name is None:
            raise MalformedManifestError(
                message="<manifest> has no versionName attribute",
                context={"package": package},
            )
        version_code = attrs.get("versionCode")

        view = AndroidManifestView(
            package=package,
            version_name=version_name,
            version_code=str(version_code) if version_code is not None else None,
            application_label=state.application.get("label"),
            application_icon=state.application.get("icon"),
        )
        logger.debug("Decoded manifest", package=view.package, version_name=str(view.version_name))
        return view


def decode_manifest(data: bytes) -> AndroidManifestView:
    """Decode AndroidManifest.xml bytes into an AndroidManifestView."""
    return BinaryXmlDecoder(data).decode()
