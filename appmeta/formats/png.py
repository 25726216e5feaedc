"""
Reversal of Apple's CgBI PNG optimisation.

Xcode rewrites bundled PNGs so the device can blit them directly: a private
``CgBI`` chunk is inserted first, pixels are stored in BGRA order and the IDAT
stream is raw DEFLATE without the zlib header and Adler-32 trailer. Standard
decoders reject such files. ``revert_cgbi`` turns them back into ordinary PNGs;
files without the marker are returned untouched.
"""

from __future__ import annotations

import struct
import zlib
from typing import NamedTuple

from ..core.exceptions import MalformedPngError, UnsupportedImageFormatError
from ..core.logging import get_logger

logger = get_logger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

CHUNK_CGBI = b"CgBI"
CHUNK_IHDR = b"IHDR"
CHUNK_IDAT = b"IDAT"
CHUNK_IEND = b"IEND"

COLOR_TYPE_RGBA = 6
BYTES_PER_PIXEL = 4

FILTER_NONE = 0
FILTER_SUB = 1
FILTER_UP = 2
FILTER_AVERAGE = 3
FILTER_PAETH = 4


class PngChunk(NamedTuple):
    type: bytes
    data: bytes


class ImageHeader(NamedTuple):
    width: int
    height: int
    bit_depth: int
    color_type: int
    interlace: int


def read_chunks(data: bytes) -> list[PngChunk]:
    """Split a PNG byte stream into its chunks (CRCs are not checked).

    Raises:
        MalformedPngError: On a bad signature or a chunk running past the buffer.
    """
    if not data.startswith(PNG_SIGNATURE):
        raise MalformedPngError(message="Missing PNG signature", offset=0)
    chunks: list[PngChunk] = []
    pos = len(PNG_SIGNATURE)
    while pos < len(data):
        if pos + 8 > len(data):
            raise MalformedPngError(message="Truncated chunk header", offset=pos)
        length, chunk_type = struct.unpack_from(">I4s", data, pos)
        end = pos + 8 + length + 4
        if end > len(data):
            raise MalformedPngError(
                message=f"Chunk {chunk_type!r} declares {length} bytes past the end of the buffer",
                offset=pos,
            )
        chunks.append(PngChunk(chunk_type, data[pos + 8 : pos + 8 + length]))
        pos = end
        if chunk_type == CHUNK_IEND:
            break
    return chunks


def write_chunk(chunk_type: bytes, data: bytes) -> bytes:
    """Serialize one chunk with a freshly computed CRC-32 over type + data."""
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def is_cgbi(data: bytes) -> bool:
    """True if the first chunk after the signature is CgBI."""
    if not data.startswith(PNG_SIGNATURE) or len(data) < len(PNG_SIGNATURE) + 8:
        return False
    return data[len(PNG_SIGNATURE) + 4 : len(PNG_SIGNATURE) + 8] == CHUNK_CGBI


def parse_header(chunks: list[PngChunk]) -> ImageHeader:
    for chunk in chunks:
        if chunk.type == CHUNK_IHDR:
            if len(chunk.data) != 13:
                raise MalformedPngError(message=f"IHDR has {len(chunk.data)} bytes, expected 13")
            width, height, bit_depth, color_type, _, _, interlace = struct.unpack(">IIBBBBB", chunk.data)
            if width == 0 or height == 0:
                raise MalformedPngError(message=f"Invalid dimensions {width}x{height}")
            return ImageHeader(width, height, bit_depth, color_type, interlace)
    raise MalformedPngError(message="No IHDR chunk")


def _paeth(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def unfilter_scanlines(raw: bytes, width: int, height: int, bpp: int = BYTES_PER_PIXEL) -> bytearray:
    """Undo PNG per-scanline filtering.

    Args:
        raw: Decompressed IDAT data (filter byte + scanline, per row).
        width: Image width in pixels.
        height: Image height in pixels.
        bpp: Bytes per complete pixel.

    Returns:
        Reconstructed pixel rows, without filter bytes.
    """
    stride = width * bpp
    if len(raw) < height * (stride + 1):
        raise MalformedPngError(
            message=f"Pixel data has {len(raw)} bytes, need {height * (stride + 1)}",
        )
    out = bytearray(height * stride)
    previous = bytearray(stride)
    for y in range(height):
        start = y * (stride + 1)
        filter_type = raw[start]
        line = bytearray(raw[start + 1 : start + 1 + stride])
        if filter_type == FILTER_NONE:
            pass
        elif filter_type == FILTER_SUB:
            for x in range(bpp, stride):
                line[x] = (line[x] + line[x - bpp]) & 0xFF
        elif filter_type == FILTER_UP:
            for x in range(stride):
                line[x] = (line[x] + previous[x]) & 0xFF
        elif filter_type == FILTER_AVERAGE:
            for x in range(stride):
                left = line[x - bpp] if x >= bpp else 0
                line[x] = (line[x] + ((left + previous[x]) >> 1)) & 0xFF
        elif filter_type == FILTER_PAETH:
            for x in range(stride):
                left = line[x - bpp] if x >= bpp else 0
                upper_left = previous[x - bpp] if x >= bpp else 0
                line[x] = (line[x] + _paeth(left, previous[x], upper_left)) & 0xFF
        else:
            raise MalformedPngError(message=f"Unknown filter type {filter_type} on row {y}")
        out[y * stride : (y + 1) * stride] = line
        previous = line
    return out


def swap_red_blue(pixels: bytearray) -> None:
    """Turn BGRA pixels into RGBA in place; alpha is left untouched."""
    pixels[0::4], pixels[2::4] = pixels[2::4], pixels[0::4]


def revert_cgbi(data: bytes) -> bytes:
    """Convert an Apple CgBI PNG into a standard PNG.

    Args:
        data: PNG bytes, optimised or not.

    Returns:
        A standard PNG. Input without a leading CgBI chunk is returned unchanged.

    Raises:
        MalformedPngError: On structural damage or undecodable pixel data.
        UnsupportedImageFormatError: For anything other than 8-bit,
            non-interlaced RGBA.
    """
    chunks = read_chunks(data)
    if not chunks or chunks[0].type != CHUNK_CGBI:
        return data

    header = parse_header(chunks)
    if header.bit_depth != 8 or header.color_type != COLOR_TYPE_RGBA:
        raise UnsupportedImageFormatError(
            message=f"Unsupported CgBI layout: bit depth {header.bit_depth}, color type {header.color_type}",
            context={"width": header.width, "height": header.height},
        )
    if header.interlace != 0:
        raise UnsupportedImageFormatError(message="Interlaced CgBI images are not supported")

    compressed = b"".join(chunk.data for chunk in chunks if chunk.type == CHUNK_IDAT)
    if not compressed:
        raise MalformedPngError(message="No IDAT chunk")
    try:
        raw = zlib.decompressobj(-zlib.MAX_WBITS).decompress(compressed)
    except zlib.error as e:
        raise MalformedPngError(message="Corrupt raw DEFLATE stream", cause=e) from e

    pixels = unfilter_scanlines(raw, header.width, header.height)
    swap_red_blue(pixels)

    stride = header.width * BYTES_PER_PIXEL
    filtered = bytearray()
    for y in range(header.height):
        filtered.append(FILTER_NONE)
        filtered += pixels[y * stride : (y + 1) * stride]
    idat = zlib.compress(bytes(filtered), 9)

    out = bytearray(PNG_SIGNATURE)
    idat_written = False
    for chunk in chunks[1:]:
        if chunk.type == CHUNK_IDAT:
            if not idat_written:
                out += write_chunk(CHUNK_IDAT, idat)
                idat_written = True
            continue
        out += write_chunk(chunk.type, chunk.data)

    logger.debug("Reverted CgBI PNG", width=header.width, height=header.height, size=len(out))
    return bytes(out)
