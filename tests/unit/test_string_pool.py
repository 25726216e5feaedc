"""Unit tests for string pool decoding."""

import struct

import pytest

from appmeta.core.exceptions import MalformedStringPoolError
from appmeta.formats.string_pool import NO_INDEX, decode_string_pool
from tests.builders import build_string_pool


class TestStringPool:
    """Tests for decode_string_pool and StringPool lookups."""

    @pytest.mark.parametrize("utf8", [False, True])
    def test_decodes_strings_in_order(self, utf8):
        """Test that both encodings decode to the same ordered strings."""
        pool = decode_string_pool(build_string_pool(["manifest", "package", "Grüße", ""], utf8=utf8))

        assert len(pool) == 4
        assert pool.utf8 is utf8
        assert [pool[i] for i in range(4)] == ["manifest", "package", "Grüße", ""]

    def test_long_utf8_string_uses_two_byte_length(self):
        """Test the high-bit length form for strings of 128+ bytes."""
        long_value = "x" * 300
        pool = decode_string_pool(build_string_pool(["a", long_value], utf8=True))

        assert pool[1] == long_value

    def test_pool_at_offset(self):
        """Test decoding a pool that does not start at offset 0."""
        data = b"\x00" * 12 + build_string_pool(["one", "two"])
        pool = decode_string_pool(data, 12)

        assert pool[1] == "two"

    def test_out_of_range_index_raises(self):
        """Test that an index past the pool is an error, not an empty string."""
        pool = decode_string_pool(build_string_pool(["only"]))

        with pytest.raises(MalformedStringPoolError):
            pool[1]
        with pytest.raises(MalformedStringPoolError):
            pool[-1]

    def test_get_maps_sentinel_to_none(self):
        """Test that the 0xFFFFFFFF sentinel means no string."""
        pool = decode_string_pool(build_string_pool(["only"]))

        assert pool.get(NO_INDEX) is None
        assert pool.get(0) == "only"
        with pytest.raises(MalformedStringPoolError):
            pool[NO_INDEX]

    def test_wrong_chunk_type_raises(self):
        """Test that a non string-pool chunk is rejected."""
        data = bytearray(build_string_pool(["a"]))
        struct.pack_into("<H", data, 0, 0x0003)

        with pytest.raises(MalformedStringPoolError, match="Expected string pool"):
            decode_string_pool(bytes(data))

    def test_chunk_size_past_buffer_raises(self):
        """Test that a truncated pool is rejected at decode time."""
        data = build_string_pool(["alpha", "beta"])

        with pytest.raises(MalformedStringPoolError):
            decode_string_pool(data[:-4])

    def test_string_length_past_pool_raises(self):
        """Test that a corrupt length prefix is caught on lookup."""
        data = bytearray(build_string_pool(["abc"]))
        strings_start = struct.unpack_from("<I", data, 20)[0]
        struct.pack_into("<H", data, strings_start, 0x0400)

        pool = decode_string_pool(bytes(data))
        with pytest.raises(MalformedStringPoolError, match="runs past"):
            pool[0]

    def test_error_carries_format_name(self):
        """Test that decode errors render their format and offset."""
        with pytest.raises(MalformedStringPoolError) as exc_info:
            decode_string_pool(b"\x01\x00")

        assert exc_info.value.format_name == "string-pool"
        assert "[string-pool at offset 0]" in str(exc_info.value)
