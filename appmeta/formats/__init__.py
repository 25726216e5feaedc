"""Binary format decoders for Android and iOS package metadata."""

from .arsc import ResourceTable, decode_resource_table
from .axml import decode_manifest
from .plist import PlistUID, decode_plist, decode_plist_dict
from .png import is_cgbi, revert_cgbi
from .provision import classify_profile, parse_profile, read_distribution_info
from .string_pool import StringPool, decode_string_pool

__all__ = [
    "PlistUID",
    "ResourceTable",
    "StringPool",
    "classify_profile",
    "decode_manifest",
    "decode_plist",
    "decode_plist_dict",
    "decode_resource_table",
    "decode_string_pool",
    "is_cgbi",
    "parse_profile",
    "read_distribution_info",
    "revert_cgbi",
]
