"""
appmeta: Metadata extraction for mobile installer archives.

Reads the name, bundle identifier, version, build number, icon and signing
facts of Android .apk and iOS .ipa packages by decoding their binary metadata
files in memory.
"""

__version__ = "1.0.0"

from .services.extraction import extract_app_metadata

__all__ = ["extract_app_metadata", "__version__"]
