"""Core infrastructure components for appmeta."""

from .config import Config, get_config
from .exceptions import (
    AppMetaError,
    ArchiveOpenError,
    DecodeError,
    EntryNotFoundError,
    IconNotFoundError,
    MalformedManifestError,
    MalformedPlistError,
    MalformedPngError,
    MalformedProvisioningProfileError,
    MalformedResourceTableError,
    MalformedStringPoolError,
    ManifestNotFoundError,
    MobileProvisionNotFoundError,
    PlistNotFoundError,
    ReferenceCycleError,
    ResourceNotFoundError,
    UnknownPlatformError,
    UnsupportedImageFormatError,
)
from .logging import archive_context, get_logger, setup_logging

__all__ = [
    "Config",
    "get_config",
    "AppMetaError",
    "ArchiveOpenError",
    "DecodeError",
    "EntryNotFoundError",
    "IconNotFoundError",
    "MalformedManifestError",
    "MalformedPlistError",
    "MalformedPngError",
    "MalformedProvisioningProfileError",
    "MalformedResourceTableError",
    "MalformedStringPoolError",
    "ManifestNotFoundError",
    "MobileProvisionNotFoundError",
    "PlistNotFoundError",
    "ReferenceCycleError",
    "ResourceNotFoundError",
    "UnknownPlatformError",
    "UnsupportedImageFormatError",
    "archive_context",
    "get_logger",
    "setup_logging",
]
