"""
Custom exception hierarchy for appmeta.

All exceptions inherit from AppMetaError so callers can catch a single type.
Errors fall into three families: archive-level failures, entries that are
missing from the archive, and decode failures raised at the point where
malformed input is detected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AppMetaError(Exception):
    """Base exception for all appmeta errors."""

    message: str
    context: dict[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:
        ctx = f" | context: {self.context}" if self.context else ""
        cause = f" | caused by: {self.cause}" if self.cause else ""
        return f"{self.message}{ctx}{cause}"


@dataclass
class ArchiveOpenError(AppMetaError):
    """Raised when the input cannot be opened as a zip archive."""

    path: str = ""


@dataclass
class UnknownPlatformError(AppMetaError):
    """Raised when the archive extension maps to no supported platform."""

    extension: str = ""

    def __str__(self) -> str:
        return f"Unknown platform for extension '{self.extension}': {super().__str__()}"


@dataclass
class EntryNotFoundError(AppMetaError):
    """Raised when a required archive entry is absent."""

    entry_name: str = ""


@dataclass
class ManifestNotFoundError(EntryNotFoundError):
    """AndroidManifest.xml is missing from an APK."""


@dataclass
class PlistNotFoundError(EntryNotFoundError):
    """Payload/<app>/Info.plist is missing from an IPA."""


@dataclass
class IconNotFoundError(EntryNotFoundError):
    """No icon entry could be located."""


@dataclass
class MobileProvisionNotFoundError(EntryNotFoundError):
    """Payload/<app>/embedded.mobileprovision is missing from an IPA."""


@dataclass
class ResourceNotFoundError(EntryNotFoundError):
    """A resource id has no usable entry in the resource table."""

    resource_id: int = 0

    def __str__(self) -> str:
        return f"[resource 0x{self.resource_id:08x}] {super().__str__()}"


@dataclass
class DecodeError(AppMetaError):
    """Raised when binary or textual input does not match its format."""

    format_name: str = ""
    offset: int | None = None

    def __str__(self) -> str:
        base = super().__str__()
        where = f" at offset {self.offset}" if self.offset is not None else ""
        return f"[{self.format_name}{where}] {base}"


@dataclass
class MalformedStringPoolError(DecodeError):
    """A string pool header, offset or index is invalid."""

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "string-pool"


@dataclass
class MalformedManifestError(DecodeError):
    """AndroidManifest.xml is not valid binary XML or lacks required attributes."""

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "axml"


@dataclass
class MalformedResourceTableError(DecodeError):
    """resources.arsc chunk structure is invalid."""

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "arsc"


@dataclass
class MalformedPlistError(DecodeError):
    """A property list is truncated, has a bad index or an unknown marker."""

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "plist"


@dataclass
class MalformedPngError(DecodeError):
    """PNG signature, chunk layout or pixel data is invalid."""

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "png"


@dataclass
class UnsupportedImageFormatError(DecodeError):
    """The image is valid but uses a pixel layout that cannot be handled."""

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "image"


@dataclass
class ReferenceCycleError(DecodeError):
    """A resource reference chain did not terminate within the hop bound."""

    resource_id: int = 0
    hops: int = 0

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "arsc"

    def __str__(self) -> str:
        return (
            f"Reference chain from 0x{self.resource_id:08x} exceeded {self.hops} hops: "
            f"{self.message}"
        )


@dataclass
class MalformedProvisioningProfileError(DecodeError):
    """The provisioning profile is not a readable CMS signed-data plist."""

    def __post_init__(self) -> None:
        self.format_name = self.format_name or "mobileprovision"
