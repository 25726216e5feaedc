"""
Extraction Service.

Scans an installer archive once, classifies the entries the platform decoders
need, and assembles a single AppMetadata record.
"""

from __future__ import annotations

import io
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TypeVar

from PIL import Image

from ...archive import PackageArchive, open_archive
from ...core.config import Config, get_config
from ...core.exceptions import (
    AppMetaError,
    EntryNotFoundError,
    IconNotFoundError,
    MalformedPlistError,
    MalformedPngError,
    ManifestNotFoundError,
    MobileProvisionNotFoundError,
    PlistNotFoundError,
    ResourceNotFoundError,
    UnknownPlatformError,
    UnsupportedImageFormatError,
)
from ...core.logging import archive_context, get_logger
from ...formats.arsc import ResourceTable, decode_resource_table
from ...formats.axml import decode_manifest
from ...formats.plist import decode_plist_dict
from ...formats.png import PNG_SIGNATURE, revert_cgbi
from ...formats.provision import read_distribution_info
from ...models.app import (
    AndroidManifestView,
    AppMetadata,
    ExtractionIssue,
    IconBitmap,
    IosDistributionInfo,
    Platform,
    ResourceRef,
)

logger = get_logger(__name__)

T = TypeVar("T")

ANDROID_MANIFEST = "AndroidManifest.xml"
ANDROID_RESOURCES = "resources.arsc"
IOS_INFO_PLIST = re.compile(r"^Payload/[^/]+/Info\.plist$")
IOS_PROVISION = re.compile(r"^Payload/[^/]+/embedded\.mobileprovision$")

PLATFORM_EXTENSIONS = {
    ".apk": Platform.ANDROID,
    ".ipa": Platform.IOS,
}


@dataclass
class LocatedEntries:
    """Entry names found by the classification scan (None when absent)."""

    manifest: str | None = None
    resources: str | None = None
    info_plist: str | None = None
    provision: str | None = None
    icon: str | None = None


def detect_platform(file_name: str) -> Platform:
    """Map an archive file name to its platform by extension.

    Raises:
        UnknownPlatformError: For anything other than .apk or .ipa.
    """
    extension = PurePosixPath(file_name).suffix.lower()
    platform = PLATFORM_EXTENSIONS.get(extension)
    if platform is None:
        raise UnknownPlatformError(
            message=f"Cannot tell the platform of {file_name}",
            extension=extension,
        )
    return platform


def locate_entries(names: Iterable[str], platform: Platform, icon_fragment: str) -> LocatedEntries:
    """Classify archive entries in one pass, keeping the first match of each kind.

    Args:
        names: Entry names in archive order.
        platform: Platform whose patterns apply.
        icon_fragment: Substring identifying the iOS icon entry.

    Returns:
        The located entries.
    """
    found = LocatedEntries()
    for name in names:
        if platform is Platform.ANDROID:
            if name == ANDROID_MANIFEST and found.manifest is None:
                found.manifest = name
            elif name == ANDROID_RESOURCES and found.resources is None:
                found.resources = name
            continue

        if found.info_plist is None and IOS_INFO_PLIST.match(name):
            found.info_plist = name
        elif found.provision is None and IOS_PROVISION.match(name):
            found.provision = name
        elif found.icon is None and icon_fragment in name:
            # First hit in archive order wins, even if a larger variant follows
            found.icon = name
    return found


def decode_icon(data: bytes, source_path: str) -> IconBitmap:
    """Decode image bytes into an RGBA bitmap with Pillow.

    Raises:
        MalformedPngError: If PNG data cannot be decoded.
        UnsupportedImageFormatError: If the bytes are not an image Pillow reads.
    """
    error_cls = MalformedPngError if data.startswith(PNG_SIGNATURE) else UnsupportedImageFormatError
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            rgba = image.convert("RGBA")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise error_cls(
            message=f"Cannot decode icon image: {e}",
            context={"source_path": source_path},
            cause=e,
        ) from e
    return IconBitmap(width=rgba.width, height=rgba.height, pixels=rgba.tobytes(), source_path=source_path)


class _ResourceLookup:
    """Decodes resources.arsc on first use."""

    def __init__(self, archive: PackageArchive, entry: str | None, max_reference_hops: int) -> None:
        self.archive = archive
        self.entry = entry
        self.max_reference_hops = max_reference_hops
        self._table: ResourceTable | None = None

    def table(self) -> ResourceTable:
        if self._table is None:
            if self.entry is None:
                raise ResourceNotFoundError(
                    message=f"{ANDROID_RESOURCES} not found in {self.archive.name}",
                    entry_name=ANDROID_RESOURCES,
                )
            self._table = decode_resource_table(self.archive.read(self.entry), self.max_reference_hops)
        return self._table


class ExtractionService:
    """Service for extracting AppMetadata from APK and IPA archives.

    Bundle id, version and platform are mandatory: their failures propagate.
    Name, icon and provisioning info are optional: a failure there is logged,
    recorded in AppMetadata.issues, and the field is left as None.
    """

    def __init__(self, config: Config | None = None) -> None:
        """Initialize the extraction service.

        Args:
            config: Configuration; the cached environment config when omitted.
        """
        self.config = config or get_config()

    def extract(self, source: Path | str | PackageArchive) -> AppMetadata:
        """Extract metadata from a path or an already opened archive.

        A path is checked for a known extension before it is opened. An
        archive passed in stays open; the caller owns it.
        """
        if isinstance(source, PackageArchive):
            return self.extract_archive(source)

        path = Path(source)
        detect_platform(path.name)
        with open_archive(path) as archive:
            return self.extract_archive(archive)

    def extract_archive(self, archive: PackageArchive) -> AppMetadata:
        platform = detect_platform(archive.name)
        with archive_context(archive.name, platform.value):
            entries = locate_entries(archive.names(), platform, self.config.archive.ios_icon_fragment)
            logger.debug("Located entries", entries=entries)

            if platform is Platform.ANDROID:
                metadata = self._extract_android(archive, entries)
            else:
                metadata = self._extract_ios(archive, entries)

        logger.info(
            "Extracted app metadata",
            archive=archive.name,
            bundle_id=metadata.bundle_id,
            version=metadata.version,
            issues=len(metadata.issues),
        )
        return metadata

    def _extract_android(self, archive: PackageArchive, entries: LocatedEntries) -> AppMetadata:
        if entries.manifest is None:
            raise ManifestNotFoundError(
                message=f"{ANDROID_MANIFEST} not found in {archive.name}",
                entry_name=ANDROID_MANIFEST,
            )
        manifest = decode_manifest(archive.read(entries.manifest))
        resources = _ResourceLookup(archive, entries.resources, self.config.decoding.max_reference_hops)

        version = manifest.version_name
        if isinstance(version, ResourceRef):
            version = resources.table().resolve_string(version.resource_id)

        issues: list[ExtractionIssue] = []
        name = self._optional(issues, "name", lambda: self._android_label(manifest, resources))
        icon = self._optional(issues, "icon", lambda: self._android_icon(archive, manifest, resources))

        return AppMetadata(
            name=name,
            bundle_id=manifest.package,
            version=version,
            build=manifest.version_code,
            icon=icon,
            size_bytes=archive.size,
            platform=Platform.ANDROID,
            issues=issues,
        )

    def _android_label(self, manifest: AndroidManifestView, resources: _ResourceLookup) -> str:
        label = manifest.application_label
        if label is None:
            raise EntryNotFoundError(message="<application> declares no label", entry_name="")
        if isinstance(label, ResourceRef):
            return resources.table().resolve_string(label.resource_id)
        return label

    def _android_icon(
        self, archive: PackageArchive, manifest: AndroidManifestView, resources: _ResourceLookup
    ) -> IconBitmap:
        icon = manifest.application_icon
        if icon is None:
            raise IconNotFoundError(message="<application> declares no icon", entry_name="")
        if isinstance(icon, ResourceRef):
            path = resources.table().resolve_file(icon.resource_id, self.config.decoding.target_density)
        else:
            path = icon
        return decode_icon(self._read_icon_entry(archive, path), path)

    def _extract_ios(self, archive: PackageArchive, entries: LocatedEntries) -> AppMetadata:
        if entries.info_plist is None:
            raise PlistNotFoundError(
                message=f"No Payload/<app>/Info.plist in {archive.name}",
                entry_name="Info.plist",
            )
        info = decode_plist_dict(archive.read(entries.info_plist))

        bundle_id = _plist_string(info, "CFBundleIdentifier")
        if not bundle_id:
            raise MalformedPlistError(
                message="Info.plist has no CFBundleIdentifier",
                context={"entry": entries.info_plist},
            )
        version = _plist_string(info, "CFBundleShortVersionString") or _plist_string(info, "CFBundleVersion")
        if not version:
            raise MalformedPlistError(
                message="Info.plist has neither CFBundleShortVersionString nor CFBundleVersion",
                context={"entry": entries.info_plist, "bundle_id": bundle_id},
            )

        issues: list[ExtractionIssue] = []
        icon = self._optional(issues, "icon", lambda: self.read_ios_icon(archive, entries.icon))
        ios_info = self._optional(issues, "ios_info", lambda: self.read_provisioning(archive, entries.provision))

        return AppMetadata(
            name=_plist_string(info, "CFBundleDisplayName") or _plist_string(info, "CFBundleName"),
            bundle_id=bundle_id,
            version=version,
            build=_plist_string(info, "CFBundleVersion"),
            icon=icon,
            size_bytes=archive.size,
            platform=Platform.IOS,
            ios_info=ios_info,
            issues=issues,
        )

    def read_ios_icon(self, archive: PackageArchive, entry: str | None) -> IconBitmap:
        """Read an iOS icon entry, undoing the CgBI optimisation first.

        Raises:
            IconNotFoundError: If no icon entry was located.
        """
        if entry is None:
            fragment = self.config.archive.ios_icon_fragment
            raise IconNotFoundError(
                message=f"No entry name contains '{fragment}' in {archive.name}",
                entry_name=fragment,
            )
        return decode_icon(revert_cgbi(self._read_icon_entry(archive, entry)), entry)

    def read_provisioning(self, archive: PackageArchive, entry: str | None) -> IosDistributionInfo:
        """Parse and classify the embedded provisioning profile.

        Raises:
            MobileProvisionNotFoundError: If no profile entry was located.
            MalformedProvisioningProfileError: If the profile cannot be decoded.
        """
        if entry is None:
            raise MobileProvisionNotFoundError(
                message=f"No Payload/<app>/embedded.mobileprovision in {archive.name}",
                entry_name="embedded.mobileprovision",
            )
        return read_distribution_info(archive.read(entry))

    def _read_icon_entry(self, archive: PackageArchive, path: str) -> bytes:
        try:
            return archive.read(path)
        except EntryNotFoundError as e:
            raise IconNotFoundError(
                message=f"Icon entry missing from {archive.name}",
                entry_name=path,
                cause=e,
            ) from e

    def _optional(self, issues: list[ExtractionIssue], field: str, load: Callable[[], T]) -> T | None:
        try:
            return load()
        except AppMetaError as e:
            logger.warning("Optional field unavailable", field=field, error=type(e).__name__, detail=str(e))
            issues.append(ExtractionIssue(field=field, error_type=type(e).__name__, message=str(e)))
            return None


def _plist_string(info: dict[str, object], key: str) -> str | None:
    value = info.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return value if isinstance(value, str) else None


def extract_app_metadata(source: Path | str | PackageArchive, config: Config | None = None) -> AppMetadata:
    """Extract metadata from an .apk or .ipa.

    Args:
        source: Archive path, or a PackageArchive owned by the caller.
        config: Optional configuration override.

    Returns:
        The assembled AppMetadata.

    Raises:
        AppMetaError: A specific subclass when mandatory data cannot be read.
    """
    return ExtractionService(config).extract(source)
