"""Unit tests for the extraction service."""

import io

import pytest
from PIL import Image

from appmeta import extract_app_metadata
from appmeta.archive import ZipPackageArchive
from appmeta.core.config import ArchiveConfig, Config, DecodingConfig
from appmeta.core.exceptions import (
    ArchiveOpenError,
    EntryNotFoundError,
    IconNotFoundError,
    MalformedManifestError,
    MalformedPlistError,
    ManifestNotFoundError,
    MobileProvisionNotFoundError,
    PlistNotFoundError,
    ReferenceCycleError,
    UnknownPlatformError,
)
from appmeta.models.app import IosDistributionType, Platform
from appmeta.services.extraction import ExtractionService, detect_platform, locate_entries
from tests.builders import (
    IOS_APP_DIR,
    LABEL_ID,
    VERSION_ID,
    ArscBuilder,
    Ref,
    build_helloworld_apk,
    build_helloworld_ipa,
    build_helloworld_table,
    build_manifest,
    build_png,
    build_zip,
    helloworld_info_plist,
    helloworld_profile,
    icon_path,
)


class TestPlatformDispatch:
    """Tests for extension-based platform selection."""

    @pytest.mark.parametrize(
        "name, platform",
        [("app.apk", Platform.ANDROID), ("APP.APK", Platform.ANDROID), ("Store.ipa", Platform.IOS)],
    )
    def test_known_extensions(self, name, platform):
        """Test case-insensitive extension mapping."""
        assert detect_platform(name) is platform

    def test_unknown_extension(self, temp_dir):
        """Test that an unknown extension fails before the file is opened."""
        path = temp_dir / "bundle.zip"
        path.write_bytes(b"not even a zip")

        with pytest.raises(UnknownPlatformError) as exc_info:
            extract_app_metadata(path)
        assert exc_info.value.extension == ".zip"

    def test_not_a_zip(self, temp_dir):
        """Test that a corrupt archive raises ArchiveOpenError."""
        path = temp_dir / "broken.apk"
        path.write_bytes(b"PK\x03\x04 truncated")

        with pytest.raises(ArchiveOpenError):
            extract_app_metadata(path)

    def test_missing_file(self, temp_dir):
        """Test that a path that does not exist raises ArchiveOpenError."""
        with pytest.raises(ArchiveOpenError):
            extract_app_metadata(temp_dir / "missing.ipa")


class TestLocateEntries:
    """Tests for the single-pass entry classification."""

    def test_android_entries(self):
        """Test exact-name matching for the manifest and resource table."""
        found = locate_entries(
            ["res/AndroidManifest.xml", "AndroidManifest.xml", "resources.arsc"], Platform.ANDROID, "AppIcon60x60"
        )

        assert found.manifest == "AndroidManifest.xml"
        assert found.resources == "resources.arsc"
        assert found.info_plist is None

    def test_ios_entries(self):
        """Test payload patterns and first-match icon selection."""
        names = [
            "Payload/A.app/Frameworks/X.framework/Info.plist",
            "Payload/A.app/Info.plist",
            "Payload/A.app/AppIcon60x60@3x.png",
            "Payload/A.app/AppIcon60x60@2x.png",
            "Payload/A.app/embedded.mobileprovision",
            "Payload/B.app/Info.plist",
        ]
        found = locate_entries(names, Platform.IOS, "AppIcon60x60")

        assert found.info_plist == "Payload/A.app/Info.plist"
        assert found.provision == "Payload/A.app/embedded.mobileprovision"
        assert found.icon == "Payload/A.app/AppIcon60x60@3x.png"
        assert found.manifest is None


class TestAndroidExtraction:
    """Tests for APK metadata assembly."""

    def test_helloworld_apk(self, helloworld_apk, config):
        """Test identity fields, platform and size of the reference APK."""
        metadata = extract_app_metadata(helloworld_apk, config)

        assert metadata.platform is Platform.ANDROID
        assert metadata.bundle_id == "com.example.helloworld"
        assert metadata.version == "1.0"
        assert metadata.build == "1"
        assert metadata.size_bytes == helloworld_apk.stat().st_size
        assert metadata.ios_info is None
        assert metadata.issues == []

    def test_label_and_icon(self, helloworld_apk, config):
        """Test label resolution and the 720 dpi icon choice."""
        metadata = extract_app_metadata(helloworld_apk, config)

        assert metadata.name == "HelloWorld"
        assert metadata.icon is not None
        assert metadata.icon.source_path == icon_path(640)
        assert (metadata.icon.width, metadata.icon.height) == (192, 192)
        assert len(metadata.icon.pixels) == 192 * 192 * 4

    def test_icon_reencode_is_deterministic(self, helloworld_apk, config):
        """Test that the icon re-encodes to the same PNG bytes every time."""
        first = extract_app_metadata(helloworld_apk, config).icon.to_png()
        second = extract_app_metadata(helloworld_apk, config).icon.to_png()

        assert first == second
        with Image.open(io.BytesIO(first)) as image:
            assert image.size == (192, 192)

    def test_target_density_from_config(self, helloworld_apk):
        """Test that the configured density drives bucket selection."""
        config = Config(decoding=DecodingConfig(target_density=240))
        metadata = extract_app_metadata(helloworld_apk, config)

        assert metadata.icon.source_path == icon_path(240)

    def test_archive_owned_by_caller(self, helloworld_apk_bytes, config):
        """Test extraction from an in-memory archive the caller keeps open."""
        archive = ZipPackageArchive.from_bytes(helloworld_apk_bytes, "helloworld.apk")
        metadata = ExtractionService(config).extract(archive)

        assert metadata.size_bytes == len(helloworld_apk_bytes)
        assert archive.read("AndroidManifest.xml")
        archive.close()

    def test_version_name_resolved_from_resources(self, config):
        """Test a versionName given as a string resource reference."""
        data = build_helloworld_apk(version_name=Ref(VERSION_ID))
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "ref.apk"))

        assert metadata.version == "1.0"

    def test_manifest_not_found(self, config):
        """Test that an APK without a manifest fails."""
        data = build_zip([("classes.dex", b"dex\n035\x00")])

        with pytest.raises(ManifestNotFoundError):
            ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "empty.apk"))

    def test_malformed_manifest_propagates(self, config):
        """Test that a mandatory decode failure is not swallowed."""
        data = build_zip([("AndroidManifest.xml", b"<manifest/>")])

        with pytest.raises(MalformedManifestError):
            ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "text.apk"))

    def test_missing_resource_table_degrades(self, config):
        """Test that label and icon become None with issues recorded."""
        data = build_zip([("AndroidManifest.xml", build_manifest(label=Ref(LABEL_ID), icon=Ref(0x7F020000)))])
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "bare.apk"))

        assert metadata.bundle_id == "com.example.helloworld"
        assert metadata.name is None
        assert metadata.icon is None
        assert {issue.field for issue in metadata.issues} == {"name", "icon"}
        assert {issue.error_type for issue in metadata.issues} == {"ResourceNotFoundError"}

    def test_icon_cycle_recorded(self, config):
        """Test that a self-referencing icon yields ReferenceCycleError in issues, not a hang."""
        table = ArscBuilder().add(0x7F020000, Ref(0x7F020000), density=160).add(LABEL_ID, "HelloWorld").build()
        data = build_zip(
            [
                ("AndroidManifest.xml", build_manifest(label=Ref(LABEL_ID), icon=Ref(0x7F020000))),
                ("resources.arsc", table),
            ]
        )
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "cycle.apk"))

        assert metadata.name == "HelloWorld"
        assert metadata.icon is None
        assert metadata.issues[0].field == "icon"
        assert metadata.issues[0].error_type == ReferenceCycleError.__name__

    def test_icon_file_missing(self, config):
        """Test that a resolved icon path absent from the archive is IconNotFoundError."""
        data = build_zip(
            [
                ("AndroidManifest.xml", build_manifest(label="Hello", icon=Ref(0x7F020000))),
                ("resources.arsc", build_helloworld_table()),
            ]
        )
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "noicon.apk"))

        assert metadata.icon is None
        assert metadata.issues[0].error_type == IconNotFoundError.__name__

    def test_missing_label_recorded(self, config):
        """Test that an application without a label records an issue like a missing icon does."""
        data = build_zip([("AndroidManifest.xml", build_manifest())])
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "bare.apk"))

        assert metadata.name is None
        assert [(i.field, i.error_type) for i in metadata.issues] == [
            ("name", EntryNotFoundError.__name__),
            ("icon", IconNotFoundError.__name__),
        ]

    def test_literal_label_and_icon_path(self, config):
        """Test a literal label and an icon attribute holding a path."""
        data = build_zip(
            [
                ("AndroidManifest.xml", build_manifest(label="Literal", icon="res/icon.png")),
                ("res/icon.png", build_png(24, 24)),
            ]
        )
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "literal.apk"))

        assert metadata.name == "Literal"
        assert metadata.icon.width == 24
        assert metadata.issues == []


class TestIosExtraction:
    """Tests for IPA metadata assembly."""

    def test_helloworld_ipa(self, helloworld_ipa, config):
        """Test identity fields, platform and size of the reference IPA."""
        metadata = extract_app_metadata(helloworld_ipa, config)

        assert metadata.platform is Platform.IOS
        assert metadata.bundle_id == "com.kthcorp.helloworld"
        assert metadata.version == "1.0"
        assert metadata.build == "1.0"
        assert metadata.name == "HelloWorld"
        assert metadata.size_bytes == helloworld_ipa.stat().st_size
        assert metadata.issues == []

    def test_icon_is_first_match_and_reverted(self, helloworld_ipa, config):
        """Test that the first AppIcon60x60 entry is decoded from CgBI."""
        metadata = extract_app_metadata(helloworld_ipa, config)

        assert metadata.icon.source_path == IOS_APP_DIR + "AppIcon60x60@2x.png"
        assert (metadata.icon.width, metadata.icon.height) == (120, 120)

    def test_distribution_info(self, helloworld_ipa, config):
        """Test the ad hoc classification of the reference profile."""
        info = extract_app_metadata(helloworld_ipa, config).ios_info

        assert info.type is IosDistributionType.AD_HOC
        assert info.team_name == "KTH Corp"
        assert len(info.allowed_devices) == 2

    def test_enterprise_profile(self, config):
        """Test an IPA whose profile has both device keys."""
        data = build_helloworld_ipa(profile=helloworld_profile(ProvisionsAllDevices=True))
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "ent.ipa"))

        assert metadata.ios_info.type is IosDistributionType.ENTERPRISE

    def test_display_name_preferred(self, config):
        """Test that CFBundleDisplayName wins over CFBundleName."""
        data = build_helloworld_ipa(info=helloworld_info_plist(CFBundleDisplayName="Hello!"), binary_plist=False)
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "xml.ipa"))

        assert metadata.name == "Hello!"

    def test_version_falls_back_to_bundle_version(self, config):
        """Test that CFBundleVersion stands in for a missing short version."""
        info = helloworld_info_plist(CFBundleShortVersionString=None, CFBundleVersion="42")
        data = build_helloworld_ipa(info=info)
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "v.ipa"))

        assert metadata.version == "42"
        assert metadata.build == "42"

    def test_missing_bundle_id(self, config):
        """Test that the bundle identifier is mandatory."""
        data = build_helloworld_ipa(info=helloworld_info_plist(CFBundleIdentifier=None))

        with pytest.raises(MalformedPlistError, match="CFBundleIdentifier"):
            ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "nobundle.ipa"))

    def test_plist_not_found(self, config):
        """Test an IPA without Payload/<app>/Info.plist."""
        data = build_zip([("Payload/A.app/Frameworks/F.framework/Info.plist", b"<plist/>")])

        with pytest.raises(PlistNotFoundError):
            ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "noplist.ipa"))

    def test_missing_profile_and_icon_recorded(self, config):
        """Test that absent optional entries degrade with issues recorded."""
        data = build_helloworld_ipa(include_profile=False, include_icon=False)
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "bare.ipa"))

        assert metadata.icon is None
        assert metadata.ios_info is None
        assert [(i.field, i.error_type) for i in metadata.issues] == [
            ("icon", IconNotFoundError.__name__),
            ("ios_info", MobileProvisionNotFoundError.__name__),
        ]

    def test_not_found_kinds(self, config):
        """Test that icon and profile lookups raise their own not-found errors."""
        service = ExtractionService(config)
        archive = ZipPackageArchive.from_bytes(build_zip([("Payload/A.app/Info.plist", b"")]), "a.ipa")

        with pytest.raises(IconNotFoundError):
            service.read_ios_icon(archive, None)
        with pytest.raises(MobileProvisionNotFoundError):
            service.read_provisioning(archive, None)

    def test_custom_icon_fragment(self, config):
        """Test that the icon fragment comes from configuration."""
        data = build_helloworld_ipa()
        config = Config(archive=ArchiveConfig(ios_icon_fragment="@3x"))
        metadata = ExtractionService(config).extract(ZipPackageArchive.from_bytes(data, "frag.ipa"))

        assert metadata.icon.width == 180
