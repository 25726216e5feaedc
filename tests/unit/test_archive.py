"""Unit tests for the zip package archive."""

import pytest

from appmeta.archive import ZipPackageArchive, open_archive
from appmeta.core.exceptions import ArchiveOpenError, EntryNotFoundError
from tests.builders import build_zip


@pytest.fixture
def archive():
    """In-memory archive with two entries."""
    data = build_zip([("AndroidManifest.xml", b"manifest"), ("res/raw/data.bin", b"\x00" * 100)])
    with ZipPackageArchive.from_bytes(data, "Sample.APK") as archive:
        yield archive


class TestZipPackageArchive:
    """Tests for ZipPackageArchive."""

    def test_names_in_archive_order(self, archive):
        """Test that entry names keep their stored order."""
        assert archive.names() == ["AndroidManifest.xml", "res/raw/data.bin"]

    def test_read_and_size(self, archive):
        """Test reading an entry and its uncompressed size."""
        assert archive.read("AndroidManifest.xml") == b"manifest"
        assert archive.file_size("res/raw/data.bin") == 100

    def test_open_stream(self, archive):
        """Test streaming an entry."""
        with archive.open("res/raw/data.bin") as stream:
            assert len(stream.read()) == 100

    def test_extension_is_lower_cased(self, archive):
        """Test the extension used for platform dispatch."""
        assert archive.name == "Sample.APK"
        assert archive.extension == ".apk"

    def test_missing_entry(self, archive):
        """Test that unknown entries raise EntryNotFoundError."""
        with pytest.raises(EntryNotFoundError) as exc_info:
            archive.read("classes.dex")
        assert exc_info.value.entry_name == "classes.dex"

    def test_size_from_disk(self, temp_dir):
        """Test that size is the on-disk byte count."""
        path = temp_dir / "app.ipa"
        data = build_zip([("Payload/App.app/Info.plist", b"x")])
        path.write_bytes(data)

        with open_archive(path) as archive:
            assert archive.size == len(data)
            assert archive.name == "app.ipa"

    def test_not_a_zip(self):
        """Test that arbitrary bytes fail to open."""
        with pytest.raises(ArchiveOpenError):
            ZipPackageArchive.from_bytes(b"PK but not really", "broken.apk")

    def test_missing_path(self, temp_dir):
        """Test that a missing file fails to open."""
        with pytest.raises(ArchiveOpenError) as exc_info:
            open_archive(temp_dir / "absent.apk")
        assert exc_info.value.path.endswith("absent.apk")
