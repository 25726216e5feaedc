"""Test configuration for appmeta."""

import tempfile
from pathlib import Path

import pytest

from appmeta.core.config import Config
from tests.builders import build_helloworld_apk, build_helloworld_ipa


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests.

    Yields:
        Path: A Path object pointing to the temporary directory.
            The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config():
    """Default configuration, independent of the environment.

    Returns:
        Config: Target density 720, 10 reference hops, AppIcon60x60 fragment.
    """
    return Config()


@pytest.fixture(scope="session")
def helloworld_apk_bytes():
    """Build the reference Android package once per session.

    Returns:
        bytes: Zip archive holding a compiled manifest for
            com.example.helloworld 1.0 (1), a resource table and icons in
            the mdpi through xxxhdpi buckets.
    """
    return build_helloworld_apk()


@pytest.fixture(scope="session")
def helloworld_ipa_bytes():
    """Build the reference iOS package once per session.

    Returns:
        bytes: Zip archive holding Payload/HelloWorld.app with a binary
            Info.plist for com.kthcorp.helloworld, an ad hoc provisioning
            profile and two CgBI icons.
    """
    return build_helloworld_ipa()


@pytest.fixture
def helloworld_apk(temp_dir, helloworld_apk_bytes):
    """Write the reference APK to disk.

    Args:
        temp_dir: Pytest fixture providing a temporary directory path.
        helloworld_apk_bytes: Pytest fixture providing the archive bytes.

    Returns:
        Path: The path to the written .apk file.
    """
    apk_path = temp_dir / "helloworld.apk"
    apk_path.write_bytes(helloworld_apk_bytes)
    return apk_path


@pytest.fixture
def helloworld_ipa(temp_dir, helloworld_ipa_bytes):
    """Write the reference IPA to disk.

    Returns:
        Path: The path to the written .ipa file.
    """
    ipa_path = temp_dir / "helloworld.ipa"
    ipa_path.write_bytes(helloworld_ipa_bytes)
    return ipa_path
