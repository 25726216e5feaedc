"""
Application metadata models.

These models describe what is extracted from an installer archive: the unified
AppMetadata record handed to callers and the transient views produced by the
individual decoders.
"""

from __future__ import annotations

import io
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from PIL import Image


class Platform(str, Enum):
    """Mobile platform an archive targets."""

    ANDROID = "android"
    IOS = "ios"


class IosDistributionType(str, Enum):
    """Distribution channel implied by a provisioning profile."""

    AD_HOC = "ad_hoc"
    APP_STORE = "app_store"
    ENTERPRISE = "enterprise"


class IconBitmap(BaseModel):
    """Decoded application icon as raw RGBA pixels."""

    width: int = Field(ge=1)
    height: int = Field(ge=1)
    pixels: bytes = Field(description="Row-major RGBA, 4 bytes per pixel", repr=False)
    source_path: str = Field(default="", description="Archive entry the icon was read from")

    model_config = {"frozen": True, "ser_json_bytes": "base64"}

    def to_image(self) -> Image.Image:
        """Build a Pillow image over the pixel buffer."""
        from PIL import Image

        return Image.frombytes("RGBA", (self.width, self.height), self.pixels)

    def to_png(self) -> bytes:
        """Encode the bitmap as PNG bytes (in memory)."""
        buffer = io.BytesIO()
        self.to_image().save(buffer, format="PNG")
        return buffer.getvalue()


class IosDistributionInfo(BaseModel):
    """Signing and distribution facts taken from embedded.mobileprovision."""

    type: IosDistributionType = Field(description="Distribution channel")
    team_name: str = Field(default="")
    allowed_devices: list[str] = Field(default_factory=list, description="Device UDIDs, in profile order")
    profile_name: str | None = Field(default=None)
    team_identifiers: list[str] = Field(default_factory=list)
    expiration_date: datetime | None = Field(default=None)

    model_config = {"frozen": True}


class ExtractionIssue(BaseModel):
    """An optional field that could not be extracted."""

    field: str = Field(description="AppMetadata field that was left empty")
    error_type: str = Field(description="Exception class name")
    message: str = Field(default="")

    model_config = {"frozen": True}


class AppMetadata(BaseModel):
    """Unified metadata for one installer archive."""

    name: str | None = Field(default=None, description="Display name or label")
    bundle_id: str = Field(description="Package name / CFBundleIdentifier")
    version: str = Field(description="versionName / CFBundleShortVersionString")
    build: str | None = Field(default=None, description="versionCode / CFBundleVersion")
    icon: IconBitmap | None = Field(default=None)
    size_bytes: int = Field(ge=0, description="On-disk size of the archive")
    platform: Platform
    ios_info: IosDistributionInfo | None = Field(default=None)
    issues: list[ExtractionIssue] = Field(default_factory=list)

    model_config = {"frozen": True, "ser_json_bytes": "base64"}

    @model_validator(mode="after")
    def _check_platform_records(self) -> AppMetadata:
        if self.platform is Platform.ANDROID and self.ios_info is not None:
            raise ValueError("Android metadata cannot carry iOS distribution info")
        return self


class ResourceRef(BaseModel):
    """A reference to a resource table entry (e.g. @mipmap/ic_launcher)."""

    resource_id: int = Field(ge=0, le=0xFFFFFFFF)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"@0x{self.resource_id:08x}"


class AndroidManifestView(BaseModel):
    """Minimal attribute view of AndroidManifest.xml."""

    package: str
    version_name: str | ResourceRef
    version_code: str | None = Field(default=None)
    application_label: str | ResourceRef | None = Field(default=None)
    application_icon: str | ResourceRef | None = Field(default=None)

    model_config = {"frozen": True}


class ProvisioningProfilePayload(BaseModel):
    """Fields read from the plist embedded in a provisioning profile."""

    team_name: str = Field(default="")
    provisioned_devices: list[str] | None = Field(default=None)
    provisions_all_devices: bool | None = Field(default=None)
    name: str | None = Field(default=None)
    uuid: str | None = Field(default=None)
    team_identifiers: list[str] = Field(default_factory=list)
    app_id_name: str | None = Field(default=None)
    expiration_date: datetime | None = Field(default=None)

    model_config = {"frozen": True}
