"""Data models for appmeta."""

from .app import (
    AndroidManifestView,
    AppMetadata,
    ExtractionIssue,
    IconBitmap,
    IosDistributionInfo,
    IosDistributionType,
    Platform,
    ProvisioningProfilePayload,
    ResourceRef,
)

__all__ = [
    "AndroidManifestView",
    "AppMetadata",
    "ExtractionIssue",
    "IconBitmap",
    "IosDistributionInfo",
    "IosDistributionType",
    "Platform",
    "ProvisioningProfilePayload",
    "ResourceRef",
]
