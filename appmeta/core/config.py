"""
Configuration management for appmeta.

Provides centralized, type-safe configuration with environment variable overrides
and defaults matching a high-density reference device.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if it exists (looks in cwd and parent directories)
load_dotenv()


class DecodingConfig(BaseModel):
    """Binary decoding limits and resolution targets."""

    target_density: int = Field(
        default=720, ge=1, le=0xFFFD, description="Screen density (dpi) used to pick icon buckets"
    )
    max_reference_hops: int = Field(
        default=10, ge=1, le=64, description="Maximum resource reference hops before failing"
    )


class ArchiveConfig(BaseModel):
    """Archive entry classification rules."""

    ios_icon_fragment: str = Field(
        default="AppIcon60x60", min_length=1, description="Substring identifying the iOS icon entry"
    )


class Config(BaseModel):
    """Root configuration for appmeta."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    decoding: DecodingConfig = Field(default_factory=DecodingConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_env(cls) -> Config:
        """Create configuration from environment variables."""
        return cls(
            log_level=os.environ.get("APPMETA_LOG_LEVEL", "INFO"),  # type: ignore
            decoding=DecodingConfig(
                target_density=int(os.environ.get("APPMETA_TARGET_DENSITY", "720")),
                max_reference_hops=int(os.environ.get("APPMETA_MAX_REFERENCE_HOPS", "10")),
            ),
            archive=ArchiveConfig(
                ios_icon_fragment=os.environ.get("APPMETA_IOS_ICON_FRAGMENT", "AppIcon60x60"),
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.from_env()
