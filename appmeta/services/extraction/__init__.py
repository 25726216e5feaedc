"""Archive metadata extraction service."""

from .service import ExtractionService, decode_icon, detect_platform, extract_app_metadata, locate_entries

__all__ = ["ExtractionService", "decode_icon", "detect_platform", "extract_app_metadata", "locate_entries"]
