"""Services package for appmeta."""

from .extraction import ExtractionService, extract_app_metadata

__all__ = ["ExtractionService", "extract_app_metadata"]
