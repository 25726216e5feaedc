"""Installer archive access for appmeta."""

from .interface import PackageArchive
from .zip import ZipPackageArchive, open_archive

__all__ = ["PackageArchive", "ZipPackageArchive", "open_archive"]
