"""Bulk import of exported note archives."""

from .archive import ZipArchive, scan_archive
from .context import ImportContext
from .engine import AssetBlob, ImportEngine, ParsedFile
from .transaction import ImportPhase, ImportTransaction, revert_last_import

__all__ = [
    "AssetBlob",
    "ImportContext",
    "ImportEngine",
    "ImportPhase",
    "ImportTransaction",
    "ParsedFile",
    "ZipArchive",
    "revert_last_import",
    "scan_archive",
]
