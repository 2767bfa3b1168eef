"""Archive access and the first (scanning) pass of an import.

The scan classifies every entry once: content files get a FileRecord,
everything else is queued for the asset resolver. Nothing is read or parsed
here; entry bytes are only fetched later through ZipArchive.read().
"""

from __future__ import annotations

import asyncio
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import IO, Callable

from ..config import (
    CONTENT_EXTENSIONS,
    MAX_ARCHIVE_ENTRIES,
    MAX_ENTRY_BYTES,
    PLATFORM_METADATA_PREFIX,
)
from ..errors import ArchiveError, ErrorCode, ImportCancelled
from ..models import FileRecord
from .context import ImportContext

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveEntry:
    """One raw entry of the archive."""

    name: str  # Name as stored in the archive
    path: str  # Forward-slash normalized
    is_dir: bool
    size: int


def normalize_entry_path(name: str) -> str:
    return name.replace("\\", "/")


def is_ignored(path: str) -> bool:
    """Platform metadata folders and dot-files never take part in an import."""
    if path.startswith("."):
        return True
    return any(
        part == PLATFORM_METADATA_PREFIX or part.startswith(".")
        for part in path.split("/")
        if part
    )


def content_extension(path: str) -> str | None:
    """Return the content extension of path, or None for assets."""
    lowered = path.lower()
    for ext in CONTENT_EXTENSIONS:
        if lowered.endswith(ext):
            return ext
    return None


def title_from_path(path: str, extension: str) -> str:
    name = PurePosixPath(path).name
    return name[: -len(extension)] or "Untitled"


class ZipArchive:
    """Read-only view over a ZIP archive.

    Usage:
        with ZipArchive(path) as archive:
            for entry in archive.entries():
                data = await archive.read(entry)
    """

    def __init__(self, source: str | Path | IO[bytes]):
        self.source = source
        self._zip: zipfile.ZipFile | None = None
        self._entries: list[ArchiveEntry] | None = None

    def __enter__(self) -> ZipArchive:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        try:
            self._zip = zipfile.ZipFile(self.source, "r")
            infos = self._zip.infolist()
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
            raise ArchiveError(f"Cannot open archive {self._describe()}: {e}") from e

        if len(infos) > MAX_ARCHIVE_ENTRIES:
            self.close()
            raise ArchiveError(
                f"Archive has {len(infos)} entries (max {MAX_ARCHIVE_ENTRIES})",
                code=ErrorCode.ARCHIVE_TOO_LARGE,
                entries=len(infos),
            )

        self._entries = [
            ArchiveEntry(
                name=info.filename,
                path=normalize_entry_path(info.filename),
                is_dir=info.is_dir(),
                size=info.file_size,
            )
            for info in infos
        ]
        log.info("Archive %s contains %d entries", self._describe(), len(infos))

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def entries(self) -> list[ArchiveEntry]:
        if self._entries is None:
            raise ArchiveError("Archive is not open")
        return self._entries

    async def read(self, entry: ArchiveEntry) -> bytes:
        """Read the bytes of one entry.

        Raises:
            ValueError: If the entry exceeds MAX_ENTRY_BYTES.
            zipfile.BadZipFile: If the entry is corrupt.
        """
        if self._zip is None:
            raise ArchiveError("Archive is not open")
        if entry.size > MAX_ENTRY_BYTES:
            raise ValueError(f"{entry.path} is {entry.size} bytes (max {MAX_ENTRY_BYTES})")
        return await asyncio.to_thread(self._zip.read, entry.name)

    async def read_text(self, entry: ArchiveEntry) -> str:
        data = await self.read(entry)
        return data.decode("utf-8-sig")

    def _describe(self) -> str:
        if isinstance(self.source, (str, Path)):
            return str(self.source)
        return getattr(self.source, "name", "<stream>")


def scan_archive(
    archive: ZipArchive,
    context: ImportContext,
    should_stop: Callable[[], bool] | None = None,
) -> ImportContext:
    """Classify every entry and build the record map and asset queue.

    Content files whose title is already in context.existing_titles are
    skipped (unless context.overwrite) and never enter the record map, so
    references to them cannot resolve later in the run.

    Args:
        archive: An open archive.
        context: Fresh per-run context; filled in place.
        should_stop: Polled between entries for cooperative cancellation.

    Returns:
        The same context, for chaining.
    """
    entries = archive.entries()
    context.total_entries = len(entries)

    for entry in entries:
        if should_stop is not None and should_stop():
            raise ImportCancelled("scanning")

        if entry.is_dir or is_ignored(entry.path):
            continue

        path = entry.path
        if path in context.entries:
            log.debug("Duplicate archive entry ignored: %s", path)
            continue

        extension = content_extension(path)
        if extension is None:
            context.entries[path] = entry
            context.asset_queue.append(path)
            continue

        title = title_from_path(path, extension)
        if not context.overwrite and title in context.existing_titles:
            log.info("Skipping existing file: %s (%s)", title, path)
            context.skipped_count += 1
            continue

        context.entries[path] = entry
        context.records[path] = FileRecord(
            id=context.new_id(),
            title=title,
            inferred_type=context.default_type,
            path=path,
        )
        log.debug("Queued content file: %s (%s)", title, path)

    log.info(
        "Scan found %d content files and %d assets; skipped %d existing",
        len(context.records),
        len(context.asset_queue),
        context.skipped_count,
    )
    return context
