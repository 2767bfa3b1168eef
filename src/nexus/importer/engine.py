"""Lazy document and asset streams over a scanned archive.

The engine never touches storage. It yields finished items in scan order and
leaves persistence (and progress reporting) to whoever drains it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime

from ..config import TITLE_KEY, TYPE_KEY
from ..errors import ContentParseError, ImportCancelled
from ..models import FileRecord, ImportFailure, KnowledgeObject, ParsedDocument
from ..parser import PathResolver, parse_content
from .archive import ZipArchive, scan_archive
from .assets import resolve_assets
from .context import ImportContext
from .convert import to_knowledge_object

log = logging.getLogger(__name__)


@dataclass
class ParsedFile:
    """One content file after parsing and conversion."""

    record: FileRecord  # Promoted record (title/type from metadata)
    document: ParsedDocument  # Metadata without title/type
    obj: KnowledgeObject


@dataclass
class AssetBlob:
    stored_name: str
    data: bytes
    original_path: str


class ImportEngine:
    """Produces the parsed documents and assets of one archive.

    Usage:
        engine = ImportEngine(archive, context)
        engine.scan()
        async for item in engine.documents():
            ...
        async for item in engine.assets():
            ...

    Each stream can be consumed once.
    """

    def __init__(
        self,
        archive: ZipArchive,
        context: ImportContext,
        cancel_event: asyncio.Event | None = None,
    ):
        self.archive = archive
        self.context = context
        self.cancel_event = cancel_event
        self.resolver: PathResolver | None = None
        self._documents_started = False
        self._assets_started = False

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _check_cancelled(self, phase: str) -> None:
        if self.cancelled():
            raise ImportCancelled(phase)

    def scan(self) -> ImportContext:
        """Build the record map and the asset map. Must run before streaming."""
        scan_archive(self.archive, self.context, should_stop=self.cancelled)
        self._check_cancelled("scanning")
        resolve_assets(self.context)
        self.resolver = PathResolver(self.context.records, self.context.asset_map)
        return self.context

    async def _parse(self, record: FileRecord) -> ParsedFile:
        entry = self.context.entries[record.path]
        try:
            text = await self.archive.read_text(entry)
            document = parse_content(text, record, self.resolver)
        except Exception as e:
            raise ContentParseError(record.path, str(e)) from e

        metadata = dict(document.metadata)
        title = metadata.pop(TITLE_KEY, None)
        type_value = metadata.pop(TYPE_KEY, None)
        promoted = record.promoted(
            title=title.as_text().strip() if title is not None else None,
            inferred_type=type_value.as_text().strip() if type_value is not None else None,
        )
        document = document.model_copy(update={"metadata": metadata})

        self.context.observe_keys(promoted.inferred_type, metadata.keys())
        obj = to_knowledge_object(promoted, document, datetime.now(UTC))
        return ParsedFile(record=promoted, document=document, obj=obj)

    async def documents(self) -> AsyncIterator[ParsedFile | ImportFailure]:
        """Parse every accepted content file, in scan order.

        Yields:
            ParsedFile for each success, ImportFailure for each file that
            could not be read or parsed.
        """
        if self.resolver is None:
            raise RuntimeError("scan() must run before documents()")
        if self._documents_started:
            raise RuntimeError("documents() can only be consumed once")
        self._documents_started = True

        for record in list(self.context.records.values()):
            self._check_cancelled("parsing")
            try:
                yield await self._parse(record)
            except ContentParseError as e:
                log.warning("Failed to parse %s: %s", record.path, e.message)
                yield ImportFailure(path=record.path, phase="parse", message=e.message)

    async def assets(self) -> AsyncIterator[AssetBlob | ImportFailure]:
        """Read every queued asset, in scan order."""
        if self.resolver is None:
            raise RuntimeError("scan() must run before assets()")
        if self._assets_started:
            raise RuntimeError("assets() can only be consumed once")
        self._assets_started = True

        for path in self.context.asset_queue:
            self._check_cancelled("asset transfer")
            stored_name = self.context.asset_map[path]
            try:
                data = await self.archive.read(self.context.entries[path])
            except Exception as e:
                log.warning("Failed to read asset %s: %s", path, e)
                yield ImportFailure(path=path, phase="asset", message=str(e))
                continue
            yield AssetBlob(stored_name=stored_name, data=data, original_path=path)
