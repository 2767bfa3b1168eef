"""Orchestration of an import run and of its revert.

An import moves through SCANNING -> SCHEMA_MERGE -> ASSET_TRANSFER ->
OBJECT_IMPORT -> DONE. Archive errors and cancellation are fatal; anything
that goes wrong with a single file, asset, schema or object is recorded as
an ImportFailure and the run carries on.

On success the store receives a manifest listing exactly what was created,
which is what revert_last_import() undoes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import IO

from ..config import (
    ASSET_PROGRESS_EVERY,
    OBJECT_PROGRESS_EVERY,
    PARSE_PROGRESS_EVERY,
    REVERT_PROGRESS_EVERY,
)
from ..errors import ImportCancelled, NoManifestError, RevertError, StoreError
from ..models import ImportFailure, ImportManifest, ImportResult, RevertResult, TypeSchema
from ..store import KnowledgeStore
from .archive import ZipArchive
from .context import ImportContext
from .engine import ImportEngine, ParsedFile
from .schema import infer_schema, merge_schema

log = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


class ImportPhase(str, Enum):
    SCANNING = "scanning"
    SCHEMA_MERGE = "schema_merge"
    ASSET_TRANSFER = "asset_transfer"
    OBJECT_IMPORT = "object_import"
    DONE = "done"
    FAILED = "failed"
    REVERTING = "reverting"
    REVERTED = "reverted"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ImportTransaction:
    """Drive one import run against a KnowledgeStore.

    Without a store the run persists nothing: objects and asset bytes are
    returned in the ImportResult and no manifest is written.

    Args:
        store: Destination store, or None to only collect results.
        on_progress: Called as on_progress(status, current, total).
        existing_titles: Titles to skip. Read from the store when None.
        overwrite: Import files even when their title already exists.
        default_type: Type for documents without a `type` key.
        seed: Seed for ids, asset names and colours (reproducible runs).
        cancel_event: Checked between items; setting it aborts the run.
    """

    def __init__(
        self,
        store: KnowledgeStore | None = None,
        on_progress: ProgressCallback | None = None,
        existing_titles: Iterable[str] | None = None,
        overwrite: bool = False,
        default_type: str | None = None,
        seed: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.store = store
        self.on_progress = on_progress
        self.existing_titles = existing_titles
        self.overwrite = overwrite
        self.default_type = default_type
        self.seed = seed
        self.cancel_event = cancel_event
        self.phase: ImportPhase | None = None

        # What this run has written so far
        self._created_types: list[str] = []
        self._created_ids: list[str] = []
        self._created_assets: list[str] = []

    def _report(self, status: str, current: int, total: int) -> None:
        log.debug("%s (%d/%d)", status, current, total)
        if self.on_progress is not None:
            self.on_progress(status, current, total)

    def _check_cancelled(self, phase: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ImportCancelled(phase)

    def _record_failure(self, result: ImportResult, failure: ImportFailure) -> None:
        result.failures.append(failure)
        result.failed_count += 1

    # ─────────────────────────────────────────────────────────────────────────
    # Import
    # ─────────────────────────────────────────────────────────────────────────

    async def run(self, source: str | Path | IO[bytes]) -> ImportResult:
        """Import an archive.

        Raises:
            ArchiveError: If the archive cannot be opened or enumerated.
            ImportCancelled: If cancel_event was set during the run.
            StoreError: If the manifest cannot be written.
        """
        self.phase = ImportPhase.SCANNING
        self._created_types = []
        self._created_ids = []
        self._created_assets = []
        try:
            result = await self._run(source)
        except ImportCancelled:
            self.phase = ImportPhase.FAILED
            await self._save_partial_manifest()
            raise
        except Exception:
            self.phase = ImportPhase.FAILED
            raise

        self.phase = ImportPhase.DONE
        return result

    async def _run(self, source: str | Path | IO[bytes]) -> ImportResult:
        existing = self.existing_titles
        if existing is None:
            existing = await self.store.existing_titles() if self.store is not None else ()

        context = ImportContext.create(
            existing_titles=existing,
            overwrite=self.overwrite,
            default_type=self.default_type,
            seed=self.seed,
        )

        with ZipArchive(source) as archive:
            engine = ImportEngine(archive, context, cancel_event=self.cancel_event)
            engine.scan()

            total_files = len(context.records)
            self._report(
                f"Scanned {context.total_entries} entries: {total_files} files, "
                f"{len(context.asset_queue)} assets, {context.skipped_count} skipped",
                0,
                total_files,
            )
            result = ImportResult(skipped_count=context.skipped_count)

            parsed = await self._parse_documents(engine, result, total_files)

            self.phase = ImportPhase.SCHEMA_MERGE
            result.schemas = await self._merge_schemas(context, result)

            self.phase = ImportPhase.ASSET_TRANSFER
            await self._transfer_assets(engine, result, len(context.asset_queue))

        self.phase = ImportPhase.OBJECT_IMPORT
        await self._import_objects(parsed, result)

        result.created_types = list(self._created_types)
        result.created_object_ids = list(self._created_ids)

        if self.store is not None:
            manifest = self._manifest()
            try:
                await self.store.save_manifest(manifest)
            except Exception as e:
                raise StoreError(f"Failed to save import manifest: {e}") from e
            result.manifest = manifest

        self._report(
            f"Import complete: {result.total_processed} processed, "
            f"{result.failed_count} failed, {result.skipped_count} skipped",
            total_files,
            total_files,
        )
        return result

    async def _parse_documents(
        self, engine: ImportEngine, result: ImportResult, total: int
    ) -> list[ParsedFile]:
        parsed: list[ParsedFile] = []
        async for item in engine.documents():
            result.total_processed += 1
            if isinstance(item, ImportFailure):
                self._record_failure(result, item)
            else:
                parsed.append(item)
            if result.total_processed % PARSE_PROGRESS_EVERY == 0:
                self._report(f"Parsing file {result.total_processed}/{total}", result.total_processed, total)
        return parsed

    async def _merge_schemas(self, context: ImportContext, result: ImportResult) -> list[TypeSchema]:
        """Infer one schema per observed type and merge it into the store."""
        schemas: list[TypeSchema] = []
        type_names = list(context.observed_keys)

        for index, type_name in enumerate(type_names, 1):
            self._check_cancelled("schema merge")
            keys = context.observed_keys[type_name]

            if self.store is None:
                schemas.append(infer_schema(type_name, keys, context.new_color()))
            else:
                try:
                    schemas.append(await self._merge_one(type_name, keys, context))
                except Exception as e:
                    log.warning("Failed to save schema %s: %s", type_name, e)
                    self._record_failure(
                        result, ImportFailure(path=type_name, phase="schema", message=str(e))
                    )

            self._report(f"Processed schema {type_name}", index, len(type_names))

        return schemas

    async def _merge_one(self, type_name: str, keys: Iterable[str], context: ImportContext) -> TypeSchema:
        existing = await self.store.get_schema(type_name)
        if existing is None:
            schema = infer_schema(type_name, keys, context.new_color())
            await self.store.save_schema(schema)
            self._created_types.append(type_name)
            log.info("Created schema %s with %d properties", type_name, len(schema.properties))
            return schema

        merged = merge_schema(existing, infer_schema(type_name, keys, existing.color))
        if merged is None:
            return existing
        await self.store.save_schema(merged)
        return merged

    async def _transfer_assets(self, engine: ImportEngine, result: ImportResult, total: int) -> None:
        count = 0
        async for item in engine.assets():
            count += 1
            if isinstance(item, ImportFailure):
                self._record_failure(result, item)
            elif self.store is None:
                result.assets[item.stored_name] = item.data
            else:
                try:
                    await self.store.save_asset(item.stored_name, item.data, item.original_path)
                except Exception as e:
                    log.warning("Failed to save asset %s: %s", item.original_path, e)
                    self._record_failure(
                        result, ImportFailure(path=item.original_path, phase="asset", message=str(e))
                    )
                else:
                    self._created_assets.append(item.stored_name)

            if count % ASSET_PROGRESS_EVERY == 0:
                self._report(f"Transferring asset {count}/{total}", count, total)

    async def _import_objects(self, parsed: list[ParsedFile], result: ImportResult) -> None:
        total = len(parsed)
        for index, item in enumerate(parsed, 1):
            self._check_cancelled("object import")
            if self.store is None:
                result.objects.append(item.obj)
            else:
                try:
                    await self.store.save_object(item.obj)
                except Exception as e:
                    log.warning("Failed to save object %s: %s", item.record.path, e)
                    self._record_failure(
                        result, ImportFailure(path=item.record.path, phase="object", message=str(e))
                    )
                else:
                    self._created_ids.append(item.obj.id)

            if index % OBJECT_PROGRESS_EVERY == 0:
                self._report(f"Importing object {index}/{total}", index, total)

    def _manifest(self) -> ImportManifest:
        return ImportManifest(
            timestamp=_now_ms(),
            created_types=list(self._created_types),
            created_object_ids=list(self._created_ids),
            created_assets=list(self._created_assets),
        )

    async def _save_partial_manifest(self) -> None:
        """Keep writes made before a cancellation revertible."""
        if self.store is None:
            return
        if not (self._created_types or self._created_ids or self._created_assets):
            return
        try:
            await self.store.save_manifest(self._manifest())
        except Exception as e:
            log.error("Failed to save manifest for cancelled import: %s", e)
        else:
            log.info("Saved manifest for cancelled import; run revert to undo it")

    # ─────────────────────────────────────────────────────────────────────────
    # Revert
    # ─────────────────────────────────────────────────────────────────────────

    async def revert(self) -> RevertResult:
        if self.store is None:
            raise StoreError("Cannot revert without a store")
        self.phase = ImportPhase.REVERTING
        try:
            result = await revert_last_import(self.store, on_progress=self.on_progress)
        except Exception:
            self.phase = ImportPhase.FAILED
            raise
        self.phase = ImportPhase.REVERTED
        return result


async def revert_last_import(
    store: KnowledgeStore,
    on_progress: ProgressCallback | None = None,
) -> RevertResult:
    """Delete everything the last import created, then its manifest.

    Objects go first, then types, then assets.

    Raises:
        NoManifestError: If there is nothing to revert.
        RevertError: If a delete fails. The manifest stays in place so the
            revert can be retried.
    """
    try:
        manifest = await store.load_manifest()
    except ValueError as e:
        raise StoreError(f"Import manifest is unreadable: {e}") from e
    if manifest is None:
        raise NoManifestError()

    steps = [
        ("object", store.delete_object, manifest.created_object_ids),
        ("type", store.delete_schema, manifest.created_types),
        ("asset", store.delete_asset, manifest.created_assets),
    ]
    total = sum(len(names) for _, _, names in steps)
    deleted = 0

    for kind, delete, names in steps:
        for name in names:
            try:
                await delete(name)
            except Exception as e:
                raise RevertError(
                    f"Failed to delete {kind} {name}: {e}",
                    deleted=deleted,
                    remaining=total - deleted,
                ) from e
            deleted += 1
            if deleted % REVERT_PROGRESS_EVERY == 0:
                log.info("Reverted %d/%d items", deleted, total)
                if on_progress is not None:
                    on_progress(f"Reverting {deleted}/{total}", deleted, total)

    await store.delete_manifest()
    log.info(
        "Reverted import from %d: %d objects, %d types, %d assets",
        manifest.timestamp,
        len(manifest.created_object_ids),
        len(manifest.created_types),
        len(manifest.created_assets),
    )
    if on_progress is not None:
        on_progress("Revert complete", total, total)

    return RevertResult(
        deleted_objects=len(manifest.created_object_ids),
        deleted_types=len(manifest.created_types),
        deleted_assets=len(manifest.created_assets),
        timestamp=manifest.timestamp,
    )
