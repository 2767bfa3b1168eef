"""Knowledge store interface and a directory-backed implementation.

The import engine only talks to storage through KnowledgeStore. FileStore
keeps everything as JSON under one root:

    <root>/objects/<id>.json
    <root>/assets/<stored name>
    <root>/schemas.json
    <root>/last_import.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from .config import MANIFEST_FILENAME
from .models import ImportManifest, KnowledgeObject, TypeSchema

log = logging.getLogger(__name__)

OBJECTS_DIR = "objects"
ASSETS_DIR = "assets"
SCHEMAS_FILENAME = "schemas.json"


class KnowledgeStore(Protocol):
    async def save_object(self, obj: KnowledgeObject) -> None: ...

    async def save_asset(self, stored_name: str, data: bytes, original_path: str) -> None: ...

    async def get_schema(self, type_name: str) -> TypeSchema | None: ...

    async def save_schema(self, schema: TypeSchema) -> None: ...

    async def delete_object(self, object_id: str) -> None: ...

    async def delete_schema(self, type_name: str) -> None: ...

    async def delete_asset(self, stored_name: str) -> None: ...

    async def existing_titles(self) -> set[str]: ...

    async def load_manifest(self) -> ImportManifest | None: ...

    async def save_manifest(self, manifest: ImportManifest) -> None: ...

    async def delete_manifest(self) -> None: ...


def _safe_name(name: str) -> str:
    """Reject names that would escape their directory."""
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise ValueError(f"Invalid store name: {name!r}")
    return name


class FileStore:
    """KnowledgeStore backed by a local directory.

    Deletes are idempotent: removing something that is already gone is not
    an error, so an interrupted revert can simply be run again.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    @property
    def objects_dir(self) -> Path:
        return self.root / OBJECTS_DIR

    @property
    def assets_dir(self) -> Path:
        return self.root / ASSETS_DIR

    @property
    def schemas_path(self) -> Path:
        return self.root / SCHEMAS_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_FILENAME

    def _object_path(self, object_id: str) -> Path:
        return self.objects_dir / f"{_safe_name(object_id)}.json"

    # ─────────────────────────────────────────────────────────────────────────
    # Objects
    # ─────────────────────────────────────────────────────────────────────────

    async def save_object(self, obj: KnowledgeObject) -> None:
        path = self._object_path(obj.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(obj.model_dump_json(indent=2), encoding="utf-8")

    async def get_object(self, object_id: str) -> KnowledgeObject | None:
        path = self._object_path(object_id)
        if not path.exists():
            return None
        return KnowledgeObject.model_validate_json(path.read_text(encoding="utf-8"))

    async def list_objects(self) -> list[KnowledgeObject]:
        if not self.objects_dir.exists():
            return []
        objects = []
        for path in sorted(self.objects_dir.glob("*.json")):
            try:
                objects.append(KnowledgeObject.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                log.warning("Skipping unreadable object %s: %s", path.name, e)
        return objects

    async def delete_object(self, object_id: str) -> None:
        self._object_path(object_id).unlink(missing_ok=True)

    async def existing_titles(self) -> set[str]:
        return {obj.title for obj in await self.list_objects()}

    # ─────────────────────────────────────────────────────────────────────────
    # Assets
    # ─────────────────────────────────────────────────────────────────────────

    async def save_asset(self, stored_name: str, data: bytes, original_path: str) -> None:
        self.assets_dir.mkdir(parents=True, exist_ok=True)
        (self.assets_dir / _safe_name(stored_name)).write_bytes(data)
        log.debug("Stored asset %s (from %s)", stored_name, original_path)

    async def get_asset(self, stored_name: str) -> bytes | None:
        path = self.assets_dir / _safe_name(stored_name)
        return path.read_bytes() if path.exists() else None

    async def delete_asset(self, stored_name: str) -> None:
        (self.assets_dir / _safe_name(stored_name)).unlink(missing_ok=True)

    # ─────────────────────────────────────────────────────────────────────────
    # Schemas
    # ─────────────────────────────────────────────────────────────────────────

    def _load_schemas(self) -> dict[str, Any]:
        if not self.schemas_path.exists():
            return {}
        payload = json.loads(self.schemas_path.read_text(encoding="utf-8"))
        return payload if isinstance(payload, dict) else {}

    def _write_schemas(self, schemas: dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.schemas_path.write_text(json.dumps(schemas, indent=2), encoding="utf-8")

    async def list_schemas(self) -> list[TypeSchema]:
        return [TypeSchema.model_validate(data) for data in self._load_schemas().values()]

    async def get_schema(self, type_name: str) -> TypeSchema | None:
        data = self._load_schemas().get(type_name)
        return TypeSchema.model_validate(data) if data is not None else None

    async def save_schema(self, schema: TypeSchema) -> None:
        schemas = self._load_schemas()
        schemas[schema.type] = schema.model_dump(mode="json")
        self._write_schemas(schemas)

    async def delete_schema(self, type_name: str) -> None:
        schemas = self._load_schemas()
        if schemas.pop(type_name, None) is not None:
            self._write_schemas(schemas)

    # ─────────────────────────────────────────────────────────────────────────
    # Import manifest
    # ─────────────────────────────────────────────────────────────────────────

    async def load_manifest(self) -> ImportManifest | None:
        if not self.manifest_path.exists():
            return None
        return ImportManifest.model_validate_json(self.manifest_path.read_text(encoding="utf-8"))

    async def save_manifest(self, manifest: ImportManifest) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(manifest.model_dump_json(by_alias=True, indent=2), encoding="utf-8")

    async def delete_manifest(self) -> None:
        self.manifest_path.unlink(missing_ok=True)
