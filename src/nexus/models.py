"""Pydantic models for the import engine."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

PropertyType = Literal[
    "text",
    "number",
    "date",
    "multiselect",
    "select",
    "document",
    "documents",
    "url",
    "email",
]


# ─────────────────────────────────────────────────────────────────────────────
# Metadata values
# ─────────────────────────────────────────────────────────────────────────────


class TextValue(BaseModel):
    """A scalar metadata value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str = ""

    def as_text(self) -> str:
        return self.value


class ListValue(BaseModel):
    """A list-valued metadata value, e.g. `tags: [work, draft]`."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    items: list[str] = Field(default_factory=list)

    def as_text(self) -> str:
        return ", ".join(self.items)


MetaValue = Annotated[TextValue | ListValue, Field(discriminator="kind")]


# ─────────────────────────────────────────────────────────────────────────────
# Per-run records
# ─────────────────────────────────────────────────────────────────────────────


class FileRecord(BaseModel):
    """Identity assigned to one accepted content file during the scan."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    inferred_type: str
    path: str  # Normalized archive path, also the key in the record map

    def promoted(self, title: str | None = None, inferred_type: str | None = None) -> "FileRecord":
        """Copy with title/type taken from the document's own metadata."""
        update: dict[str, str] = {}
        if title:
            update["title"] = title
        if inferred_type:
            update["inferred_type"] = inferred_type
        return self.model_copy(update=update) if update else self


class ParsedDocument(BaseModel):
    """Structured metadata plus rewritten HTML body of one content file."""

    metadata: dict[str, MetaValue] = Field(default_factory=dict)
    body: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Schemas
# ─────────────────────────────────────────────────────────────────────────────


class PropertyDefinition(BaseModel):
    """One property slot of a type schema."""

    key: str
    label: str
    type: PropertyType = "text"
    required: bool = False
    default_value: str | None = None


class TypeSchema(BaseModel):
    """Which properties exist for a given object type."""

    type: str
    color: str = "#808080"  # "#rrggbb"
    properties: list[PropertyDefinition] = Field(default_factory=list)

    def property_keys(self) -> list[str]:
        return [p.key for p in self.properties]


# ─────────────────────────────────────────────────────────────────────────────
# Knowledge objects
# ─────────────────────────────────────────────────────────────────────────────


class Property(BaseModel):
    """A realized property on a knowledge object."""

    key: str
    label: str
    value: str | list[str]
    type: PropertyType = "text"


class KnowledgeObject(BaseModel):
    """The persisted unit produced for every imported content file."""

    id: str
    title: str
    type: str
    content: str  # HTML
    metadata: list[Property] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    last_modified: datetime


# ─────────────────────────────────────────────────────────────────────────────
# Import results
# ─────────────────────────────────────────────────────────────────────────────


class ImportManifest(BaseModel):
    """Durable record of exactly what one import run created.

    Serialized with the short keys `types`, `ids` and `assets`.
    """

    model_config = ConfigDict(populate_by_name=True)

    timestamp: int  # Milliseconds since the epoch
    created_types: list[str] = Field(default_factory=list, alias="types")
    created_object_ids: list[str] = Field(default_factory=list, alias="ids")
    created_assets: list[str] = Field(default_factory=list, alias="assets")


class ImportFailure(BaseModel):
    """One item that was skipped because it failed."""

    path: str
    phase: Literal["parse", "schema", "asset", "object"]
    message: str


class ImportResult(BaseModel):
    """Outcome of one import run."""

    schemas: list[TypeSchema] = Field(default_factory=list)
    objects: list[KnowledgeObject] = Field(default_factory=list)  # Only filled without a store
    assets: dict[str, bytes] = Field(default_factory=dict)  # stored name -> bytes, only without a store
    total_processed: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    created_types: list[str] = Field(default_factory=list)
    created_object_ids: list[str] = Field(default_factory=list)
    failures: list[ImportFailure] = Field(default_factory=list)
    manifest: ImportManifest | None = None


class RevertResult(BaseModel):
    """Outcome of reverting the last import."""

    deleted_objects: int = 0
    deleted_types: int = 0
    deleted_assets: int = 0
    timestamp: int  # Timestamp of the reverted import
