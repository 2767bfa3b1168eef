"""Conversion of a parsed document into a KnowledgeObject."""

from __future__ import annotations

from datetime import datetime

from ..config import TAGS_KEY, TITLE_KEY, TYPE_KEY
from ..models import (
    FileRecord,
    KnowledgeObject,
    ListValue,
    MetaValue,
    ParsedDocument,
    Property,
    PropertyType,
    TextValue,
)
from .schema import is_date_key, label_for

# Keys lifted into the object itself instead of its property list
RESERVED_KEYS = frozenset({TITLE_KEY, TYPE_KEY, TAGS_KEY})

# Date values like "May 3, 2024 - May 5, 2024" keep only the start
DATE_RANGE_SEPARATOR = " - "


def _text_type(value: str) -> PropertyType:
    if value.startswith("http"):
        return "url"
    if "@" in value and "." in value:
        return "email"
    return "text"


def realize_property(key: str, value: MetaValue) -> Property:
    """Turn one metadata entry into a typed property.

    Examples:
        >>> realize_property("fecha", TextValue(value="May 3, 2024 - May 5, 2024")).value
        'May 3, 2024'
        >>> realize_property("site", TextValue(value="https://example.com")).type
        'url'
    """
    label = label_for(key)

    if isinstance(value, ListValue):
        return Property(key=key, label=label, value=list(value.items), type="multiselect")

    text = value.value
    if is_date_key(key):
        return Property(key=key, label=label, value=text.split(DATE_RANGE_SEPARATOR, 1)[0].strip(), type="date")

    return Property(key=key, label=label, value=text, type=_text_type(text))


def extract_tags(metadata: dict[str, MetaValue]) -> list[str]:
    value = metadata.get(TAGS_KEY)
    if value is None:
        return []
    if isinstance(value, ListValue):
        return list(value.items)
    return [tag.strip() for tag in value.value.split(",") if tag.strip()]


def to_knowledge_object(record: FileRecord, document: ParsedDocument, now: datetime) -> KnowledgeObject:
    """Build the persisted object for a (promoted) record and its document."""
    properties = [
        realize_property(key, value)
        for key, value in document.metadata.items()
        if key not in RESERVED_KEYS
    ]
    return KnowledgeObject(
        id=record.id,
        title=record.title,
        type=record.inferred_type,
        content=document.body,
        metadata=properties,
        tags=extract_tags(document.metadata),
        last_modified=now,
    )
