"""Schema inference from observed metadata keys."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..config import CREATION_TIMESTAMP_KEY, DATE_KEY_MARKERS, LIST_VALUED_KEYS, TAGS_KEY
from ..models import PropertyDefinition, PropertyType, TypeSchema

log = logging.getLogger(__name__)

DATE_PROPERTY_KEY = "date"


def is_date_key(key: str) -> bool:
    lowered = key.lower()
    return key == CREATION_TIMESTAMP_KEY or any(marker in lowered for marker in DATE_KEY_MARKERS)


def infer_property_type(key: str) -> PropertyType:
    """Guess a property type from its key alone (first match wins)."""
    if is_date_key(key):
        return "date"
    if key == TAGS_KEY:
        return "multiselect"
    if key in LIST_VALUED_KEYS:
        return "multiselect"
    return "text"


def label_for(key: str) -> str:
    return key[:1].upper() + key[1:]


def define_property(key: str) -> PropertyDefinition:
    return PropertyDefinition(key=key, label=label_for(key), type=infer_property_type(key), required=False)


def infer_schema(type_name: str, keys: Iterable[str], color: str) -> TypeSchema:
    """Build a schema for one type from every key seen on its documents.

    The result always carries a `date` property, appended last when no
    observed key is called `date`.
    """
    properties: list[PropertyDefinition] = []
    seen: set[str] = set()
    for key in keys:
        if key in seen:
            continue
        seen.add(key)
        properties.append(define_property(key))

    if DATE_PROPERTY_KEY not in seen:
        properties.append(define_property(DATE_PROPERTY_KEY))

    return TypeSchema(type=type_name, color=color, properties=properties)


def merge_schema(existing: TypeSchema, inferred: TypeSchema) -> TypeSchema | None:
    """Append inferred properties whose keys the stored schema lacks.

    Existing definitions and the stored colour are never changed.

    Returns:
        The merged schema, or None when there is nothing new to add.
    """
    known = set(existing.property_keys())
    additions = [prop for prop in inferred.properties if prop.key not in known]
    if not additions:
        return None

    log.info("Adding %d properties to schema %s", len(additions), existing.type)
    return existing.model_copy(update={"properties": [*existing.properties, *additions]})
