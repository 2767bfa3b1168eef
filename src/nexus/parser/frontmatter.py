"""Flat frontmatter handling for exported notes.

Exports carry a `---` delimited block of `key: value` lines that is close to
YAML but not reliably valid YAML (unquoted colons, stray brackets). Instead
of yaml.safe_load we read it line by line into tagged metadata values.
"""

from __future__ import annotations

import logging

import frontmatter
from frontmatter.default_handlers import YAMLHandler

from ..models import ListValue, MetaValue, TextValue

log = logging.getLogger(__name__)

_QUOTES = "\"'"


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTES:
        return value[1:-1]
    return value


def parse_flat_value(raw: str) -> MetaValue:
    """Turn the right-hand side of a frontmatter line into a metadata value.

    Examples:
        >>> parse_flat_value("[work, 'draft', ]")
        ListValue(kind='list', items=['work', 'draft'])
        >>> parse_flat_value("null")
        TextValue(kind='text', value='')
    """
    value = raw.strip()
    if value in ("", "null"):
        return TextValue(value="")
    if value.startswith("[") and value.endswith("]"):
        items = [_unquote(item) for item in value[1:-1].split(",")]
        return ListValue(items=[item for item in items if item])
    return TextValue(value=_unquote(value))


class FlatFrontmatterHandler(YAMLHandler):
    """YAMLHandler that keeps the `---` delimiters but parses a flat block.

    Each line splits on its first colon. An indented `- item` line extends
    the previous key into a list. Any other line without a colon is ignored.
    """

    def load(self, fm: str, **kwargs) -> dict[str, MetaValue]:
        metadata: dict[str, MetaValue] = {}
        last_key: str | None = None

        for line in fm.splitlines():
            stripped = line.strip()
            if not stripped:
                continue

            if last_key is not None and line[:1].isspace() and stripped.startswith("- "):
                item = _unquote(stripped[2:])
                current = metadata.get(last_key)
                items = list(current.items) if isinstance(current, ListValue) else []
                if item:
                    items.append(item)
                metadata[last_key] = ListValue(items=items)
                continue

            key, sep, raw = stripped.partition(":")
            key = key.strip()
            if not sep or not key:
                continue

            metadata[key] = parse_flat_value(raw)
            last_key = key

        return metadata


_handler = FlatFrontmatterHandler()


def split_frontmatter(text: str) -> tuple[dict[str, MetaValue], str]:
    """Split text into (metadata, body).

    Text without a leading `---` line has no metadata and is returned whole.
    """
    if not _handler.detect(text):
        return {}, text

    metadata, body = frontmatter.parse(text, handler=_handler)
    log.debug("Parsed %d frontmatter keys", len(metadata))
    return metadata, body
