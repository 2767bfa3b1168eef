"""Content parsers for exported documents.

Both parsers share one contract: `(text, record, resolver) -> ParsedDocument`.
"""

from __future__ import annotations

from collections.abc import Callable

from ..config import HTML_EXTENSION, MARKDOWN_EXTENSION
from ..models import FileRecord, ParsedDocument
from .html_export import parse_html_export
from .links import PathResolver
from .markdown import parse_markdown

ContentParser = Callable[[str, FileRecord, PathResolver], ParsedDocument]

_PARSERS: dict[str, ContentParser] = {
    MARKDOWN_EXTENSION: parse_markdown,
    HTML_EXTENSION: parse_html_export,
}


def parser_for(path: str) -> ContentParser:
    """Pick the parser for a content file by its (case-insensitive) extension.

    Raises:
        ValueError: If path is not a content file.
    """
    lowered = path.lower()
    for extension, parser in _PARSERS.items():
        if lowered.endswith(extension):
            return parser
    raise ValueError(f"No content parser for {path}")


def parse_content(text: str, record: FileRecord, resolver: PathResolver) -> ParsedDocument:
    return parser_for(record.path)(text, record, resolver)


__all__ = ["ContentParser", "PathResolver", "parse_content", "parser_for"]
