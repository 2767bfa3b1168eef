"""Resolution of references found inside imported content.

A reference is whatever a link or image points at: a relative path such as
`../Projects/Plan.md`, a URL-encoded path, or a bare wiki-link target such
as `Plan`. References resolve either to a FileRecord (another imported
document) or to a stored asset name.
"""

from __future__ import annotations

import logging
import unicodedata
from collections.abc import Mapping
from urllib.parse import unquote

from ..config import CONTENT_EXTENSIONS, HTML_EXTENSION, MARKDOWN_EXTENSION
from ..models import FileRecord

log = logging.getLogger(__name__)

EXTERNAL_PREFIXES = ("http://", "https://", "mailto:")


def is_external(reference: str) -> bool:
    return reference.lower().startswith(EXTERNAL_PREFIXES)


def is_fragment(reference: str) -> bool:
    """True for in-page anchors such as `#section`."""
    return reference.startswith("#")


def decode_reference(reference: str) -> str:
    """Drop any `#fragment`/`?query` and URL-decode the rest."""
    path = reference.split("#", 1)[0].split("?", 1)[0]
    return unquote(path.strip())


def reference_candidates(reference: str) -> list[str]:
    """Decoded forms of a reference to try, most literal first.

    The whole reference is tried before the fragment-stripped form so that
    names containing `#` (`C# Notes`) still find their own file.
    """
    candidates = []
    for candidate in (unquote(reference.strip()), decode_reference(reference)):
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


def resolve_path(base_path: str, relative: str) -> str:
    """Resolve `relative` against the directory of `base_path`.

    `.` segments are skipped and `..` pops one directory (never above the
    archive root).

    Examples:
        >>> resolve_path("notes/daily/today.md", "../ideas/x.md")
        'notes/ideas/x.md'
        >>> resolve_path("a.md", "./b.md")
        'b.md'
    """
    stack = base_path.split("/")[:-1]

    for part in relative.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if stack:
                stack.pop()
        else:
            stack.append(part)

    return "/".join(stack)


def _strip_content_extension(name: str) -> str:
    lowered = name.lower()
    for ext in CONTENT_EXTENSIONS:
        if lowered.endswith(ext):
            return name[: -len(ext)]
    return name


def normalize_file_name(path: str) -> str:
    """Final path segment without .md/.html, NFC-normalized and lower-cased."""
    name = path.rsplit("/", 1)[-1]
    return unicodedata.normalize("NFC", _strip_content_extension(name)).lower()


class PathResolver:
    """Resolve references against the maps built by the scan.

    Args:
        records: Normalized path -> FileRecord for every accepted content file.
        asset_map: Normalized path -> stored name for every asset.
    """

    def __init__(self, records: Mapping[str, FileRecord], asset_map: Mapping[str, str]):
        self.records = records
        self.asset_map = asset_map

    def resolve(self, source_path: str, reference: str) -> FileRecord | None:
        """Resolve a reference to the document it points at.

        Attempts resolution in order:
        1. Exact archive path
        2. Path relative to the source file's directory
        3. Relative path with `.md`, then `.html` appended
        4. File name only, compared case- and normalization-insensitively
           against every record (first match wins)

        Returns:
            The target record, or None when nothing matches.
        """
        for decoded in reference_candidates(reference):
            target = self._resolve_decoded(source_path, decoded)
            if target:
                return target

        log.debug("Unresolved reference %r in %s", reference, source_path)
        return None

    def _resolve_decoded(self, source_path: str, decoded: str) -> FileRecord | None:
        target = self.records.get(decoded)
        if target:
            return target

        resolved = resolve_path(source_path, decoded)
        target = self.records.get(resolved)
        if target:
            return target

        target = self.records.get(resolved + MARKDOWN_EXTENSION) or self.records.get(
            resolved + HTML_EXTENSION
        )
        if target:
            return target

        # Lowest confidence: same file name anywhere in the archive
        search_name = normalize_file_name(decoded)
        if search_name:
            for path, record in self.records.items():
                if normalize_file_name(path) == search_name:
                    log.debug("Resolved %r from %s by file name only", decoded, source_path)
                    return record

        return None

    def resolve_asset(self, source_path: str, reference: str) -> str | None:
        """Resolve a reference to the stored name of an asset.

        Tries the path relative to the source file, then the path as an
        archive-root path. A bare file name (no `/`) that still misses is
        matched against asset file names, but only when exactly one asset
        carries that name.
        """
        decoded = decode_reference(reference)
        if not decoded:
            return None

        name = self.asset_map.get(resolve_path(source_path, decoded)) or self.asset_map.get(decoded)
        if name:
            return name

        if "/" not in decoded:
            matches = [
                stored for path, stored in self.asset_map.items() if path.rsplit("/", 1)[-1] == decoded
            ]
            if len(matches) == 1:
                return matches[0]
            if matches:
                log.debug("Ambiguous asset name %r in %s (%d candidates)", decoded, source_path, len(matches))

        return None
