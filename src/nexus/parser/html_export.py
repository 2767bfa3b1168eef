"""Parsing of HTML page exports.

An HTML export looks like:

    <html><head><title>Plan</title></head><body>
      <h1>Plan</h1>
      <table class="properties"><tr><th>Status</th><td>Active</td></tr></table>
      <div class="page-body">...</div>
    </body></html>
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup, Tag

from ..config import ASSET_SCHEME, TITLE_KEY
from ..models import FileRecord, MetaValue, ParsedDocument, TextValue
from .links import PathResolver, is_external, is_fragment

log = logging.getLogger(__name__)

UNTITLED = "Untitled"


def _text(tag: Tag) -> str:
    return tag.get_text(" ", strip=True)


def extract_title(soup: BeautifulSoup) -> str:
    """First `<h1>`, else `<title>`, else "Untitled"."""
    for selector in ("h1", "title"):
        tag = soup.find(selector)
        if tag is not None and _text(tag):
            return _text(tag)
    return UNTITLED


def extract_properties(soup: BeautifulSoup) -> dict[str, MetaValue]:
    """Read and remove the `.properties` table.

    Every row with both a header and a data cell becomes one entry; keys are
    lower-cased header text.
    """
    metadata: dict[str, MetaValue] = {}
    table = soup.select_one(".properties")
    if table is None:
        return metadata

    for row in table.find_all("tr"):
        header = row.find("th")
        cell = row.find("td")
        if header is None or cell is None:
            continue
        key = _text(header).lower()
        if key:
            metadata[key] = TextValue(value=_text(cell))

    table.decompose()
    return metadata


def _add_class(tag: Tag, name: str) -> None:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    if name not in classes:
        classes.append(name)
    tag["class"] = classes


def rewrite_references(soup: BeautifulSoup, record: FileRecord, resolver: PathResolver) -> list[str]:
    """Rewrite images and internal anchors in place.

    Returns:
        References that could not be resolved.
    """
    broken: list[str] = []

    for img in soup.find_all("img", src=True):
        src = img["src"]
        if is_external(src):
            continue
        stored = resolver.resolve_asset(record.path, src)
        if stored is not None:
            img["src"] = ASSET_SCHEME + stored

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if is_external(href) or is_fragment(href):
            continue

        target = resolver.resolve(record.path, href)
        if target is not None:
            del anchor["href"]
            anchor["data-object-id"] = target.id
            _add_class(anchor, "nexus-mention")
            continue

        stored = resolver.resolve_asset(record.path, href)
        if stored is not None:
            anchor["href"] = ASSET_SCHEME + stored
            continue

        broken.append(href)
        anchor.name = "span"
        del anchor["href"]
        _add_class(anchor, "broken-link")
        anchor["title"] = f"Link not found: {href}"

    return broken


def parse_html_export(text: str, record: FileRecord, resolver: PathResolver) -> ParsedDocument:
    """Parse an HTML export into metadata and resolved HTML body."""
    soup = BeautifulSoup(text, "html.parser")

    # Property rows win over the heading, a `Title` row included
    metadata: dict[str, MetaValue] = {TITLE_KEY: TextValue(value=extract_title(soup))}
    metadata.update(extract_properties(soup))

    broken = rewrite_references(soup, record, resolver)
    if broken:
        log.debug("%s has %d broken links", record.path, len(broken))

    container = soup.select_one(".page-body") or soup.body
    body = container.decode_contents() if container is not None else str(soup)
    return ParsedDocument(metadata=metadata, body=body.strip())
