"""Markdown rendering with reference resolution.

Wiki-links are turned into ordinary link/image tokens by an inline rule, so
`[[Plan]]` and `[Plan](Plan.md)` take the same path through ImportRenderer.
Anything inside code spans or fenced blocks is never touched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from markdown_it import MarkdownIt
from markdown_it.common.utils import escapeHtml
from markdown_it.renderer import RendererHTML
from markdown_it.rules_core import StateCore
from markdown_it.rules_inline import StateInline
from markdown_it.token import Token

from ..config import ASSET_SCHEME
from ..models import FileRecord, ParsedDocument
from .frontmatter import split_frontmatter
from .links import PathResolver, is_external, is_fragment

log = logging.getLogger(__name__)

# ![[target|label]] or [[target|label]], single line, no nested brackets
WIKILINK_RE = re.compile(r"(!?)\[\[([^\[\]\n]+?)\]\]")


def split_wikilink(inner: str) -> tuple[str, str]:
    """Split the inside of `[[...]]` into (target, label).

    The alias separator may be written `\\|`, as inside table cells.

    Examples:
        >>> split_wikilink("Plan|the plan")
        ('Plan', 'the plan')
        >>> split_wikilink("Plan\\\\|the plan")
        ('Plan', 'the plan')
        >>> split_wikilink(" Plan#Goals ")
        ('Plan#Goals', 'Plan#Goals')
    """
    target, _, label = inner.replace("\\|", "|").partition("|")
    target = target.strip()
    return target, label.strip() or target


def _escape_wikilink_pipes(line: str) -> str:
    return WIKILINK_RE.sub(
        lambda m: m.group(0).replace("\\|", "|").replace("|", "\\|"),
        line,
    )


def _protect_table_wikilinks(state: StateCore) -> None:
    """Core rule escaping `|` inside wiki-links on table rows.

    Runs before the block pass so the table rule does not split
    `[[B|bee]]` into two cells. Only lines that still hold a `|` outside
    any wiki-link are touched, and fenced code is skipped.
    """
    lines = state.src.split("\n")
    fence = None
    changed = False

    for i, line in enumerate(lines):
        marker = line.lstrip()[:3]
        if marker in ("```", "~~~"):
            if fence is None:
                fence = marker
            elif marker == fence:
                fence = None
            continue
        if fence is not None or "[[" not in line:
            continue
        if "|" not in WIKILINK_RE.sub("", line):
            continue

        escaped = _escape_wikilink_pipes(line)
        if escaped != line:
            lines[i] = escaped
            changed = True

    if changed:
        state.src = "\n".join(lines)


def _wikilink_rule(state: StateInline, silent: bool) -> bool:
    """Inline rule turning `[[...]]` into link tokens and `![[...]]` into images."""
    match = WIKILINK_RE.match(state.src, state.pos)
    if match is None or match.end() > state.posMax:
        return False

    target, label = split_wikilink(match.group(2))
    if not target:
        return False

    if not silent:
        if match.group(1):
            token = state.push("image", "img", 0)
            token.attrs = {"src": target, "alt": ""}
            token.content = label
            token.children = [Token("text", "", 0, content=label)]
        else:
            token = state.push("link_open", "a", 1)
            token.attrs = {"href": target}
            token.markup = "wikilink"
            token = state.push("text", "", 0)
            token.content = label
            state.push("link_close", "a", -1)

    state.pos = match.end()
    return True


class ImportRenderer(RendererHTML):
    """HTML renderer that rewrites links and images through a PathResolver.

    - External (http, https, mailto): anchor opening in a new tab
    - Resolved document: `<a data-object-id="..." class="nexus-mention">`
    - Resolved asset: `<a href="asset://...">`
    - Anything else: `<span class="broken-link">` placeholder
    """

    def __init__(
        self,
        parser=None,
        resolver: PathResolver | None = None,
        source_path: str = "",
        result: MarkdownResult | None = None,
    ):
        super().__init__(parser)
        self._resolver = resolver
        self._source_path = source_path
        self._result = result if result is not None else MarkdownResult()
        self._close_tags: list[str] = []

    def link_open(self, tokens, idx, options, env) -> str:
        token = tokens[idx]
        href = token.attrGet("href") or ""

        if not href or is_fragment(href):
            self._close_tags.append("</a>")
            return self.renderToken(tokens, idx, options, env)

        if is_external(href):
            token.attrSet("target", "_blank")
            token.attrSet("rel", "noopener noreferrer")
            self._close_tags.append("</a>")
            return self.renderToken(tokens, idx, options, env)

        record = self._resolver.resolve(self._source_path, href) if self._resolver else None
        if record is not None:
            self._result.add_link(record.id)
            self._close_tags.append("</a>")
            return f'<a data-object-id="{escapeHtml(record.id)}" class="nexus-mention">'

        stored = self._resolver.resolve_asset(self._source_path, href) if self._resolver else None
        if stored is not None:
            self._close_tags.append("</a>")
            return f'<a href="{escapeHtml(ASSET_SCHEME + stored)}">'

        self._result.add_broken(href)
        self._close_tags.append("</span>")
        return f'<span class="broken-link" title="Link not found: {escapeHtml(href)}">'

    def link_close(self, tokens, idx, options, env) -> str:
        return self._close_tags.pop() if self._close_tags else "</a>"

    def image(self, tokens, idx, options, env) -> str:
        token = tokens[idx]
        src = token.attrGet("src") or ""
        alt = self.renderInlineAsText(token.children or [], options, env)

        if src and not is_external(src) and self._resolver is not None:
            stored = self._resolver.resolve_asset(self._source_path, src)
            if stored is not None:
                src = ASSET_SCHEME + stored
            else:
                log.debug("Image %r in %s not found in archive", src, self._source_path)

        return f'<img src="{escapeHtml(src)}" alt="{escapeHtml(alt)}" />'


@dataclass
class MarkdownResult:
    """Rendered HTML plus what the renderer learned about references."""

    html: str = ""
    links: list[str] = field(default_factory=list)  # Ids of linked documents, deduplicated
    broken_links: list[str] = field(default_factory=list)

    def add_link(self, object_id: str) -> None:
        if object_id not in self.links:
            self.links.append(object_id)

    def add_broken(self, reference: str) -> None:
        if reference not in self.broken_links:
            self.broken_links.append(reference)


def render_markdown(
    content: str,
    resolver: PathResolver | None = None,
    source_path: str = "",
) -> MarkdownResult:
    """Render markdown to HTML, resolving links and images.

    Args:
        content: Markdown body (frontmatter already removed).
        resolver: Resolver over the current run's maps. Without one every
            internal link renders as broken.
        source_path: Archive path of the document, for relative references.
    """
    result = MarkdownResult()

    class ConfiguredRenderer(ImportRenderer):
        def __init__(self, parser=None):
            super().__init__(
                parser,
                resolver=resolver,
                source_path=source_path,
                result=result,
            )

    md = MarkdownIt(renderer_cls=ConfiguredRenderer)
    md.enable("table")
    md.core.ruler.after("normalize", "wikilink_table_pipes", _protect_table_wikilinks)
    md.inline.ruler.before("link", "wikilink", _wikilink_rule)

    result.html = md.render(content)
    if result.broken_links:
        log.debug("%s has %d broken links", source_path, len(result.broken_links))
    return result


def parse_markdown(text: str, record: FileRecord, resolver: PathResolver) -> ParsedDocument:
    """Parse a Markdown export into metadata and resolved HTML."""
    metadata, body = split_frontmatter(text)
    rendered = render_markdown(body, resolver=resolver, source_path=record.path)
    return ParsedDocument(metadata=metadata, body=rendered.html)
