"""Tests for content parsing.

Coverage:
- src/nexus/parser/frontmatter.py - flat frontmatter blocks
- src/nexus/parser/markdown.py - markdown rendering with wiki-links
- src/nexus/parser/html_export.py - HTML page exports
- src/nexus/parser/__init__.py - parser dispatch

Philosophy: Test behaviors, not regex internals. Use parametrize for variations.
"""

from __future__ import annotations

import pytest

from nexus.models import FileRecord, ListValue, TextValue
from nexus.parser import parse_content, parser_for
from nexus.parser.frontmatter import parse_flat_value, split_frontmatter
from nexus.parser.html_export import parse_html_export
from nexus.parser.links import PathResolver
from nexus.parser.markdown import parse_markdown, render_markdown, split_wikilink


def _record(path: str, record_id: str) -> FileRecord:
    title = path.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    return FileRecord(id=record_id, title=title, inferred_type="Notion", path=path)


@pytest.fixture
def resolver() -> PathResolver:
    records = {
        "NoteA.md": _record("NoteA.md", "id-a"),
        "NoteB.md": _record("NoteB.md", "id-b"),
        "Docs/Guide.html": _record("Docs/Guide.html", "id-guide"),
    }
    asset_map = {
        "pic.png": "pic_0001.png",
        "Docs/files/manual.pdf": "manual_0002.pdf",
    }
    return PathResolver(records, asset_map)


# ─────────────────────────────────────────────────────────────────────────────
# Frontmatter
# ─────────────────────────────────────────────────────────────────────────────


class TestFlatValues:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("[work, draft]", ["work", "draft"]),
            ("[ work ,  draft ]", ["work", "draft"]),
            ("['work', \"draft\"]", ["work", "draft"]),
            ("[work, , draft, ]", ["work", "draft"]),
            ("[]", []),
        ],
    )
    def test_list_values(self, raw, expected):
        assert parse_flat_value(raw) == ListValue(items=expected)

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("", ""),
            ("null", ""),
            ("  plain text  ", "plain text"),
            ('"quoted"', "quoted"),
            ("'single'", "single"),
        ],
    )
    def test_text_values(self, raw, expected):
        assert parse_flat_value(raw) == TextValue(value=expected)


class TestSplitFrontmatter:
    """Flat `key: value` blocks between `---` lines."""

    def test_tags_list_keeps_order(self):
        metadata, body = split_frontmatter("---\ntags: [work, draft]\n---\nBody")

        assert metadata["tags"] == ListValue(items=["work", "draft"])
        assert body.strip() == "Body"

    def test_splits_on_first_colon_only(self):
        metadata, _ = split_frontmatter("---\nsource: https://example.com/a\ntime: 10:30\n---\n")

        assert metadata["source"] == TextValue(value="https://example.com/a")
        assert metadata["time"] == TextValue(value="10:30")

    def test_lines_without_colon_are_ignored(self):
        metadata, _ = split_frontmatter("---\ntitle: Plan\njust some words\n---\nBody")

        assert list(metadata) == ["title"]

    def test_invalid_yaml_is_still_read(self):
        metadata, _ = split_frontmatter("---\nnote: a: b: [c\nstatus: null\n---\nBody")

        assert metadata["note"] == TextValue(value="a: b: [c")
        assert metadata["status"] == TextValue(value="")

    def test_indented_items_extend_previous_key(self):
        metadata, _ = split_frontmatter("---\ntags:\n  - one\n  - 'two'\nstatus: done\n---\n")

        assert metadata["tags"] == ListValue(items=["one", "two"])
        assert metadata["status"] == TextValue(value="done")

    def test_no_frontmatter(self):
        metadata, body = split_frontmatter("# Heading\n\nText")

        assert metadata == {}
        assert body == "# Heading\n\nText"

    def test_unclosed_frontmatter_is_body(self):
        metadata, body = split_frontmatter("---\ntitle: Plan\nno closing line")

        assert metadata == {}
        assert "no closing line" in body


# ─────────────────────────────────────────────────────────────────────────────
# Markdown
# ─────────────────────────────────────────────────────────────────────────────


class TestWikilinks:
    """Wiki-links go through the same resolver as standard links."""

    def test_split_wikilink(self):
        assert split_wikilink("NoteB|the other note") == ("NoteB", "the other note")
        assert split_wikilink("NoteB") == ("NoteB", "NoteB")

    def test_split_wikilink_escaped_pipe(self):
        assert split_wikilink("NoteB\\|bee") == ("NoteB", "bee")

    def test_aliased_wikilink_in_table_cell(self, resolver):
        content = "| a | b |\n|---|---|\n| [[NoteB|bee]] | x |\n"

        result = render_markdown(content, resolver, "NoteA.md")

        assert '<td><a data-object-id="id-b" class="nexus-mention">bee</a></td>' in result.html
        assert "<td>x</td>" in result.html
        assert "[[" not in result.html

    def test_escaped_alias_in_table_cell(self, resolver):
        content = "| a |\n|---|\n| [[Missing\\|gone]] |\n"

        result = render_markdown(content, resolver, "NoteA.md")

        assert '<span class="broken-link" title="Link not found: Missing">gone</span>' in result.html

    def test_pipe_in_fenced_code_is_untouched(self, resolver):
        result = render_markdown("```\n| [[NoteB|bee]] |\n```\n", resolver, "NoteA.md")

        assert "| [[NoteB|bee]] |" in result.html

    def test_resolved_wikilink(self, resolver):
        result = render_markdown("See [[NoteB]] here.", resolver, "NoteA.md")

        assert '<a data-object-id="id-b" class="nexus-mention">NoteB</a>' in result.html
        assert result.links == ["id-b"]

    def test_aliased_wikilink(self, resolver):
        result = render_markdown("See [[NoteB|the other note]].", resolver, "NoteA.md")

        assert 'data-object-id="id-b"' in result.html
        assert ">the other note</a>" in result.html

    def test_wikilink_with_heading_fragment(self, resolver):
        result = render_markdown("See [[NoteB#Details]].", resolver, "NoteA.md")

        assert 'data-object-id="id-b"' in result.html

    def test_broken_wikilink(self, resolver):
        result = render_markdown("See [[Missing Note]].", resolver, "NoteA.md")

        assert '<span class="broken-link" title="Link not found: Missing Note">Missing Note</span>' in result.html
        assert result.broken_links == ["Missing Note"]

    def test_wikilink_in_code_is_untouched(self, resolver):
        result = render_markdown("Use `[[NoteB]]` literally.\n\n```\n[[NoteB]]\n```\n", resolver, "NoteA.md")

        assert "data-object-id" not in result.html
        assert result.html.count("[[NoteB]]") == 2

    def test_embedded_wikilink_image(self, resolver):
        result = render_markdown("![[pic.png]]", resolver, "NoteA.md")

        assert '<img src="asset://pic_0001.png" alt="pic.png" />' in result.html

    def test_wikilink_label_is_escaped(self, resolver):
        result = render_markdown("[[NoteB|<b>bold</b>]]", resolver, "NoteA.md")

        assert "&lt;b&gt;bold&lt;/b&gt;" in result.html


class TestStandardLinks:
    def test_relative_markdown_link(self, resolver):
        result = render_markdown("[B](NoteB.md)", resolver, "NoteA.md")

        assert '<a data-object-id="id-b" class="nexus-mention">B</a>' in result.html

    def test_url_encoded_link(self, resolver):
        records = {"My Note.md": _record("My Note.md", "id-mine")}
        result = render_markdown("[x](My%20Note.md)", PathResolver(records, {}), "Other.md")

        assert 'data-object-id="id-mine"' in result.html

    def test_external_link_opens_new_tab(self, resolver):
        result = render_markdown("[site](https://example.com)", resolver, "NoteA.md")

        assert 'href="https://example.com"' in result.html
        assert 'target="_blank"' in result.html
        assert 'rel="noopener noreferrer"' in result.html

    def test_mailto_is_external(self, resolver):
        result = render_markdown("[mail](mailto:me@example.com)", resolver, "NoteA.md")

        assert 'href="mailto:me@example.com"' in result.html
        assert "broken-link" not in result.html

    def test_link_to_asset(self, resolver):
        result = render_markdown("[manual](files/manual.pdf)", resolver, "Docs/Guide.md")

        assert '<a href="asset://manual_0002.pdf">manual</a>' in result.html

    def test_fragment_link_left_alone(self, resolver):
        result = render_markdown("[top](#top)", resolver, "NoteA.md")

        assert '<a href="#top">top</a>' in result.html

    def test_broken_standard_link(self, resolver):
        result = render_markdown("[gone](Gone.md)", resolver, "NoteA.md")

        assert 'class="broken-link"' in result.html
        assert "<a" not in result.html


class TestImages:
    def test_resolved_image(self, resolver):
        result = render_markdown("![](pic.png)", resolver, "NoteA.md")

        assert 'src="asset://pic_0001.png"' in result.html

    def test_unresolved_image_keeps_reference(self, resolver):
        result = render_markdown("![alt text](missing.png)", resolver, "NoteA.md")

        assert '<img src="missing.png" alt="alt text" />' in result.html

    def test_external_image_untouched(self, resolver):
        result = render_markdown("![](https://example.com/x.png)", resolver, "NoteA.md")

        assert 'src="https://example.com/x.png"' in result.html


class TestMarkdownDocument:
    def test_tables_are_rendered(self, resolver):
        content = "| A | B |\n|---|---|\n| 1 | [[NoteB]] |\n"

        result = render_markdown(content, resolver, "NoteA.md")

        assert "<table>" in result.html
        assert 'data-object-id="id-b"' in result.html

    def test_parse_markdown_returns_metadata_and_html(self, resolver):
        record = _record("NoteA.md", "id-a")

        document = parse_markdown("---\ntags: [x]\n---\nSee [[NoteB]]\n", record, resolver)

        assert document.metadata == {"tags": ListValue(items=["x"])}
        assert document.body.startswith("<p>See ")
        assert 'data-object-id="id-b"' in document.body


# ─────────────────────────────────────────────────────────────────────────────
# HTML exports
# ─────────────────────────────────────────────────────────────────────────────

HTML_PAGE = """<html>
<head><title>Head Title</title></head>
<body>
<h1>Project Guide</h1>
<table class="properties">
  <tr><th>Status</th><td>Active</td></tr>
  <tr><th>Fecha</th><td>May 3, 2024</td></tr>
  <tr><th>Orphan</th></tr>
</table>
<div class="page-body">
  <p>Read <a href="../NoteA.md">note A</a> and <a href="Missing.html">this</a>.</p>
  <p><a href="files/manual.pdf">manual</a> <a href="https://example.com">site</a> <a href="#s">s</a></p>
  <img src="../pic.png">
</div>
</body>
</html>"""


class TestHtmlExport:
    @pytest.fixture
    def document(self, resolver):
        return parse_html_export(HTML_PAGE, _record("Docs/Guide.html", "id-guide"), resolver)

    def test_title_from_h1(self, document):
        assert document.metadata["title"] == TextValue(value="Project Guide")

    def test_title_falls_back_to_title_tag(self, resolver):
        document = parse_html_export(
            "<html><head><title>Only Head</title></head><body><p>x</p></body></html>",
            _record("x.html", "x"),
            resolver,
        )

        assert document.metadata["title"] == TextValue(value="Only Head")

    def test_untitled(self, resolver):
        document = parse_html_export("<p>x</p>", _record("x.html", "x"), resolver)

        assert document.metadata["title"] == TextValue(value="Untitled")

    def test_title_property_row_overrides_heading(self, resolver):
        document = parse_html_export(
            '<h1>Heading</h1><table class="properties"><tr><th>Title</th><td>From Row</td></tr></table>',
            _record("x.html", "x"),
            resolver,
        )

        assert document.metadata["title"] == TextValue(value="From Row")

    def test_properties_table(self, document):
        assert document.metadata["status"] == TextValue(value="Active")
        assert document.metadata["fecha"] == TextValue(value="May 3, 2024")
        assert "orphan" not in document.metadata
        assert "properties" not in document.body

    def test_body_is_page_body_only(self, document):
        assert "Project Guide" not in document.body
        assert document.body.startswith("<p>Read")

    def test_internal_link_resolved(self, document):
        assert 'data-object-id="id-a"' in document.body
        assert "nexus-mention" in document.body
        assert "../NoteA.md" not in document.body

    def test_broken_link_flagged(self, document):
        assert '<span class="broken-link" title="Link not found: Missing.html">this</span>' in document.body

    def test_asset_link_and_image(self, document):
        assert 'href="asset://manual_0002.pdf"' in document.body
        assert 'src="asset://pic_0001.png"' in document.body

    def test_external_and_fragment_links_untouched(self, document):
        assert 'href="https://example.com"' in document.body
        assert 'href="#s"' in document.body

    def test_body_without_page_body(self, resolver):
        document = parse_html_export(
            "<html><body><h1>T</h1><p>Plain</p></body></html>", _record("x.html", "x"), resolver
        )

        assert "<p>Plain</p>" in document.body


class TestDispatch:
    def test_parser_for_extension(self):
        assert parser_for("a/b.md") is parse_markdown
        assert parser_for("a/B.HTML") is parse_html_export

    def test_parser_for_asset_raises(self):
        with pytest.raises(ValueError):
            parser_for("pic.png")

    def test_parse_content_dispatches(self, resolver):
        document = parse_content("<h1>Guide</h1>", _record("Docs/Guide.html", "id-guide"), resolver)

        assert document.metadata["title"] == TextValue(value="Guide")
