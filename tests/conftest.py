"""Shared test fixtures for the nexus test suite.

Design:
- make_archive: builds a real ZIP export in a temp directory
- store / tmp_store: isolated FileStore (tmp_store also sets NEXUS_STORE_ROOT)
- runner / cli_invoke: CliRunner against the isolated store
- Async tests use pytest-asyncio with function scope
"""

import os
import zipfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from click.testing import CliRunner

from nexus.cli import cli
from nexus.store import FileStore

ArchiveFiles = dict[str, str | bytes]

# Minimal valid PNG header; content is never decoded
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


# ─────────────────────────────────────────────────────────────────────────────
# Archives
# ─────────────────────────────────────────────────────────────────────────────


def write_archive(path: Path, files: ArchiveFiles) -> Path:
    """Write files (archive path -> text or bytes) into a ZIP at path."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            if name.endswith("/"):
                zf.writestr(name, b"")
            elif isinstance(content, bytes):
                zf.writestr(name, content)
            else:
                zf.writestr(name, content.encode("utf-8"))
    return path


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    """Factory for ZIP exports.

    Usage:
        def test_something(make_archive):
            archive = make_archive({"Note.md": "# Note"})
    """
    counter = {"n": 0}

    def _make(files: ArchiveFiles, name: str | None = None) -> Path:
        counter["n"] += 1
        return write_archive(tmp_path / (name or f"export-{counter['n']}.zip"), files)

    return _make


@pytest.fixture
def sample_files() -> ArchiveFiles:
    """NoteA links to NoteB and embeds pic.png; NoteB has no frontmatter."""
    return {
        "NoteA.md": "---\ntags: [x]\n---\nSee [[NoteB]] and ![](pic.png)\n",
        "NoteB.md": "Plain note without frontmatter.\n",
        "pic.png": PNG_BYTES,
    }


@pytest.fixture
def sample_archive(make_archive, sample_files) -> Path:
    return make_archive(sample_files, name="sample.zip")


# ─────────────────────────────────────────────────────────────────────────────
# Stores
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def store(tmp_path: Path) -> FileStore:
    """Empty FileStore in a temp directory."""
    return FileStore(tmp_path / "store")


@pytest.fixture
def tmp_store(tmp_path: Path) -> Generator[Path, None, None]:
    """Store directory exposed through NEXUS_STORE_ROOT.

    Restores the previous value afterwards.
    """
    root = tmp_path / "store"
    root.mkdir()

    original = os.environ.get("NEXUS_STORE_ROOT")
    os.environ["NEXUS_STORE_ROOT"] = str(root)

    yield root

    if original is not None:
        os.environ["NEXUS_STORE_ROOT"] = original
    else:
        os.environ.pop("NEXUS_STORE_ROOT", None)


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def cli_invoke(runner: CliRunner, tmp_store: Path):
    """Invoke the CLI against the temp store.

    Usage:
        def test_import(cli_invoke, sample_archive):
            result = cli_invoke(["import", str(sample_archive)])
            assert result.exit_code == 0
    """

    def _invoke(args: list[str], input: str | None = None, catch_exceptions: bool = False):
        return runner.invoke(cli, args, input=input, catch_exceptions=catch_exceptions)

    return _invoke
