"""Configuration management for nexus.

This module contains all configurable constants for the import engine.
Magic numbers are documented here rather than scattered throughout the codebase.
"""

import os
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""

    pass


# =============================================================================
# Archive Classification
# =============================================================================

# Folder injected by macOS archivers; every entry below it is ignored.
PLATFORM_METADATA_PREFIX = "__MACOSX"

# Entries with these extensions are content files, everything else is an asset.
MARKDOWN_EXTENSION = ".md"
HTML_EXTENSION = ".html"
CONTENT_EXTENSIONS = (MARKDOWN_EXTENSION, HTML_EXTENSION)

# Upper bound on archive entries before the archive is rejected outright.
MAX_ARCHIVE_ENTRIES = 50_000

# Entries above this uncompressed size fail individually instead of being read.
MAX_ENTRY_BYTES = 100 * 1024 * 1024


# =============================================================================
# Objects and Schemas
# =============================================================================

# Type assigned to imported objects whose metadata carries no `type` key.
DEFAULT_OBJECT_TYPE = "Notion"

# Substrings that mark a metadata key as a date property.
DATE_KEY_MARKERS = ("date", "fecha")

# Exact key used by exports for the creation timestamp.
CREATION_TIMESTAMP_KEY = "createdAt"

# Keys whose values are lists of names in the exports we know about.
LIST_VALUED_KEYS = frozenset({"organizaciones", "personasInvolucradas"})

# Keys lifted out of metadata into the object itself.
TITLE_KEY = "title"
TYPE_KEY = "type"
TAGS_KEY = "tags"

# Scheme used for asset references embedded in imported content.
ASSET_SCHEME = "asset://"


# =============================================================================
# Progress Reporting
# =============================================================================

PARSE_PROGRESS_EVERY = 10
ASSET_PROGRESS_EVERY = 5
OBJECT_PROGRESS_EVERY = 10
REVERT_PROGRESS_EVERY = 10


# =============================================================================
# Store Discovery
# =============================================================================

MANIFEST_FILENAME = "last_import.json"
CONFIG_FILENAME = ".nexusconfig"


def _discover_project_config(start_dir: Path | None = None, max_depth: int = 10) -> tuple[Path, dict] | None:
    """Walk up from start_dir looking for a .nexusconfig file.

    Returns:
        Tuple of (config_path, parsed_config) if found, None otherwise.
    """
    import yaml

    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        config_file = current / CONFIG_FILENAME
        if config_file.exists():
            try:
                data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError):
                data = {}
            if isinstance(data, dict):
                return (config_file, data)

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def get_store_root() -> Path:
    """Get the knowledge store root directory.

    Discovery order:
    1. NEXUS_STORE_ROOT environment variable (explicit override)
    2. `store_path` in the nearest .nexusconfig, relative to that file
    3. ~/.nexus/store/ if it exists
    4. Error with helpful message

    Raises:
        ConfigurationError: If no store can be found.
    """
    root = os.environ.get("NEXUS_STORE_ROOT")
    if root:
        return Path(root)

    project_config = _discover_project_config()
    if project_config:
        config_path, data = project_config
        store_path = data.get("store_path")
        if store_path:
            return (config_path.parent / str(store_path)).resolve()

    user_store = Path.home() / ".nexus" / "store"
    if user_store.exists():
        return user_store

    raise ConfigurationError(
        "No knowledge store found. Options:\n"
        "  1. Set NEXUS_STORE_ROOT to a directory\n"
        f"  2. Add `store_path: ./store` to a {CONFIG_FILENAME} file\n"
        "  3. Create ~/.nexus/store/"
    )


def get_default_object_type() -> str:
    """Get the type for objects without a `type` key.

    NEXUS_DEFAULT_TYPE wins over `default_type` in .nexusconfig.
    """
    env_type = os.environ.get("NEXUS_DEFAULT_TYPE")
    if env_type:
        return env_type

    project_config = _discover_project_config()
    if project_config:
        _config_path, data = project_config
        default_type = data.get("default_type")
        if isinstance(default_type, str) and default_type.strip():
            return default_type.strip()

    return DEFAULT_OBJECT_TYPE
