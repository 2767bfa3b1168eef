"""Stored-name assignment for binary assets found in the archive."""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from .context import ImportContext

log = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE | re.ASCII)


def sanitize_stem(stem: str) -> str:
    """Replace every character that is not an ASCII letter or digit with `_`.

    Examples:
        >>> sanitize_stem("My Photo (1)")
        'My_Photo__1_'
    """
    return _UNSAFE_CHARS.sub("_", stem) or "asset"


def stored_asset_name(path: str, token: str) -> str:
    """Build `<sanitized stem>_<token><extension>` for an archive path."""
    pure = PurePosixPath(path)
    return f"{sanitize_stem(pure.stem)}_{token}{pure.suffix}"


def resolve_assets(context: ImportContext) -> dict[str, str]:
    """Give every queued asset a stored name unique within the run.

    Must run after the scan and before any content file is parsed, since
    image and link rewriting looks names up in context.asset_map.

    Returns:
        The filled asset map (original path -> stored name).
    """
    used = set(context.asset_map.values())

    for path in context.asset_queue:
        if path in context.asset_map:
            continue
        name = stored_asset_name(path, context.new_token())
        while name in used:
            name = stored_asset_name(path, context.new_token())
        used.add(name)
        context.asset_map[path] = name

    log.info("Resolved %d assets", len(context.asset_map))
    return context.asset_map
