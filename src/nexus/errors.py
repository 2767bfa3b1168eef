"""Structured errors for nexus.

Every error raised across a module boundary carries an ErrorCode so the CLI
can render it as plain text or as JSON (`--json-errors`).
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for programmatic consumers."""

    ARCHIVE_UNREADABLE = "ARCHIVE_UNREADABLE"
    ARCHIVE_TOO_LARGE = "ARCHIVE_TOO_LARGE"
    IMPORT_CANCELLED = "IMPORT_CANCELLED"
    NO_MANIFEST = "NO_MANIFEST"
    REVERT_FAILED = "REVERT_FAILED"
    PARSE_ERROR = "PARSE_ERROR"
    STORE_ERROR = "STORE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class NexusError(Exception):
    """Base error with a code, a message and optional details."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class ArchiveError(NexusError):
    """The archive cannot be opened or enumerated. Aborts the whole run."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.ARCHIVE_UNREADABLE, **details: Any) -> None:
        super().__init__(code, message, details or None)


class ImportCancelled(NexusError):
    """The run was cancelled between two entries."""

    def __init__(self, phase: str) -> None:
        super().__init__(
            ErrorCode.IMPORT_CANCELLED,
            f"Import cancelled during {phase}",
            {"phase": phase},
        )


class NoManifestError(NexusError):
    """There is no import record to revert."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.NO_MANIFEST,
            "No previous import to revert",
            {"suggestion": "Run `nx import` first; only the most recent import can be reverted"},
        )


class RevertError(NexusError):
    """A delete failed mid-revert. The manifest is left in place."""

    def __init__(self, message: str, deleted: int, remaining: int) -> None:
        super().__init__(
            ErrorCode.REVERT_FAILED,
            message,
            {
                "deleted": deleted,
                "remaining": remaining,
                "suggestion": "Fix the store and run `nx revert` again",
            },
        )


class ContentParseError(NexusError):
    """A single content file could not be parsed."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(ErrorCode.PARSE_ERROR, f"{path}: {message}", {"path": path})


class StoreError(NexusError):
    """The knowledge store rejected a write that the run cannot continue without."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(ErrorCode.STORE_ERROR, message, details or None)


def format_error_json(code: ErrorCode | str, message: str, details: dict | None = None) -> str:
    """Format an arbitrary error as the same JSON shape as NexusError.to_json()."""
    code_value = code.value if isinstance(code, ErrorCode) else code
    error: dict[str, Any] = {"code": code_value, "message": message}
    if details:
        error["details"] = details
    return json.dumps({"error": error}, default=str)
