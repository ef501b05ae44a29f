"""Error taxonomy for manifest parsing, the sandbox channel and workspace scans."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ErrorKind(str, enum.Enum):
    EMPTY_MANIFEST = "empty_manifest"
    MALFORMED_MANIFEST = "malformed_manifest"
    SANDBOX_UNAVAILABLE = "sandbox_unavailable"
    FILESYSTEM_ERROR = "filesystem_error"
    ORPHAN_DIRECTIVE = "orphan_directive"


class ModForestError(Exception):
    """Base exception for all modforest errors."""


class ManifestError(ModForestError):
    """A per-manifest failure that is recorded on a forest entry.

    Never aborts a workspace scan; the entry carries it instead of a record.
    """

    kind: ErrorKind = ErrorKind.MALFORMED_MANIFEST

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ManifestError):
            return NotImplemented
        return self.kind is other.kind and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.kind, self.message))


class EmptyManifestError(ManifestError):
    """Raised when the manifest text is empty."""

    kind = ErrorKind.EMPTY_MANIFEST


class MalformedManifestError(ManifestError):
    """Raised when non-empty manifest text violates the directive grammar."""

    kind = ErrorKind.MALFORMED_MANIFEST


class SandboxUnavailableError(ManifestError):
    """Raised when the parser sandbox cannot be reached (transport-level)."""

    kind = ErrorKind.SANDBOX_UNAVAILABLE

    @property
    def retryable(self) -> bool:
        return True


class FileSystemError(ManifestError):
    """Raised when a manifest or directory cannot be read."""

    kind = ErrorKind.FILESYSTEM_ERROR


class WorkspaceError(ModForestError):
    """Raised when the workspace root itself is inaccessible."""


@dataclass(frozen=True)
class OrphanDirective:
    """A replace/exclude/tool entry with no corresponding require.

    Reported alongside the tree; not an error.
    """

    directive: str  # "replace" | "exclude" | "tool"
    path: str
    version: str | None = None
    kind: ErrorKind = ErrorKind.ORPHAN_DIRECTIVE
