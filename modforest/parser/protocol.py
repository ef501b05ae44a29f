"""Parser capability: the seam between callers and the parser's execution context."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from modforest.parser.go_mod import parse_manifest
from modforest.parser.models import ManifestRecord


@runtime_checkable
class ManifestParser(Protocol):
    """Interface every parser backend must satisfy.

    Raises :class:`~modforest.exceptions.ManifestError` subclasses on failure.
    """

    async def parse(self, text: str) -> ManifestRecord: ...


class InProcessParser:
    """Runs :func:`parse_manifest` directly on the caller's thread."""

    async def parse(self, text: str) -> ManifestRecord:
        return parse_manifest(text)
