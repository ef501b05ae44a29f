"""Forest entries: one per discovered manifest."""

from __future__ import annotations

import enum
import hashlib
import os
from dataclasses import dataclass

from modforest.exceptions import ManifestError, OrphanDirective
from modforest.parser.models import ManifestRecord
from modforest.tree.builder import build_tree, find_orphans
from modforest.tree.models import TreeNode


class EntryStatus(str, enum.Enum):
    UNPARSED = "unparsed"
    PARSED = "parsed"
    ERRORED = "errored"


@dataclass(frozen=True)
class ForestEntry:
    """State of one manifest. Replaced as a whole, never mutated in place.

    After a parse attempt exactly one of ``record`` / ``error`` is set.
    """

    manifest_path: str
    status: EntryStatus
    fingerprint: str = ""
    record: ManifestRecord | None = None
    tree: TreeNode | None = None
    error: ManifestError | None = None
    orphans: tuple[OrphanDirective, ...] = ()

    @classmethod
    def parsed(cls, manifest_path: str, fingerprint: str, record: ManifestRecord) -> ForestEntry:
        return cls(
            manifest_path=manifest_path,
            status=EntryStatus.PARSED,
            fingerprint=fingerprint,
            record=record,
            tree=build_tree(record),
            orphans=tuple(find_orphans(record)),
        )

    @classmethod
    def errored(cls, manifest_path: str, fingerprint: str, error: ManifestError) -> ForestEntry:
        return cls(
            manifest_path=manifest_path,
            status=EntryStatus.ERRORED,
            fingerprint=fingerprint,
            error=error,
        )

    @classmethod
    def unparsed(cls, manifest_path: str, fingerprint: str = "") -> ForestEntry:
        return cls(manifest_path=manifest_path, status=EntryStatus.UNPARSED, fingerprint=fingerprint)

    @property
    def directory(self) -> str:
        return os.path.dirname(self.manifest_path)

    @property
    def module_path(self) -> str:
        return self.record.module_path if self.record is not None else ""

    @property
    def is_settled(self) -> bool:
        return self.status is not EntryStatus.UNPARSED


ModuleForest = dict[str, ForestEntry]


def fingerprint_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
