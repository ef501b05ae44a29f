"""Aggregated counts across all modules of a forest."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from modforest.core.config import MANIFEST_FILENAME
from modforest.workspace.models import ForestEntry


@dataclass(frozen=True)
class ForestSummary:
    modules: int = 0
    errored: int = 0
    direct: int = 0
    indirect: int = 0
    tools: int = 0
    replaces: int = 0
    excludes: int = 0
    orphans: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def summarize(forest: Mapping[str, ForestEntry]) -> ForestSummary:
    """Count distinct dependency paths per category across the forest.

    A dependency that is itself one of the workspace's modules is not counted
    as a direct or indirect dependency. Entries for directories the walk could
    not list count as errored but not as modules.
    """
    records = [e.record for e in forest.values() if e.record is not None]
    workspace_modules = {r.module_path for r in records if r.module_path}

    direct: set[str] = set()
    indirect: set[str] = set()
    tools: set[str] = set()
    replaces: set[str] = set()
    excludes: set[str] = set()
    for record in records:
        for ref in record.requires:
            if ref.path in workspace_modules:
                continue
            (indirect if ref.indirect else direct).add(ref.path)
        tools.update(ref.path for ref in record.tools)
        replaces.update(ref.path for ref in record.replacements)
        excludes.update(ref.path for ref in record.exclusions)

    return ForestSummary(
        modules=sum(1 for key in forest if os.path.basename(key) == MANIFEST_FILENAME),
        errored=sum(1 for e in forest.values() if e.error is not None),
        direct=len(direct),
        indirect=len(indirect - direct),
        tools=len(tools),
        replaces=len(replaces),
        excludes=len(excludes),
        orphans=sum(len(e.orphans) for e in forest.values()),
    )
