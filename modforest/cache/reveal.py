"""Map a file on disk to the forest entry and tree node it belongs to."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from modforest.core.config import MANIFEST_FILENAME
from modforest.tree.models import PATH_DELIMITER, TreeNode
from modforest.workspace.models import ForestEntry


@dataclass(frozen=True)
class Reveal:
    manifest_path: str
    node: TreeNode | None  # None when the entry failed to parse
    node_path: str = ""  # dependency path, "" for the module root


def module_path_from_cache(path: str | Path) -> str | None:
    """Extract the module path from a Go module cache location.

    ``.../pkg/mod/github.com/!burnt!sushi/toml@v1.3.2/decode.go`` gives
    ``github.com/BurntSushi/toml``. Returns None outside the module cache.
    """
    parts = Path(path).parts
    for i in range(len(parts) - 1):
        if parts[i] == "pkg" and parts[i + 1] == "mod":
            rest = parts[i + 2 :]
            break
    else:
        return None

    if not rest or rest[0] == "cache":
        return None
    elements: list[str] = []
    for part in rest:
        name, sep, _version = part.partition("@")
        elements.append(name)
        if sep:
            return _unescape(PATH_DELIMITER.join(elements))
    return None


def _unescape(escaped: str) -> str:
    out: list[str] = []
    upper_next = False
    for ch in escaped:
        if ch == "!":
            upper_next = True
            continue
        out.append(ch.upper() if upper_next else ch)
        upper_next = False
    return "".join(out)


def locate(entries: Mapping[str, ForestEntry], file_path: str | Path) -> Reveal | None:
    """Find where *file_path* lives in the forest.

    Files inside a workspace module resolve to the innermost module's root;
    files inside the module cache resolve to the matching dependency leaf.
    """
    target = os.path.realpath(file_path)

    owner: ForestEntry | None = None
    for entry in entries.values():
        if os.path.basename(entry.manifest_path) != MANIFEST_FILENAME:
            continue
        directory = entry.directory
        if target == directory or target.startswith(directory + os.sep):
            if owner is None or len(directory) > len(owner.directory):
                owner = entry
    if owner is not None:
        return Reveal(manifest_path=owner.manifest_path, node=owner.tree)

    dependency = module_path_from_cache(target)
    if dependency is None:
        return None
    for key in sorted(entries):
        tree = entries[key].tree
        node = tree.find(dependency) if tree is not None else None
        if node is not None and node.is_leaf:
            return Reveal(manifest_path=key, node=node, node_path=dependency)
    return None
