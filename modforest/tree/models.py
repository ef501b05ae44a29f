"""Namespace tree built from a manifest's dependency paths."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass, field

from modforest.parser.models import DependencyRef

PATH_DELIMITER = "/"


class NodeKind(str, enum.Enum):
    NAMESPACE = "namespace"
    DIRECT = "direct"
    INDIRECT = "indirect"
    TOOL = "tool"
    EXCLUDED = "excluded"
    REPLACED = "replaced"

    @property
    def weight(self) -> int:
        """Precedence when more than one classification applies to a leaf."""
        return _WEIGHTS[self]


_WEIGHTS = {
    NodeKind.NAMESPACE: 0,
    NodeKind.INDIRECT: 10,
    NodeKind.DIRECT: 20,
    NodeKind.TOOL: 30,
    NodeKind.EXCLUDED: 40,
    NodeKind.REPLACED: 50,
}


@dataclass
class TreeNode:
    segment: str
    kind: NodeKind = NodeKind.NAMESPACE
    leaf_data: DependencyRef | None = None
    excluded_versions: tuple[str, ...] = ()
    children: dict[str, TreeNode] = field(default_factory=dict)

    @property
    def is_leaf(self) -> bool:
        return self.leaf_data is not None

    @property
    def effective(self) -> DependencyRef | None:
        """Where this dependency actually resolves (replacement target if any)."""
        return self.leaf_data.effective if self.leaf_data is not None else None

    def child(self, segment: str) -> TreeNode:
        """Return the child for *segment*, creating a namespace node if missing."""
        node = self.children.get(segment)
        if node is None:
            node = TreeNode(segment=segment)
            self.children[segment] = node
        return node

    def sorted_children(self) -> list[TreeNode]:
        return [self.children[key] for key in sorted(self.children)]

    def find(self, path: str) -> TreeNode | None:
        """Locate the node for a dependency *path* below this node."""
        node: TreeNode | None = self
        for segment in path.split(PATH_DELIMITER):
            node = node.children.get(segment) if node is not None else None
            if node is None:
                return None
        return node

    def walk(self, prefix: str = "") -> Iterator[tuple[str, TreeNode]]:
        """Yield ``(path, node)`` for every descendant, depth-first in sorted order."""
        for node in self.sorted_children():
            path = f"{prefix}{PATH_DELIMITER}{node.segment}" if prefix else node.segment
            yield path, node
            yield from node.walk(path)

    def iter_leaves(self) -> Iterator[tuple[str, TreeNode]]:
        return ((path, node) for path, node in self.walk() if node.is_leaf)

    def leaf_count(self) -> int:
        return sum(1 for _ in self.iter_leaves())

    def structurally_equal(self, other: TreeNode) -> bool:
        return (
            self.segment == other.segment
            and self.kind is other.kind
            and self.leaf_data == other.leaf_data
            and self.excluded_versions == other.excluded_versions
            and self.children.keys() == other.children.keys()
            and all(c.structurally_equal(other.children[k]) for k, c in self.children.items())
        )
