"""Plain-text rendering of a module tree."""

from __future__ import annotations

from typing import Any

from modforest.tree.models import NodeKind, TreeNode

UNNAMED_MODULE_LABEL = "(unnamed module)"


def describe(node: TreeNode) -> str:
    """One-line label: segment, version, replacement target, kind marker and excluded versions."""
    parts = [node.segment]
    ref = node.leaf_data
    if ref is not None:
        if ref.version:
            parts.append(ref.version)
        if ref.replacement is not None:
            target = ref.replacement
            parts.append(f"=> {target.path}" + (f" {target.version}" if target.version else ""))
    if node.kind is not NodeKind.NAMESPACE:
        parts.append(f"[{node.kind.value}]")
    if node.excluded_versions:
        parts.append(f"(excludes {', '.join(node.excluded_versions)})")
    return " ".join(parts)


def render_tree(root: TreeNode) -> str:
    lines = [root.segment or UNNAMED_MODULE_LABEL]
    _render_children(root, "", lines)
    return "\n".join(lines)


def _render_children(node: TreeNode, indent: str, lines: list[str]) -> None:
    children = node.sorted_children()
    for i, child in enumerate(children):
        last = i == len(children) - 1
        lines.append(f"{indent}{'└── ' if last else '├── '}{describe(child)}")
        _render_children(child, indent + ("    " if last else "│   "), lines)


def tree_to_dict(node: TreeNode) -> dict[str, Any]:
    """JSON-friendly nested form, children in presentation order."""
    data: dict[str, Any] = {"segment": node.segment, "kind": node.kind.value}
    ref = node.leaf_data
    if ref is not None:
        data["path"] = ref.path
        data["version"] = ref.version
        data["indirect"] = ref.indirect
        if ref.replacement is not None:
            data["replacement"] = {"path": ref.replacement.path, "version": ref.replacement.version}
    if node.excluded_versions:
        data["excluded_versions"] = list(node.excluded_versions)
    if node.children:
        data["children"] = [tree_to_dict(child) for child in node.sorted_children()]
    return data
