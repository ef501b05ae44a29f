"""Turn a ManifestRecord's flat dependency lists into a namespace tree."""

from __future__ import annotations

from modforest.exceptions import OrphanDirective
from modforest.parser.models import DependencyRef, ManifestRecord
from modforest.tree.models import PATH_DELIMITER, NodeKind, TreeNode


def build_tree(record: ManifestRecord) -> TreeNode:
    """Build the tree for one manifest.

    The root's segment is the module path; its children are the first path
    segments of every declared dependency. Requires and tools are inserted
    first, then replacements and exclusions reclassify matching leaves. A
    replace/exclude with no matching leaf gets its own synthetic leaf.
    Every excluded version of a path is kept on its leaf, whatever kind wins.
    """
    root = TreeNode(segment=record.module_path)

    for ref in record.requires:
        _insert(root, ref, NodeKind.INDIRECT if ref.indirect else NodeKind.DIRECT)
    for ref in record.tools:
        _insert(root, ref, NodeKind.TOOL)

    for ref in record.replacements:
        _reclassify(root, ref, NodeKind.REPLACED)
    for ref in record.exclusions:
        _reclassify(root, ref, NodeKind.EXCLUDED)

    return root


def find_orphans(record: ManifestRecord) -> list[OrphanDirective]:
    """Report replace/exclude/tool entries that no require accounts for."""
    required = {ref.path for ref in record.requires}
    orphans: list[OrphanDirective] = []

    for directive, refs in (("replace", record.replacements), ("exclude", record.exclusions)):
        for ref in refs:
            if ref.path not in required:
                orphans.append(OrphanDirective(directive=directive, path=ref.path, version=ref.version))

    owners = required | ({record.module_path} if record.module_path else set())
    for ref in record.tools:
        if not any(_is_within(ref.path, owner) for owner in owners):
            orphans.append(OrphanDirective(directive="tool", path=ref.path))

    return orphans


def _insert(root: TreeNode, ref: DependencyRef, kind: NodeKind) -> TreeNode:
    node = root
    for segment in ref.path.split(PATH_DELIMITER):
        node = node.child(segment)
    # repeated paths keep the higher-precedence kind; ties go to the later one
    if node.is_leaf and node.kind.weight > kind.weight:
        return node
    node.leaf_data = ref
    node.kind = kind
    return node


def _reclassify(root: TreeNode, ref: DependencyRef, kind: NodeKind) -> None:
    node = root.find(ref.path)
    if node is None or not node.is_leaf:
        node = _insert(root, ref, kind)
    _note_exclusion(node, ref, kind)
    if node.kind.weight > kind.weight:
        return
    existing = node.leaf_data
    if kind is NodeKind.REPLACED and existing is not None:
        node.leaf_data = DependencyRef(
            path=existing.path,
            version=existing.version,
            indirect=existing.indirect,
            replacement=ref.replacement,
        )
    node.kind = kind


def _note_exclusion(node: TreeNode, ref: DependencyRef, kind: NodeKind) -> None:
    if kind is NodeKind.EXCLUDED and ref.version and ref.version not in node.excluded_versions:
        node.excluded_versions += (ref.version,)


def _is_within(path: str, owner: str) -> bool:
    return path == owner or path.startswith(owner + PATH_DELIMITER)
