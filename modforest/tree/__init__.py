"""Dependency namespace trees."""

from modforest.tree.builder import build_tree, find_orphans
from modforest.tree.models import NodeKind, TreeNode
from modforest.tree.render import render_tree

__all__ = ["NodeKind", "TreeNode", "build_tree", "find_orphans", "render_tree"]
