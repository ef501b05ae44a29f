"""Tests for dependency tree construction and rendering."""

from __future__ import annotations

import pytest

from modforest.exceptions import ErrorKind, OrphanDirective
from modforest.parser.go_mod import parse_manifest
from modforest.parser.models import DependencyRef, ManifestRecord
from modforest.tree.builder import build_tree, find_orphans
from modforest.tree.models import NodeKind, TreeNode
from modforest.tree.render import UNNAMED_MODULE_LABEL, describe, render_tree, tree_to_dict

FORK_MANIFEST = """\
module example.com/app

require example.com/lib v1.0.0
require example.com/dep v2.0.0 // indirect

replace example.com/lib => example.com/fork v1.2.0
"""

WIDE_MANIFEST = """\
module example.com/wide

require (
	github.com/stretchr/testify v1.8.4
	github.com/davecgh/go-spew v1.1.1 // indirect
	github.com/pmezard/go-difflib v1.0.0 // indirect
	golang.org/x/text v0.14.0
	golang.org/x/tools v0.20.0
	gopkg.in/yaml.v3 v3.0.1 // indirect
)

exclude golang.org/x/text v0.13.0

tool golang.org/x/tools/cmd/stringer
tool example.com/wide/cmd/gen
"""


def _assert_invariants(root: TreeNode) -> None:
    """Leaf paths rebuild from segments; namespace nodes always have children."""
    for path, node in root.walk():
        if node.is_leaf:
            assert node.leaf_data.path == path
        else:
            assert node.kind is NodeKind.NAMESPACE
            assert node.children


# ── build_tree ───────────────────────────────────────────────────────────


class TestBuildTree:
    def test_basic_scenario(self, app_manifest):
        root = build_tree(parse_manifest(app_manifest))
        assert root.segment == "example.com/app"
        assert list(root.children) == ["example.com"]

        namespace = root.children["example.com"]
        assert namespace.kind is NodeKind.NAMESPACE
        assert not namespace.is_leaf
        assert set(namespace.children) == {"lib", "dep"}

        lib, dep = namespace.children["lib"], namespace.children["dep"]
        assert lib.kind is NodeKind.DIRECT
        assert lib.leaf_data.version == "v1.0.0"
        assert dep.kind is NodeKind.INDIRECT
        assert dep.leaf_data.version == "v2.0.0"

    def test_replace_reclassifies_existing_leaf(self):
        root = build_tree(parse_manifest(FORK_MANIFEST))
        lib = root.find("example.com/lib")
        assert lib.kind is NodeKind.REPLACED
        assert lib.leaf_data.version == "v1.0.0"
        assert lib.effective == DependencyRef(path="example.com/fork", version="v1.2.0")
        assert root.find("example.com/fork") is None
        assert root.leaf_count() == 2

    def test_leaf_count_matches_distinct_paths(self):
        record = parse_manifest(WIDE_MANIFEST)
        root = build_tree(record)
        paths = {r.path for r in (*record.requires, *record.tools, *record.exclusions)}
        assert root.leaf_count() == len(paths)
        _assert_invariants(root)

    def test_sibling_segments_are_unique(self):
        root = build_tree(parse_manifest(WIDE_MANIFEST))
        github = root.find("github.com")
        assert sorted(github.children) == ["davecgh", "pmezard", "stretchr"]
        assert [c.segment for c in github.sorted_children()] == ["davecgh", "pmezard", "stretchr"]

    def test_leaf_may_also_be_namespace_for_tools(self):
        root = build_tree(parse_manifest(WIDE_MANIFEST))
        tools = root.find("golang.org/x/tools")
        assert tools.kind is NodeKind.DIRECT
        assert tools.find("cmd/stringer").kind is NodeKind.TOOL

    def test_exclude_reclassifies(self):
        root = build_tree(parse_manifest(WIDE_MANIFEST))
        text = root.find("golang.org/x/text")
        assert text.kind is NodeKind.EXCLUDED
        assert text.leaf_data.version == "v0.14.0"
        assert text.excluded_versions == ("v0.13.0",)

    def test_every_excluded_version_is_kept(self):
        record = parse_manifest(
            "module a.com/x\n"
            "require b.com/y v1.0.0\n"
            "exclude (\n\tb.com/y v0.9.0\n\tb.com/y v0.9.1\n\tb.com/y v0.9.0\n)\n"
        )
        leaf = build_tree(record).find("b.com/y")
        assert leaf.kind is NodeKind.EXCLUDED
        assert leaf.leaf_data.version == "v1.0.0"
        assert leaf.excluded_versions == ("v0.9.0", "v0.9.1")

    def test_orphan_excludes_share_one_leaf(self):
        record = parse_manifest("module a.com/x\nexclude b.com/y v0.9.0\nexclude b.com/y v0.9.1\n")
        root = build_tree(record)
        assert root.leaf_count() == 1
        assert root.find("b.com/y").excluded_versions == ("v0.9.0", "v0.9.1")

    def test_replaced_beats_excluded(self):
        record = parse_manifest(
            "module a.com/x\n"
            "require b.com/y v1.0.0\n"
            "replace b.com/y => ../y\n"
            "exclude b.com/y v0.9.0\n"
        )
        leaf = build_tree(record).find("b.com/y")
        assert leaf.kind is NodeKind.REPLACED
        assert leaf.excluded_versions == ("v0.9.0",)

    def test_duplicate_require_keeps_higher_precedence(self):
        record = parse_manifest(
            "module a.com/x\nrequire b.com/y v1.0.0 // indirect\nrequire b.com/y v1.1.0\n"
        )
        leaf = build_tree(record).find("b.com/y")
        assert leaf.kind is NodeKind.DIRECT
        assert leaf.leaf_data.version == "v1.1.0"

    def test_orphan_replace_gets_synthetic_leaf(self):
        record = parse_manifest("module a.com/x\nreplace b.com/ghost => ../ghost\n")
        leaf = build_tree(record).find("b.com/ghost")
        assert leaf.kind is NodeKind.REPLACED
        assert leaf.effective == DependencyRef(path="../ghost")

    def test_unnamed_module_root(self):
        root = build_tree(ManifestRecord(requires=(DependencyRef(path="a.com/b", version="v1.0.0"),)))
        assert root.segment == ""
        assert root.find("a.com/b").kind is NodeKind.DIRECT

    def test_empty_record(self):
        root = build_tree(ManifestRecord(module_path="a.com/x"))
        assert root.children == {}
        assert root.leaf_count() == 0

    @pytest.mark.parametrize("text", [FORK_MANIFEST, WIDE_MANIFEST])
    def test_idempotent(self, text):
        record = parse_manifest(text)
        assert build_tree(record).structurally_equal(build_tree(record))

    def test_structural_difference_detected(self, app_manifest):
        a = build_tree(parse_manifest(app_manifest))
        b = build_tree(parse_manifest(FORK_MANIFEST))
        assert not a.structurally_equal(b)


# ── find_orphans ─────────────────────────────────────────────────────────


class TestFindOrphans:
    def test_no_orphans(self):
        assert find_orphans(parse_manifest(WIDE_MANIFEST)) == []

    def test_replace_and_exclude_without_require(self):
        record = parse_manifest(
            "module a.com/x\n"
            "require b.com/y v1.0.0\n"
            "replace c.com/z v1.0.0 => ../z\n"
            "exclude d.com/w v0.1.0\n"
        )
        assert find_orphans(record) == [
            OrphanDirective(directive="replace", path="c.com/z", version="v1.0.0"),
            OrphanDirective(directive="exclude", path="d.com/w", version="v0.1.0"),
        ]
        assert all(o.kind is ErrorKind.ORPHAN_DIRECTIVE for o in find_orphans(record))

    def test_tool_outside_every_module(self):
        record = parse_manifest("module a.com/x\ntool other.org/cmd/thing\ntool a.com/x/cmd/gen\n")
        assert find_orphans(record) == [OrphanDirective(directive="tool", path="other.org/cmd/thing")]

    def test_tool_prefix_must_match_whole_segment(self):
        record = parse_manifest("module a.com/x\nrequire b.com/y v1.0.0\ntool b.com/yy/cmd\n")
        assert [o.path for o in find_orphans(record)] == ["b.com/yy/cmd"]


# ── rendering ────────────────────────────────────────────────────────────


class TestRender:
    def test_render_tree(self, app_manifest):
        assert render_tree(build_tree(parse_manifest(app_manifest))) == (
            "example.com/app\n"
            "└── example.com\n"
            "    ├── dep v2.0.0 [indirect]\n"
            "    └── lib v1.0.0 [direct]"
        )

    def test_render_nested_indent(self):
        text = render_tree(build_tree(parse_manifest(WIDE_MANIFEST)))
        assert "│   ├── davecgh" in text
        assert "stringer [tool]" in text

    def test_unnamed_label(self):
        assert render_tree(build_tree(ManifestRecord())) == UNNAMED_MODULE_LABEL

    def test_describe_replaced(self):
        root = build_tree(parse_manifest(FORK_MANIFEST))
        assert describe(root.find("example.com/lib")) == (
            "lib v1.0.0 => example.com/fork v1.2.0 [replaced]"
        )

    def test_describe_lists_excluded_versions(self):
        record = parse_manifest(
            "module a.com/x\nrequire b.com/y v1.0.0\nexclude b.com/y v0.9.0\nexclude b.com/y v0.9.1\n"
        )
        leaf = build_tree(record).find("b.com/y")
        assert describe(leaf) == "y v1.0.0 [excluded] (excludes v0.9.0, v0.9.1)"
        assert tree_to_dict(leaf)["excluded_versions"] == ["v0.9.0", "v0.9.1"]

    def test_describe_namespace(self):
        assert describe(TreeNode(segment="golang.org")) == "golang.org"

    def test_tree_to_dict(self):
        data = tree_to_dict(build_tree(parse_manifest(FORK_MANIFEST)))
        assert data["segment"] == "example.com/app"
        (namespace,) = data["children"]
        assert [c["segment"] for c in namespace["children"]] == ["dep", "lib"]
        lib = namespace["children"][1]
        assert lib["kind"] == "replaced"
        assert lib["replacement"] == {"path": "example.com/fork", "version": "v1.2.0"}
        assert "children" not in lib
