"""Workspace scanning: the forest of per-module trees."""

from modforest.workspace.models import EntryStatus, ForestEntry, ModuleForest
from modforest.workspace.scanner import discover_manifests, scan_workspace
from modforest.workspace.summary import ForestSummary, summarize

__all__ = [
    "EntryStatus",
    "ForestEntry",
    "ForestSummary",
    "ModuleForest",
    "discover_manifests",
    "scan_workspace",
    "summarize",
]
