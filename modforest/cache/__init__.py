"""Incremental forest maintenance: scoped reparse, refresh, file watching."""

from modforest.cache.invalidation import ChangeRequest, ForestCache
from modforest.cache.reveal import Reveal, locate, module_path_from_cache
from modforest.cache.watcher import ManifestEventHandler, ManifestWatcher

__all__ = [
    "ChangeRequest",
    "ForestCache",
    "ManifestEventHandler",
    "ManifestWatcher",
    "Reveal",
    "locate",
    "module_path_from_cache",
]
