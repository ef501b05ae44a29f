"""Filesystem watching: forwards go.mod events from watchdog into a ForestCache."""

from __future__ import annotations

import os
from pathlib import Path

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from modforest.cache.invalidation import ForestCache
from modforest.core.config import MANIFEST_FILENAME, Settings

log = structlog.get_logger(__name__)


class ManifestEventHandler(FileSystemEventHandler):
    """Filters watchdog events down to workspace manifests.

    Runs on the observer thread; the cache is only touched through its
    ``*_threadsafe`` methods.
    """

    def __init__(self, cache: ForestCache, settings: Settings) -> None:
        super().__init__()
        self._cache = cache
        self._settings = settings

    def is_manifest(self, path: str | bytes) -> bool:
        path = os.fsdecode(path)
        if os.path.basename(path) != MANIFEST_FILENAME:
            return False
        try:
            relative = Path(path).resolve().relative_to(self._cache.root)
        except ValueError:
            return False
        return not any(self._settings.is_excluded_dir(part) for part in relative.parts[:-1])

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self.is_manifest(event.src_path):
            self._cache.notify_changed_threadsafe(os.fsdecode(event.src_path))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self.is_manifest(event.src_path):
            self._cache.notify_created_threadsafe(os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self.is_manifest(event.src_path):
            self._cache.notify_deleted_threadsafe(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # editors that save via rename-over show up as a move onto go.mod
        if self.is_manifest(event.src_path) or self.is_manifest(event.dest_path):
            self._cache.notify_created_threadsafe(os.fsdecode(event.dest_path))


class ManifestWatcher:
    """Recursive watchdog observer over the cache's workspace root."""

    def __init__(self, cache: ForestCache, settings: Settings | None = None) -> None:
        self._settings = settings or Settings.from_env()
        self.handler = ManifestEventHandler(cache, self._settings)
        self._root = cache.root
        self._observer: Observer | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self.handler, str(self._root), recursive=True)
        observer.start()
        self._observer = observer
        log.info("watcher.started", root=str(self._root))

    def stop(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5)
        log.info("watcher.stopped", root=str(self._root))
