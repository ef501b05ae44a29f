"""ForestCache, the single writer of the module forest.

Change notifications go through a queue drained by one consumer task.
Bursts for the same file inside the debounce window collapse to the latest
request. Reparses of one file are serialized and later requests win; reparses
of different files run concurrently. A full refresh bumps the generation so
results of anything started before it are dropped.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

import structlog

from modforest.cache.reveal import Reveal, locate
from modforest.core.config import Settings
from modforest.exceptions import FileSystemError
from modforest.parser.protocol import ManifestParser
from modforest.workspace.models import ForestEntry, ModuleForest, fingerprint_bytes
from modforest.workspace.scanner import parse_entry, scan_workspace

log = structlog.get_logger(__name__)

Listener = Callable[[str | None], None]


@dataclass(frozen=True)
class ChangeRequest:
    path: str
    generation: int
    seq: int
    refresh: bool = False


class ForestCache:
    """Owns the forest for one workspace root and keeps it current."""

    def __init__(
        self,
        root: str | Path,
        parser: ManifestParser,
        settings: Settings | None = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._parser = parser
        self._settings = settings or Settings.from_env()
        self._entries: ModuleForest = {}

        self._generation = 0
        self._seq = 0
        self._latest: dict[str, int] = {}
        self._queue: asyncio.Queue[ChangeRequest] = asyncio.Queue()
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._pending: dict[str, ChangeRequest] = {}
        self._refreshing = 0
        self._busy = False

        self._consumer: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.listeners: list[Listener] = []

    # ── read side ──────────────────────────────────────────────────────────

    @property
    def root(self) -> Path:
        return self._root

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> Mapping[str, ForestEntry]:
        """Read-only copy of the current forest."""
        return MappingProxyType(dict(self._entries))

    def get(self, manifest_path: str | Path) -> ForestEntry | None:
        return self._entries.get(_canonical(manifest_path))

    def reveal(self, file_path: str | Path) -> Reveal | None:
        return locate(self._entries, file_path)

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def start(self, *, initial_refresh: bool = True) -> None:
        """Optionally scan the workspace, then start the consumer task."""
        self._loop = asyncio.get_running_loop()
        if initial_refresh:
            await self.refresh()
        if self._consumer is None:
            self._consumer = asyncio.create_task(self.run(), name="forest-cache-consumer")
        log.info("cache.started", root=str(self._root), entries=len(self._entries))

    async def stop(self) -> None:
        self._pending.clear()
        tasks = [t for t in (self._consumer, *self._in_flight.values()) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumer = None
        self._in_flight.clear()
        log.info("cache.stopped", root=str(self._root))

    async def wait_idle(self, poll: float = 0.01) -> None:
        """Return once no event is queued, batched, or being reparsed."""
        while self._busy or not self._queue.empty() or self._in_flight or self._refreshing:
            await asyncio.sleep(poll)

    # ── full refresh ───────────────────────────────────────────────────────

    async def refresh(self) -> Mapping[str, ForestEntry]:
        """Discard the forest and rescan the workspace.

        The only operation that adds new manifests or drops deleted ones.
        """
        self._generation += 1
        generation = self._generation
        self._refreshing += 1
        log.info("cache.refresh_started", root=str(self._root), generation=generation)
        try:
            forest = await scan_workspace(self._root, self._parser, self._settings)
        finally:
            self._refreshing -= 1

        if generation == self._generation:
            self._entries = forest
            log.info("cache.refresh_completed", generation=generation, entries=len(forest))
            self._emit(None)
        else:
            log.info("cache.refresh_superseded", generation=generation, current=self._generation)

        if not self._refreshing:
            for path in list(self._pending):
                if path not in self._in_flight:
                    self._schedule(self._pending.pop(path))
        return self.snapshot()

    # ── notifications ──────────────────────────────────────────────────────

    def notify_changed(self, path: str | Path) -> None:
        """Queue a scoped reparse of one manifest."""
        key = _canonical(path)
        self._seq += 1
        self._latest[key] = self._seq
        self._queue.put_nowait(ChangeRequest(key, self._generation, self._seq))

    def notify_created(self, path: str | Path) -> None:
        log.debug("cache.manifest_created", path=str(path))
        self.request_refresh()

    def notify_deleted(self, path: str | Path) -> None:
        log.debug("cache.manifest_deleted", path=str(path))
        self.request_refresh()

    def request_refresh(self) -> None:
        self._seq += 1
        self._queue.put_nowait(ChangeRequest("", self._generation, self._seq, refresh=True))

    def notify_changed_threadsafe(self, path: str | Path) -> None:
        self._call_threadsafe(self.notify_changed, path)

    def notify_created_threadsafe(self, path: str | Path) -> None:
        self._call_threadsafe(self.notify_created, path)

    def notify_deleted_threadsafe(self, path: str | Path) -> None:
        self._call_threadsafe(self.notify_deleted, path)

    def _call_threadsafe(self, fn: Callable[[str | Path], None], path: str | Path) -> None:
        if self._loop is None:
            raise RuntimeError("ForestCache.start() must run before thread-safe notifications")
        self._loop.call_soon_threadsafe(fn, path)

    # ── consumer ───────────────────────────────────────────────────────────

    async def run(self) -> None:
        """Drain the request queue forever, one debounced batch at a time."""
        while True:
            first = await self._queue.get()
            self._busy = True
            try:
                if self._settings.debounce_seconds > 0:
                    await asyncio.sleep(self._settings.debounce_seconds)
                batch = [first]
                while not self._queue.empty():
                    batch.append(self._queue.get_nowait())
                await self._dispatch(batch)
            except Exception:
                log.exception("cache.dispatch_failed")
            finally:
                self._busy = False

    async def _dispatch(self, batch: list[ChangeRequest]) -> None:
        if any(req.refresh for req in batch):
            await self.refresh()

        latest: dict[str, ChangeRequest] = {}
        for req in batch:
            if not req.refresh:
                latest[req.path] = req
        if len(batch) > len(latest):
            log.debug("cache.coalesced", received=len(batch), scheduled=len(latest))
        for req in latest.values():
            self._schedule(req)

    def _schedule(self, req: ChangeRequest) -> None:
        if req.generation != self._generation:
            log.debug("cache.request_stale", path=req.path, generation=req.generation)
            return
        if req.path in self._in_flight or self._refreshing:
            self._pending[req.path] = req
            log.debug("cache.reparse_queued", path=req.path)
            return
        task = asyncio.create_task(self._reparse(req), name=f"reparse:{req.path}")
        self._in_flight[req.path] = task
        task.add_done_callback(lambda t, path=req.path: self._on_reparse_done(path, t))

    def _on_reparse_done(self, path: str, task: asyncio.Task[None]) -> None:
        self._in_flight.pop(path, None)
        if not task.cancelled() and task.exception() is not None:
            log.error("cache.reparse_crashed", path=path, exc_info=task.exception())
        follow_up = self._pending.pop(path, None)
        if follow_up is not None:
            self._schedule(follow_up)

    # ── scoped reparse ─────────────────────────────────────────────────────

    async def _reparse(self, req: ChangeRequest) -> None:
        path = req.path
        if path not in self._entries:
            log.debug("cache.untracked_manifest", path=path)
            return

        try:
            data = await asyncio.to_thread(Path(path).read_bytes)
        except OSError as exc:
            log.warning("cache.read_failed", path=path, error=str(exc))
            self._apply(
                req,
                ForestEntry.errored(path, "", FileSystemError(f"cannot read {path}: {exc.strerror or exc}")),
            )
            return

        fingerprint = fingerprint_bytes(data)
        current = self._entries.get(path)
        if current is not None and current.is_settled and current.fingerprint == fingerprint:
            log.debug("cache.unchanged", path=path)
            return

        if not self._apply(req, ForestEntry.unparsed(path, fingerprint)):
            return
        log.info("cache.reparse", path=path, seq=req.seq)
        self._apply(req, await parse_entry(path, data, self._parser))

    def _apply(self, req: ChangeRequest, entry: ForestEntry) -> bool:
        """Replace the entry if *req* is still the newest request for its file."""
        if req.generation != self._generation or self._latest.get(req.path) != req.seq:
            log.debug("cache.result_discarded", path=req.path, seq=req.seq)
            return False
        if req.path not in self._entries:
            return False
        self._entries[req.path] = entry
        self._emit(req.path)
        return True

    def _emit(self, path: str | None) -> None:
        for listener in self.listeners:
            try:
                listener(path)
            except Exception:
                log.warning("cache.listener_failed", path=path, exc_info=True)


def _canonical(path: str | Path) -> str:
    return os.path.realpath(path)
