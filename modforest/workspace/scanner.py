"""Workspace scanner: discover every go.mod under a root and parse each one."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import structlog

from modforest.core.config import MANIFEST_FILENAME, Settings
from modforest.exceptions import FileSystemError, ManifestError, WorkspaceError
from modforest.parser.protocol import ManifestParser
from modforest.workspace.models import ForestEntry, ModuleForest, fingerprint_bytes

log = structlog.get_logger(__name__)


def discover_manifests(root: Path, settings: Settings) -> tuple[list[Path], list[OSError]]:
    """Walk *root* and return ``(manifest paths, directory errors)``.

    Vendor/cache and hidden directories are pruned, so dependencies' own
    manifests are never reported as workspace modules.
    """
    found: list[Path] = []
    errors: list[OSError] = []

    for dirpath, dirnames, filenames in os.walk(root, onerror=errors.append):
        dirnames[:] = sorted(d for d in dirnames if not settings.is_excluded_dir(d))
        if MANIFEST_FILENAME in filenames:
            found.append(Path(dirpath) / MANIFEST_FILENAME)

    return found, errors


async def load_entry(manifest: Path, parser: ManifestParser) -> ForestEntry:
    """Read and parse one manifest into a forest entry. Never raises ``ManifestError``."""
    key = str(manifest)
    try:
        data = await asyncio.to_thread(manifest.read_bytes)
    except OSError as exc:
        log.warning("scanner.read_failed", path=key, error=str(exc))
        return ForestEntry.errored(key, "", FileSystemError(f"cannot read {key}: {exc.strerror or exc}"))
    return await parse_entry(key, data, parser)


async def parse_entry(key: str, data: bytes, parser: ManifestParser) -> ForestEntry:
    fingerprint = fingerprint_bytes(data)
    try:
        record = await parser.parse(data.decode("utf-8", errors="replace"))
    except ManifestError as exc:
        log.info("scanner.parse_failed", path=key, kind=exc.kind.value, error=exc.message)
        return ForestEntry.errored(key, fingerprint, exc)
    return ForestEntry.parsed(key, fingerprint, record)


async def scan_workspace(
    root: str | Path,
    parser: ManifestParser,
    settings: Settings | None = None,
) -> ModuleForest:
    """Build a fresh forest for every manifest under *root*.

    Per-file failures are recorded on their entry; only an inaccessible
    *root* raises :class:`WorkspaceError`.
    """
    settings = settings or Settings.from_env()
    root_path = Path(root).resolve()
    await asyncio.to_thread(_check_root, root_path)

    manifests, walk_errors = await asyncio.to_thread(discover_manifests, root_path, settings)
    entries = await asyncio.gather(*(load_entry(path, parser) for path in manifests))

    forest: ModuleForest = {entry.manifest_path: entry for entry in entries}
    for exc in walk_errors:
        key = str(exc.filename or root_path)
        log.warning("scanner.walk_failed", path=key, error=str(exc))
        forest[key] = ForestEntry.errored(
            key, "", FileSystemError(f"cannot list {key}: {exc.strerror or exc}")
        )

    log.info(
        "scanner.completed",
        root=str(root_path),
        manifests=len(manifests),
        errored=sum(1 for e in forest.values() if e.error is not None),
    )
    return forest


def _check_root(root: Path) -> None:
    if not root.is_dir():
        raise WorkspaceError(f"{root} is not a directory")
    try:
        with os.scandir(root):
            pass
    except OSError as exc:
        raise WorkspaceError(f"cannot read workspace root {root}: {exc.strerror or exc}") from exc
