"""CLI entry point: modforest.

Subcommands:
    modforest parse path/to/go.mod          # Print the parser's wire JSON
    modforest scan /path/to/workspace       # Print every module tree + summary
    modforest scan . --json                 # Same, as JSON
    modforest reveal . path/to/file.go      # Locate a file's module / dependency node
    modforest watch /path/to/workspace      # Keep the forest live until Ctrl-C
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click

from modforest.cache.invalidation import ForestCache
from modforest.cache.watcher import ManifestWatcher
from modforest.core.config import Settings
from modforest.core.logging import setup_logging
from modforest.exceptions import ManifestError, WorkspaceError
from modforest.parser.protocol import InProcessParser, ManifestParser
from modforest.sandbox.bridge import SandboxBridge, SandboxedParser
from modforest.sandbox.wire import decode_response
from modforest.sandbox.worker import handle_request
from modforest.tree.render import describe, render_tree, tree_to_dict
from modforest.workspace.models import ForestEntry
from modforest.workspace.scanner import scan_workspace
from modforest.workspace.summary import summarize

_sandbox_option = click.option(
    "--sandbox/--in-process",
    default=False,
    help="Parse in an isolated worker process (default: in-process)",
)


@contextmanager
def _parser_session(sandbox: bool, settings: Settings) -> Iterator[ManifestParser]:
    if not sandbox:
        yield InProcessParser()
        return
    parser = SandboxedParser.from_settings(settings)
    parser.bridge.start()
    try:
        yield parser
    finally:
        parser.bridge.close()


def _entry_to_dict(entry: ForestEntry) -> dict[str, Any]:
    data: dict[str, Any] = {
        "manifest": entry.manifest_path,
        "status": entry.status.value,
        "fingerprint": entry.fingerprint,
        "module": entry.module_path,
    }
    if entry.record is not None:
        data["go"] = entry.record.go_version
        data["toolchain"] = entry.record.toolchain
    if entry.error is not None:
        data["error"] = {"kind": entry.error.kind.value, "message": entry.error.message}
    if entry.tree is not None:
        data["tree"] = tree_to_dict(entry.tree)
    data["orphans"] = [
        {"directive": o.directive, "path": o.path, "version": o.version} for o in entry.orphans
    ]
    return data


def _echo_forest(forest: Mapping[str, ForestEntry]) -> None:
    for key in sorted(forest):
        entry = forest[key]
        click.echo(f"{key}")
        if entry.error is not None:
            click.echo(f"  ! {entry.error.kind.value}: {entry.error.message}\n")
            continue
        record = entry.record
        if record is not None:
            direct = len(record.direct_requires)
            go = f"  go {record.go_version}" if record.go_version else ""
            click.echo(f"  {direct} direct, {len(record.indirect_requires)} indirect{go}")
        if entry.tree is not None:
            for line in render_tree(entry.tree).splitlines():
                click.echo(f"  {line}")
        for orphan in entry.orphans:
            version = f" {orphan.version}" if orphan.version else ""
            click.echo(f"  ? orphan {orphan.directive}: {orphan.path}{version}")
        click.echo()

    summary = summarize(forest)
    click.echo(
        f"{summary.modules} module(s), {summary.errored} errored: "
        f"{summary.direct} direct, {summary.indirect} indirect, {summary.tools} tools, "
        f"{summary.replaces} replaces, {summary.excludes} excludes, {summary.orphans} orphans"
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """modforest: go.mod manifests as a live module/dependency forest."""
    setup_logging("DEBUG" if verbose else None)


@main.command("parse")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False))
@_sandbox_option
def parse_cmd(manifest: str, sandbox: bool) -> None:
    """Parse one go.mod and print the wire JSON."""
    text = Path(manifest).read_text(encoding="utf-8", errors="replace")
    settings = Settings.from_env()

    if sandbox:

        async def _invoke() -> str:
            async with SandboxBridge(
                workers=settings.sandbox_workers, timeout=settings.sandbox_timeout
            ) as bridge:
                return await bridge.invoke(text)

        try:
            payload = asyncio.run(_invoke())
        except ManifestError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(2)
    else:
        payload = handle_request(text)

    click.echo(payload)
    try:
        decode_response(payload)
    except ManifestError:
        sys.exit(1)


@main.command("scan")
@click.argument("root", type=click.Path(exists=True, file_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@_sandbox_option
def scan_cmd(root: str, as_json: bool, sandbox: bool) -> None:
    """Scan a workspace for go.mod files and print their dependency trees."""
    settings = Settings.from_env()

    async def _scan() -> dict[str, ForestEntry]:
        with _parser_session(sandbox, settings) as parser:
            return await scan_workspace(root, parser, settings)

    try:
        forest = asyncio.run(_scan())
    except WorkspaceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if not forest:
        click.echo("No go.mod files found.", err=True)

    if as_json:
        rows = [_entry_to_dict(forest[key]) for key in sorted(forest)]
        click.echo(
            json.dumps(
                {"root": str(Path(root).resolve()), "summary": summarize(forest).to_dict(), "modules": rows},
                indent=2,
            )
        )
        return
    _echo_forest(forest)


@main.command("reveal")
@click.argument("root", type=click.Path(exists=True, file_okay=False))
@click.argument("file_path")
def reveal_cmd(root: str, file_path: str) -> None:
    """Show which module or dependency node a file belongs to."""
    settings = Settings.from_env()

    async def _reveal():
        cache = ForestCache(root, InProcessParser(), settings)
        await cache.refresh()
        return cache.reveal(file_path)

    try:
        found = asyncio.run(_reveal())
    except WorkspaceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if found is None:
        click.echo(f"{file_path} is not part of any module in {root}", err=True)
        sys.exit(1)
    click.echo(found.manifest_path)
    if found.node is not None:
        label = found.node_path or found.node.segment
        click.echo(f"  {label}: {describe(found.node)}")


@main.command("watch")
@click.argument("root", type=click.Path(exists=True, file_okay=False))
@_sandbox_option
def watch_cmd(root: str, sandbox: bool) -> None:
    """Keep the forest up to date as go.mod files change (Ctrl-C to stop)."""
    settings = Settings.from_env()

    async def _watch() -> None:
        with _parser_session(sandbox, settings) as parser:
            cache = ForestCache(root, parser, settings)

            def _on_update(path: str | None) -> None:
                if path is None:
                    click.echo(f"[refresh] {len(cache.snapshot())} module(s)")
                    return
                entry = cache.get(path)
                if entry is not None and entry.is_settled:
                    state = entry.error.message if entry.error is not None else entry.module_path
                    click.echo(f"[{entry.status.value}] {path}: {state}")

            cache.listeners.append(_on_update)
            await cache.start()
            watcher = ManifestWatcher(cache, settings)
            watcher.start()
            try:
                await asyncio.Event().wait()
            finally:
                watcher.stop()
                await cache.stop()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        click.echo("Stopped.")
    except WorkspaceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


if __name__ == "__main__":
    main()
