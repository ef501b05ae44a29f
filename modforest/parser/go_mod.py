"""Parser for Go go.mod files.

``parse_manifest`` is pure: text in, :class:`ManifestRecord` out, or an
:class:`EmptyManifestError` / :class:`MalformedManifestError`.
"""

from __future__ import annotations

import re

from modforest.exceptions import EmptyManifestError, MalformedManifestError
from modforest.parser.lexer import Line, Token, tokenize
from modforest.parser.models import DependencyRef, ManifestRecord

EMPTY_MANIFEST_MESSAGE = "go.mod file is empty"

# Regexes below only ever see a single whitespace-free token.
_SEMVER_RE = re.compile(
    r"^v(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)"
    r"(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?$"
)
_GO_VERSION_RE = re.compile(r"^[1-9][0-9]*(\.(0|[1-9][0-9]*)){0,2}((rc|beta)[1-9][0-9]*)?$")
_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")

_VERBS = frozenset(
    {"module", "go", "toolchain", "require", "replace", "exclude", "tool", "retract", "godebug", "ignore"}
)
_BLOCK_VERBS = frozenset({"require", "replace", "exclude", "tool", "retract", "godebug", "ignore"})


def parse_manifest(text: str) -> ManifestRecord:
    """Parse go.mod *text* into a :class:`ManifestRecord`.

    A manifest without a ``module`` directive is valid and yields an empty
    ``module_path``.
    """
    if not text:
        raise EmptyManifestError(EMPTY_MANIFEST_MESSAGE)

    builder = _RecordBuilder()
    block_verb: str | None = None
    block_start = 0

    for line in tokenize(text):
        tokens = line.tokens
        if not tokens:
            continue

        if block_verb is not None:
            if tokens[0].is_punct(")"):
                if len(tokens) > 1:
                    _fail(line, "unexpected token after ')'")
                block_verb = None
                continue
            if any(t.is_punct("(") for t in tokens):
                _fail(line, f"nested block inside {block_verb} block")
            if any(t.is_punct(")") for t in tokens):
                _fail(line, "unexpected ')'")
            builder.apply(block_verb, tokens, line)
            continue

        head = tokens[0]
        if head.quoted or head.text not in _VERBS:
            _fail(line, f"unknown directive: {head.text}")
        verb = head.text
        args = tokens[1:]

        if args and args[0].is_punct("("):
            if verb not in _BLOCK_VERBS:
                _fail(line, f"{verb} directive does not accept a block")
            if len(args) == 1:
                block_verb = verb
                block_start = line.number
                continue
            if len(args) == 2 and args[1].is_punct(")"):
                continue
            _fail(line, "unexpected token after '('")

        if any(t.is_punct("(") or t.is_punct(")") for t in args):
            _fail(line, "unexpected parenthesis")
        builder.apply(verb, args, line)

    if block_verb is not None:
        raise MalformedManifestError(f"line {block_start}: unterminated {block_verb} block")

    return builder.build()


class _RecordBuilder:
    def __init__(self) -> None:
        self.module_path = ""
        self.go_version: str | None = None
        self.toolchain: str | None = None
        self.requires: list[DependencyRef] = []
        self.replacements: list[DependencyRef] = []
        self.exclusions: list[DependencyRef] = []
        self.tools: list[DependencyRef] = []

    def apply(self, verb: str, tokens: tuple[Token, ...], line: Line) -> None:
        args = [t.text for t in tokens]
        handler = getattr(self, f"_{verb}")
        handler(args, tokens, line)

    def build(self) -> ManifestRecord:
        return ManifestRecord(
            module_path=self.module_path,
            go_version=self.go_version,
            toolchain=self.toolchain,
            requires=tuple(self.requires),
            replacements=tuple(self.replacements),
            exclusions=tuple(self.exclusions),
            tools=tuple(self.tools),
        )

    # ── directives ───────────────────────────────────────────────────────

    def _module(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) > 1:
            _fail(line, "usage: module module/path")
        path = args[0] if args else ""
        if path:
            _check_path(path, line)
        self.module_path = path

    def _go(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) != 1:
            _fail(line, "usage: go 1.23")
        if not _GO_VERSION_RE.match(args[0]):
            _fail(line, f"invalid go version '{args[0]}': must match format 1.23.0")
        self.go_version = args[0]

    def _toolchain(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) != 1 or not args[0]:
            _fail(line, "usage: toolchain go1.23.0")
        self.toolchain = args[0]

    def _require(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) != 2:
            _fail(line, "usage: require module/path v1.2.3")
        path, version = args
        _check_path(path, line)
        _check_version(version, line)
        self.requires.append(
            DependencyRef(path=path, version=version, indirect=_is_indirect(line.comment))
        )

    def _exclude(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) != 2:
            _fail(line, "usage: exclude module/path v1.2.3")
        path, version = args
        _check_path(path, line)
        _check_version(version, line)
        self.exclusions.append(DependencyRef(path=path, version=version))

    def _replace(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        arrows = [i for i, t in enumerate(tokens) if not t.quoted and t.text == "=>"]
        if len(arrows) != 1:
            _fail(line, "usage: replace module/path [v1.2.3] => other/module v1.4 | dir")
        split = arrows[0]
        old, new = args[:split], args[split + 1 :]
        if len(old) not in (1, 2) or len(new) not in (1, 2):
            _fail(line, "usage: replace module/path [v1.2.3] => other/module v1.4 | dir")

        _check_path(old[0], line)
        old_version = old[1] if len(old) == 2 else None
        if old_version is not None:
            _check_version(old_version, line)

        new_path = new[0]
        new_version = new[1] if len(new) == 2 else None
        if _is_local_path(new_path):
            if new_version is not None:
                _fail(line, f"replacement directory '{new_path}' cannot have version")
        else:
            if new_version is None:
                _fail(
                    line,
                    "replacement module without version must be directory path "
                    "(rooted or starting with ./ or ../)",
                )
            _check_path(new_path, line)
            _check_version(new_version, line)

        self.replacements.append(
            DependencyRef(
                path=old[0],
                version=old_version,
                replacement=DependencyRef(path=new_path, version=new_version),
            )
        )

    def _tool(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) != 1:
            _fail(line, "usage: tool module/path/cmd")
        _check_path(args[0], line)
        self.tools.append(DependencyRef(path=args[0]))

    # retract / godebug / ignore are accepted but carry nothing we present.

    def _retract(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if not args:
            _fail(line, "usage: retract v1.2.3 | [v1.0.0, v1.1.0]")

    def _godebug(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) != 1 or "=" not in args[0]:
            _fail(line, "usage: godebug key=value")

    def _ignore(self, args: list[str], tokens: tuple[Token, ...], line: Line) -> None:
        if len(args) != 1:
            _fail(line, "usage: ignore ./dir")


def _fail(line: Line, message: str) -> None:
    raise MalformedManifestError(f"line {line.number}: {message}")


def _check_path(path: str, line: Line) -> None:
    if not path:
        _fail(line, "empty module path")
    if any(ch.isspace() for ch in path):
        _fail(line, f"invalid module path '{path}': contains whitespace")
    if path.startswith("/") or path.endswith("/") or "//" in path:
        _fail(line, f"invalid module path '{path}': empty path element")


def _check_version(version: str, line: Line) -> None:
    if not _SEMVER_RE.match(version):
        _fail(line, f"invalid version '{version}': must be of the form v1.2.3")


def _is_local_path(path: str) -> bool:
    return (
        path in (".", "..")
        or path.startswith(("./", "../", "/", ".\\", "..\\"))
        or bool(_DRIVE_RE.match(path))
    )


def _is_indirect(comment: str | None) -> bool:
    if not comment:
        return False
    first = comment.split()[0]
    return first == "indirect" or first.startswith("indirect;")
