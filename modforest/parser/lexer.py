"""Line tokenizer for the go.mod directive grammar.

Every character is inspected once; there is no regex matching over whole
lines, so adversarial input cannot trigger backtracking.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from modforest.exceptions import MalformedManifestError

_PUNCT = frozenset("()")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}


@dataclass(frozen=True)
class Token:
    text: str
    quoted: bool = False

    def is_punct(self, char: str) -> bool:
        return not self.quoted and self.text == char


@dataclass(frozen=True)
class Line:
    number: int
    tokens: tuple[Token, ...]
    comment: str | None = None  # text after "//", stripped


def tokenize(text: str) -> Iterator[Line]:
    """Yield non-blank lines of *text* as tokens plus trailing comment."""
    for number, raw in enumerate(text.splitlines(), start=1):
        tokens, comment = _split_line(raw, number)
        if tokens or comment is not None:
            yield Line(number=number, tokens=tuple(tokens), comment=comment)


def _split_line(raw: str, number: int) -> tuple[list[Token], str | None]:
    tokens: list[Token] = []
    i = 0
    n = len(raw)
    while i < n:
        ch = raw[i]
        if ch.isspace():
            i += 1
        elif raw.startswith("//", i):
            return tokens, raw[i + 2 :].strip()
        elif ch in _PUNCT:
            tokens.append(Token(ch))
            i += 1
        elif ch == '"':
            value, i = _read_interpreted(raw, i + 1, number)
            tokens.append(Token(value, quoted=True))
        elif ch == "`":
            end = raw.find("`", i + 1)
            if end < 0:
                raise MalformedManifestError(f"line {number}: unterminated raw string")
            tokens.append(Token(raw[i + 1 : end], quoted=True))
            i = end + 1
        else:
            start = i
            while i < n and not _ends_ident(raw, i):
                i += 1
            tokens.append(Token(raw[start:i]))
    return tokens, None


def _ends_ident(raw: str, i: int) -> bool:
    ch = raw[i]
    return ch.isspace() or ch in _PUNCT or ch in '"`' or raw.startswith("//", i)


def _read_interpreted(raw: str, i: int, number: int) -> tuple[str, int]:
    out: list[str] = []
    n = len(raw)
    while i < n:
        ch = raw[i]
        if ch == '"':
            return "".join(out), i + 1
        if ch == "\\":
            if i + 1 >= n:
                break
            esc = raw[i + 1]
            if esc not in _ESCAPES:
                raise MalformedManifestError(
                    f"line {number}: invalid escape sequence '\\{esc}' in quoted string"
                )
            out.append(_ESCAPES[esc])
            i += 2
            continue
        out.append(ch)
        i += 1
    raise MalformedManifestError(f"line {number}: unterminated quoted string")
