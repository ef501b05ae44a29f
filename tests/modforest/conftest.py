"""Shared fixtures for modforest tests. Everything runs against tmp_path, no network."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from modforest.core.config import Settings
from modforest.parser.go_mod import parse_manifest
from modforest.parser.models import ManifestRecord

APP_MANIFEST = """\
module example.com/app

go 1.22

require example.com/lib v1.0.0
require example.com/dep v2.0.0 // indirect
"""

SVC_MANIFEST = """\
module example.com/svc

go 1.22

require (
\texample.com/app v0.0.0-00010101000000-000000000000
\texample.com/lib v1.0.0
\tgolang.org/x/text v0.14.0 // indirect
)

replace example.com/app => ../
"""

BROKEN_MANIFEST = "not a valid manifest {{{"


class CountingParser:
    """In-process parser that records every text it was asked to parse."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def parse(self, text: str) -> ManifestRecord:
        self.calls.append(text)
        return parse_manifest(text)


@pytest.fixture
def counting_parser() -> CountingParser:
    return CountingParser()


@pytest.fixture
def settings() -> Settings:
    return Settings(debounce_seconds=0.0)


@pytest.fixture
def write_manifest(tmp_path: Path):
    """Factory: write a go.mod under tmp_path and return its canonical path."""

    def _write(content: str, subdir: str = "") -> str:
        directory = tmp_path / subdir if subdir else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "go.mod"
        path.write_text(content)
        return os.path.realpath(path)

    return _write


@pytest.fixture
def app_manifest() -> str:
    return APP_MANIFEST


@pytest.fixture
def svc_manifest() -> str:
    return SVC_MANIFEST


@pytest.fixture
def broken_manifest() -> str:
    return BROKEN_MANIFEST
