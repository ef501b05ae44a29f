"""go.mod parsing: text to ManifestRecord."""

from modforest.parser.go_mod import parse_manifest
from modforest.parser.models import DependencyRef, ManifestRecord
from modforest.parser.protocol import InProcessParser, ManifestParser

__all__ = ["DependencyRef", "InProcessParser", "ManifestParser", "ManifestRecord", "parse_manifest"]
