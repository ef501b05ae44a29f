"""Sandbox-side entry point. Runs inside the parser process pool.

Module-level so it pickles for ``ProcessPoolExecutor``.
"""

from __future__ import annotations

from modforest.exceptions import ManifestError
from modforest.parser.go_mod import parse_manifest
from modforest.sandbox.wire import encode_error, encode_record


def handle_request(text: str) -> str:
    """Parse one manifest and return the serialized result. Never raises."""
    try:
        return encode_record(parse_manifest(text))
    except ManifestError as exc:
        return encode_error(exc.message)
    except RecursionError:
        return encode_error("parser fault: recursion limit exceeded")
    except Exception as exc:
        return encode_error(f"parser fault: {type(exc).__name__}: {exc}")
