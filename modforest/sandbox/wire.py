"""JSON wire format exchanged with the parser sandbox.

Success is a manifest object; failure is ``{"error": "..."}``. The two are
told apart only by the presence of the ``error`` key.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, SerializerFunctionWrapHandler, ValidationError, model_serializer

from modforest.exceptions import (
    EmptyManifestError,
    ManifestError,
    MalformedManifestError,
    SandboxUnavailableError,
)
from modforest.parser.go_mod import EMPTY_MANIFEST_MESSAGE
from modforest.parser.models import DependencyRef, ManifestRecord


class _Sparse(BaseModel):
    """Omits unset optional fields (a local replacement has no version)."""

    @model_serializer(mode="wrap")
    def _drop_absent(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        return {key: value for key, value in handler(self).items() if value is not None}


class ReplacementTarget(_Sparse):
    path: str
    version: str | None = None


class DependencyPayload(_Sparse):
    path: str
    version: str | None = None
    indirect: bool = False
    replacement: ReplacementTarget | None = None

    @classmethod
    def from_ref(cls, ref: DependencyRef) -> DependencyPayload:
        target = None
        if ref.replacement is not None:
            target = ReplacementTarget(path=ref.replacement.path, version=ref.replacement.version)
        return cls(path=ref.path, version=ref.version, indirect=ref.indirect, replacement=target)

    def to_ref(self) -> DependencyRef:
        target = None
        if self.replacement is not None:
            target = DependencyRef(path=self.replacement.path, version=self.replacement.version)
        return DependencyRef(
            path=self.path, version=self.version, indirect=self.indirect, replacement=target
        )


class ManifestPayload(BaseModel):
    module: str = ""
    go: str | None = None
    toolchain: str | None = None
    require: list[DependencyPayload] = []
    replace: list[DependencyPayload] = []
    exclude: list[DependencyPayload] = []
    tool: list[DependencyPayload] = []

    @classmethod
    def from_record(cls, record: ManifestRecord) -> ManifestPayload:
        return cls(
            module=record.module_path,
            go=record.go_version,
            toolchain=record.toolchain,
            require=[DependencyPayload.from_ref(r) for r in record.requires],
            replace=[DependencyPayload.from_ref(r) for r in record.replacements],
            exclude=[DependencyPayload.from_ref(r) for r in record.exclusions],
            tool=[DependencyPayload.from_ref(r) for r in record.tools],
        )

    def to_record(self) -> ManifestRecord:
        return ManifestRecord(
            module_path=self.module,
            go_version=self.go,
            toolchain=self.toolchain,
            requires=tuple(p.to_ref() for p in self.require),
            replacements=tuple(p.to_ref() for p in self.replace),
            exclusions=tuple(p.to_ref() for p in self.exclude),
            tools=tuple(p.to_ref() for p in self.tool),
        )


def encode_record(record: ManifestRecord) -> str:
    return ManifestPayload.from_record(record).model_dump_json()


def encode_error(message: str) -> str:
    return json.dumps({"error": message})


def decode_response(payload: str) -> ManifestRecord:
    """Turn a sandbox response back into a record, or raise the matching error.

    A response that is not a JSON object of either shape means the channel
    itself is broken and maps to :class:`SandboxUnavailableError`.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise SandboxUnavailableError(f"undecodable sandbox response: {exc}") from exc
    if not isinstance(data, dict):
        raise SandboxUnavailableError("sandbox response is not a JSON object")

    if "error" in data:
        raise error_from_message(str(data["error"]))

    try:
        return ManifestPayload.model_validate(data).to_record()
    except ValidationError as exc:
        raise SandboxUnavailableError(f"invalid sandbox response: {exc}") from exc


def error_from_message(message: str) -> ManifestError:
    if message == EMPTY_MANIFEST_MESSAGE:
        return EmptyManifestError(message)
    return MalformedManifestError(message)
