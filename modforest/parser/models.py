"""Data models for parsed go.mod manifests."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DependencyRef:
    """One dependency path as declared by a directive.

    ``replacement`` is only set on entries of ``ManifestRecord.replacements``
    and holds the ``=>`` target (path may be a local directory, version absent).
    """

    path: str
    version: str | None = None
    indirect: bool = False
    replacement: DependencyRef | None = None

    @property
    def effective(self) -> DependencyRef:
        """The path/version resolution actually points at."""
        return self.replacement if self.replacement is not None else self


@dataclass(frozen=True)
class ManifestRecord:
    """Parsed content of one go.mod file, directives in manifest order."""

    module_path: str = ""
    go_version: str | None = None
    toolchain: str | None = None
    requires: tuple[DependencyRef, ...] = field(default_factory=tuple)
    replacements: tuple[DependencyRef, ...] = field(default_factory=tuple)
    exclusions: tuple[DependencyRef, ...] = field(default_factory=tuple)
    tools: tuple[DependencyRef, ...] = field(default_factory=tuple)

    @property
    def is_unnamed(self) -> bool:
        return not self.module_path

    @property
    def direct_requires(self) -> list[DependencyRef]:
        return [r for r in self.requires if not r.indirect]

    @property
    def indirect_requires(self) -> list[DependencyRef]:
        return [r for r in self.requires if r.indirect]
