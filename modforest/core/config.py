"""Runtime settings read from ``MODFOREST_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

MANIFEST_FILENAME = "go.mod"

# Vendored dependency trees and Go's own ignored directories.
DEFAULT_EXCLUDE_DIRS: frozenset[str] = frozenset({"vendor", "node_modules", "testdata"})


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


def _env_list(key: str) -> list[str]:
    raw = os.environ.get(key, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    debounce_seconds: float = 0.3
    sandbox_workers: int = 1
    sandbox_retries: int = 3
    sandbox_retry_delay: float = 0.5
    sandbox_timeout: float = 10.0
    exclude_dirs: frozenset[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_DIRS)

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment.

        Reads:
            MODFOREST_DEBOUNCE_SECONDS    — change-event coalescing window (default: 0.3)
            MODFOREST_SANDBOX_WORKERS     — parser processes (default: 1)
            MODFOREST_SANDBOX_RETRIES     — attempts on sandbox failure (default: 3)
            MODFOREST_SANDBOX_RETRY_DELAY — base backoff delay in seconds (default: 0.5)
            MODFOREST_SANDBOX_TIMEOUT     — per-call timeout in seconds (default: 10)
            MODFOREST_EXCLUDE_DIRS        — extra directory names to skip, comma-separated
        """
        return cls(
            debounce_seconds=_env_float("MODFOREST_DEBOUNCE_SECONDS", 0.3),
            sandbox_workers=max(_env_int("MODFOREST_SANDBOX_WORKERS", 1), 1),
            sandbox_retries=max(_env_int("MODFOREST_SANDBOX_RETRIES", 3), 1),
            sandbox_retry_delay=_env_float("MODFOREST_SANDBOX_RETRY_DELAY", 0.5),
            sandbox_timeout=_env_float("MODFOREST_SANDBOX_TIMEOUT", 10.0),
            exclude_dirs=DEFAULT_EXCLUDE_DIRS | frozenset(_env_list("MODFOREST_EXCLUDE_DIRS")),
        )

    def is_excluded_dir(self, name: str) -> bool:
        return name.startswith(".") or name in self.exclude_dirs
