"""modforest: go.mod manifests as an incrementally maintained module forest."""

__version__ = "0.1.0"
