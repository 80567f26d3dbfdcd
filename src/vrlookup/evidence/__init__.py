"""Lookup evidence (screenshot artifacts with scheduled deletion)."""

from vrlookup.evidence.artifacts import ArtifactRegistry, ScreenshotArtifact

__all__ = ["ArtifactRegistry", "ScreenshotArtifact"]
