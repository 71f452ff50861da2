"""Storage for artifacts exposed by successful challenge submissions.

Available implementations:
- InMemoryArtifactStorage: default, nothing touches the disk
- FileArtifactStorage: writes artifacts into a configured directory
"""

from .storage import FileArtifactStorage, InMemoryArtifactStorage

__all__ = ["FileArtifactStorage", "InMemoryArtifactStorage"]
