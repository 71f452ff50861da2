"""Artifact storage implementations for the gateway connector.

A successful challenge submission exposes a downloadable artifact. This
module provides two places to keep it:
- InMemoryArtifactStorage: artifacts live for the life of the process
- FileArtifactStorage: artifacts are written to a directory on disk
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import structlog

from ..interfaces import Artifact, IArtifactStorage

logger = structlog.get_logger()


def _safe_name(name: str) -> str:
    """Strip directory components so a name cannot escape the storage root."""
    safe = Path(name).name
    if not safe or safe in (".", ".."):
        raise ValueError(f"Invalid artifact name: {name!r}")
    return safe


class InMemoryArtifactStorage(IArtifactStorage):
    """Keeps artifacts in a dictionary keyed by name."""

    def __init__(self):
        self._artifacts: Dict[str, Artifact] = {}
        self.logger = logger.bind(storage="memory")

    async def save(self, artifact: Artifact) -> str:
        self._artifacts[artifact.name] = artifact
        self.logger.info("artifact_saved", name=artifact.name, size=len(artifact.content))
        return artifact.name

    async def load(self, name: str) -> Optional[Artifact]:
        artifact = self._artifacts.get(name)
        if artifact is None:
            self.logger.debug("artifact_not_found", name=name)
        return artifact


class FileArtifactStorage(IArtifactStorage):
    """Writes artifacts to a directory.

    Each artifact is stored as its content file plus a ``.meta.json``
    sidecar holding the content type and creation time. Files are created
    owner-readable only, since artifacts come from an authenticated area.
    """

    def __init__(self, storage_path: str):
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.logger = logger.bind(storage="file", path=str(self.storage_path))

    def _content_path(self, name: str) -> Path:
        return self.storage_path / _safe_name(name)

    def _meta_path(self, name: str) -> Path:
        return self.storage_path / f".{_safe_name(name)}.meta.json"

    async def save(self, artifact: Artifact) -> str:
        content_path = self._content_path(artifact.name)
        meta_path = self._meta_path(artifact.name)

        content_path.write_bytes(artifact.content)
        os.chmod(content_path, 0o600)
        meta_path.write_text(json.dumps({
            "name": artifact.name,
            "content_type": artifact.content_type,
            "created_at": artifact.created_at.isoformat()
        }))
        os.chmod(meta_path, 0o600)

        self.logger.info(
            "artifact_saved",
            name=artifact.name,
            path=str(content_path),
            size=len(artifact.content)
        )
        return str(content_path)

    async def load(self, name: str) -> Optional[Artifact]:
        content_path = self._content_path(name)
        if not content_path.exists():
            self.logger.debug("artifact_not_found", name=name)
            return None

        content = content_path.read_bytes()
        meta_path = self._meta_path(name)
        if meta_path.exists():
            meta = json.loads(meta_path.read_text())
            return Artifact(
                name=meta.get("name", name),
                content=content,
                content_type=meta.get("content_type", "application/octet-stream"),
                created_at=datetime.fromisoformat(meta["created_at"])
            )

        return Artifact(name=name, content=content, content_type="application/octet-stream")
