"""Tests for artifact storage implementations."""

import stat

import pytest

from src.connectors.gateway import Artifact
from src.connectors.gateway.artifacts import FileArtifactStorage, InMemoryArtifactStorage


@pytest.fixture
def artifact():
    return Artifact(name="firmware.html", content=b"<a href=\"/files/0_13_4b.txt\">fw</a>")


class TestInMemoryArtifactStorage:
    """Tests for in-memory storage."""

    @pytest.fixture
    def storage(self):
        return InMemoryArtifactStorage()

    @pytest.mark.asyncio
    async def test_save_and_load(self, storage, artifact):
        location = await storage.save(artifact)

        assert location == "firmware.html"
        assert await storage.load("firmware.html") == artifact

    @pytest.mark.asyncio
    async def test_load_missing(self, storage):
        assert await storage.load("missing.html") is None

    @pytest.mark.asyncio
    async def test_save_replaces_same_name(self, storage, artifact):
        await storage.save(artifact)
        newer = Artifact(name="firmware.html", content=b"<p>v2</p>")

        await storage.save(newer)

        assert await storage.load("firmware.html") == newer


class TestFileArtifactStorage:
    """Tests for file storage."""

    @pytest.fixture
    def storage(self, tmp_path):
        return FileArtifactStorage(str(tmp_path / "artifacts"))

    @pytest.mark.asyncio
    async def test_save_writes_file(self, storage, artifact, tmp_path):
        location = await storage.save(artifact)

        path = tmp_path / "artifacts" / "firmware.html"
        assert location == str(path)
        assert path.read_bytes() == artifact.content
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_load_restores_metadata(self, storage, artifact):
        await storage.save(artifact)

        loaded = await storage.load("firmware.html")

        assert loaded.content == artifact.content
        assert loaded.content_type == "text/html"
        assert loaded.created_at == artifact.created_at

    @pytest.mark.asyncio
    async def test_name_cannot_escape_directory(self, storage, tmp_path):
        await storage.save(Artifact(name="../../escape.html", content=b"x"))

        assert (tmp_path / "artifacts" / "escape.html").exists()
        assert not (tmp_path / "escape.html").exists()

    @pytest.mark.asyncio
    async def test_invalid_name(self, storage):
        with pytest.raises(ValueError):
            await storage.save(Artifact(name="..", content=b"x"))

    @pytest.mark.asyncio
    async def test_load_without_metadata(self, storage, tmp_path):
        (tmp_path / "artifacts" / "manual.bin").write_bytes(b"\x00\x01")

        loaded = await storage.load("manual.bin")

        assert loaded.content == b"\x00\x01"
        assert loaded.content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_load_missing(self, storage):
        assert await storage.load("missing.html") is None
