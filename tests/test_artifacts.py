"""
Tests for artifact transfer and the local artifact cache
"""
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from nlp_pipeline.exceptions import ArtifactTransferError
from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage
from nlp_pipeline.models.artifacts import (
    DirectoryRemoteArtifacts,
    HttpRemoteArtifacts,
    LocalArtifactCache,
    create_remote_artifacts,
)
from nlp_pipeline.models.base import ArtifactKey


def mock_session(status=200, body=b"", error=None):
    response = MagicMock(status=status)
    response.read = AsyncMock(return_value=body)
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock(closed=False)
    session.close = AsyncMock()
    if error is not None:
        session.get = MagicMock(side_effect=error)
    else:
        session.get = MagicMock(return_value=context)
    return session


def test_artifact_key_layout(tmp_path):
    key = ArtifactKey("default", "1-5", Language.ENGLISH, NlpStage.RECOGNIZE)
    assert key.remote_key == "default/1-5/en/ner.model"
    assert key.local_path(tmp_path) == tmp_path / "default" / "1-5" / "en" / "ner.model"


def test_local_cache_write_read_remove(tmp_path):
    cache = LocalArtifactCache(tmp_path)
    path = tmp_path / "default" / "1-5" / "en" / "token.model"

    assert not cache.has(path)
    cache.write(path, b"payload")
    assert cache.has(path)
    assert cache.read(path) == b"payload"
    assert list(path.parent.iterdir()) == [path]

    assert cache.remove(path)
    assert not cache.remove(path)


@pytest.mark.asyncio
async def test_http_fetch():
    remote = HttpRemoteArtifacts("http://models.example.org/")
    remote.session = mock_session(200, b"artifact")

    assert await remote.fetch("default/1-5/en/pos.model") == b"artifact"
    remote.session.get.assert_called_once_with("http://models.example.org/default/1-5/en/pos.model")


@pytest.mark.asyncio
async def test_http_fetch_not_found():
    remote = HttpRemoteArtifacts("http://models.example.org")
    remote.session = mock_session(404)
    assert await remote.fetch("default/1-5/de/ner.model") is None


@pytest.mark.asyncio
async def test_http_fetch_server_error():
    remote = HttpRemoteArtifacts("http://models.example.org")
    remote.session = mock_session(503)
    with pytest.raises(ArtifactTransferError) as exc_info:
        await remote.fetch("default/1-5/en/pos.model")
    assert exc_info.value.key == "default/1-5/en/pos.model"


@pytest.mark.asyncio
async def test_http_fetch_connection_error():
    remote = HttpRemoteArtifacts("http://models.example.org")
    remote.session = mock_session(error=aiohttp.ClientConnectionError("refused"))
    with pytest.raises(ArtifactTransferError):
        await remote.fetch("default/1-5/en/pos.model")


@pytest.mark.asyncio
async def test_http_close():
    remote = HttpRemoteArtifacts("http://models.example.org")
    session = mock_session()
    remote.session = session
    await remote.close()
    session.close.assert_awaited_once()
    assert remote.session is None


@pytest.mark.asyncio
async def test_directory_remote(tmp_path):
    (tmp_path / "default" / "1-5" / "en").mkdir(parents=True)
    (tmp_path / "default" / "1-5" / "en" / "sentence.model").write_bytes(b"{}")
    remote = DirectoryRemoteArtifacts(tmp_path)

    assert await remote.fetch("default/1-5/en/sentence.model") == b"{}"
    assert await remote.fetch("default/1-5/fr/sentence.model") is None


def test_create_remote_artifacts(tmp_path):
    assert create_remote_artifacts(None) is None
    assert isinstance(create_remote_artifacts("https://models.example.org", timeout=5), HttpRemoteArtifacts)

    remote = create_remote_artifacts(tmp_path.as_uri())
    assert isinstance(remote, DirectoryRemoteArtifacts)
    assert remote.root == Path(tmp_path)

    with pytest.raises(ValueError):
        create_remote_artifacts("ftp://models.example.org")
