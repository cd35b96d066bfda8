"""
Artifact transfer and local artifact cache

The remote side is a "fetch bytes by key" collaborator; the local side keeps
downloaded artifacts on disk so a restarted process does not fetch them again.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname
import asyncio
import os
import tempfile

import aiohttp

from nlp_pipeline.exceptions import ArtifactTransferError
from logger import get_logger

logger = get_logger(__name__)


class RemoteArtifacts(ABC):
    """Remote artifact store"""

    @abstractmethod
    async def fetch(self, key: str) -> Optional[bytes]:
        """
        Fetch an artifact

        Returns:
            Artifact bytes, or None when the store has no such key

        Raises:
            ArtifactTransferError: on network or IO failure
        """
        pass

    async def close(self):
        """Cleanup resources"""
        pass


class HttpRemoteArtifacts(RemoteArtifacts):
    """Artifacts served over HTTP(S) under a base URL"""

    def __init__(self, base_url: str, timeout: int = 60):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def fetch(self, key: str) -> Optional[bytes]:
        url = f"{self.base_url}/{key}"
        try:
            async with self._get_session().get(url) as response:
                if response.status == 200:
                    return await response.read()
                if response.status == 404:
                    return None
                raise ArtifactTransferError(
                    f"Unexpected HTTP {response.status} fetching {url}", key=key
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ArtifactTransferError(f"Failed fetching {url}: {e}", key=key, original_error=e)

    async def close(self):
        """Close HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Remote artifact session closed")


class DirectoryRemoteArtifacts(RemoteArtifacts):
    """Artifacts mirrored in a directory (file:// URLs)"""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _read(self, key: str) -> Optional[bytes]:
        path = self.root / key
        if not path.is_file():
            return None
        return path.read_bytes()

    async def fetch(self, key: str) -> Optional[bytes]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._read, key)
        except OSError as e:
            raise ArtifactTransferError(f"Failed reading {self.root / key}: {e}", key=key, original_error=e)


class LocalArtifactCache:
    """Directory of previously downloaded artifacts"""

    def __init__(self, root: Path):
        self.root = Path(root)

    def has(self, path: Path) -> bool:
        return Path(path).is_file()

    def read(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write(self, path: Path, data: bytes):
        """Write atomically so concurrent readers never see a partial artifact"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def remove(self, path: Path) -> bool:
        path = Path(path)
        if path.is_file():
            path.unlink()
            return True
        return False


def create_remote_artifacts(url: Optional[str], timeout: int = 60) -> Optional[RemoteArtifacts]:
    """Build the remote store matching a URL scheme; None disables downloads"""
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return HttpRemoteArtifacts(url, timeout=timeout)
    if parsed.scheme == "file":
        return DirectoryRemoteArtifacts(Path(url2pathname(parsed.path)))
    raise ValueError(f"Unsupported remote models URL: {url}")
