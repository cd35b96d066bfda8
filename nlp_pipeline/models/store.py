"""
Model Store

Resolves a language to a loaded model for one annotator kind, downloading the
artifact into the local cache on first use. Every language has its own slot
and lock: concurrent callers for one language share a single load sequence,
while different languages load in parallel.
"""
from concurrent.futures import Executor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional
import asyncio

from nlp_pipeline.exceptions import ArtifactTransferError, CorruptArtifactError
from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage
from nlp_pipeline.models.artifacts import LocalArtifactCache, RemoteArtifacts
from nlp_pipeline.models.base import ArtifactKey
from nlp_pipeline.models.codecs import decode_model
from logger import get_logger
from metrics import model_loads, model_downloads, model_cache_hits, loaded_models

logger = get_logger(__name__)


@dataclass
class _ModelSlot:
    """Cache slot of one language, guarded by its own lock"""
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    model: Optional[Any] = None


class ModelStore:
    """
    Loads, caches and releases the models of one stage

    Args:
        stage: Annotator kind served by this store
        local_cache: On-disk artifact cache
        remote: Remote artifact store; None disables downloads
        pipeline: Pipeline name, part of the artifact key
        version: Model version, part of the artifact key
        retain_after_use: Keep models in memory after release()
        language_fallbacks: Requested language -> language whose artifact serves it
        purge_corrupt: Delete a local artifact that fails to decode
        decoder: Turns artifact bytes into a model
        executor: Executor for file IO and decoding (loop default if None)
    """

    def __init__(
        self,
        stage: NlpStage,
        local_cache: LocalArtifactCache,
        remote: Optional[RemoteArtifacts] = None,
        pipeline: str = "default",
        version: str = "1-5",
        retain_after_use: bool = True,
        language_fallbacks: Optional[Mapping[Language, Language]] = None,
        purge_corrupt: bool = True,
        decoder: Callable[[NlpStage, bytes], Any] = decode_model,
        executor: Optional[Executor] = None
    ):
        self.stage = stage
        self.local_cache = local_cache
        self.remote = remote
        self.pipeline = pipeline
        self.version = version
        self.retain_after_use = retain_after_use
        self.language_fallbacks: Dict[Language, Language] = dict(language_fallbacks or {})
        self.purge_corrupt = purge_corrupt
        self.decoder = decoder
        self.executor = executor

        # One slot per language, created up front so no lock is ever created lazily
        self._slots: Dict[Language, _ModelSlot] = {language: _ModelSlot() for language in Language}

        self.stats = {
            'hits': 0,
            'loads': 0,
            'downloads': 0,
            'failures': 0,
        }

    @property
    def load_count(self) -> int:
        """Number of load sequences run so far"""
        return self.stats['loads']

    @property
    def download_count(self) -> int:
        return self.stats['downloads']

    def resolve_language(self, language: Language) -> Language:
        """Language whose artifact serves the requested one"""
        return self.language_fallbacks.get(language, language)

    def artifact_key(self, language: Language) -> ArtifactKey:
        return ArtifactKey(self.pipeline, self.version, self.resolve_language(language), self.stage)

    def is_loaded(self, language: Language) -> bool:
        return self._slots[self.resolve_language(language)].model is not None

    async def acquire(self, language: Language) -> Optional[Any]:
        """
        Get a ready-to-use model, loading it on first use

        Returns:
            The model, or None if it cannot be fetched or decoded. None is an
            expected outcome meaning the stage is unavailable for the language.
        """
        resolved = self.resolve_language(language)
        slot = self._slots[resolved]

        async with slot.lock:
            if slot.model is not None:
                self.stats['hits'] += 1
                model_cache_hits.labels(self.stage.value).inc()
                return slot.model

            model = await self._load(resolved)
            if model is not None:
                slot.model = model
                loaded_models.labels(self.stage.value).inc()
            return model

    async def release(self, language: Language):
        """Evict the language's model unless models are retained; safe without a prior load"""
        if self.retain_after_use:
            return
        await self._evict(self.resolve_language(language))

    async def clear(self):
        """Evict every cached model regardless of the retention policy"""
        for language in Language:
            await self._evict(language)

    async def _evict(self, language: Language):
        slot = self._slots[language]
        async with slot.lock:
            if slot.model is not None:
                slot.model = None
                loaded_models.labels(self.stage.value).dec()
                logger.info(f"RELEASED {self.stage} model for {language}")

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    async def _load(self, language: Language) -> Optional[Any]:
        """Download-if-absent then decode; called with the language lock held"""
        self.stats['loads'] += 1
        key = self.artifact_key(language)
        path = key.local_path(self.local_cache.root)

        if not await self._run_blocking(self.local_cache.has, path):
            if not await self._download(key, path):
                self.stats['failures'] += 1
                model_loads.labels(self.stage.value, language.code, 'unavailable').inc()
                return None

        logger.info(f"LOADING {self.stage} model for {language}")
        try:
            model = await self._run_blocking(self._read_and_decode, path)
        except CorruptArtifactError as e:
            self.stats['failures'] += 1
            model_loads.labels(self.stage.value, language.code, 'corrupt').inc()
            logger.error(f"FAILED LOADING {self.stage} model for {language}: {e}")
            if self.purge_corrupt:
                await self._run_blocking(self.local_cache.remove, path)
                logger.warning(f"Purged corrupt artifact {path}, next acquire fetches it again")
            return None

        model_loads.labels(self.stage.value, language.code, 'loaded').inc()
        logger.info(f"LOADED {self.stage} model for {language}")
        return model

    def _read_and_decode(self, path: Path) -> Any:
        try:
            data = self.local_cache.read(path)
        except OSError as e:
            raise CorruptArtifactError(
                f"Cannot read artifact {path}: {e}", stage=str(self.stage), original_error=e
            )
        return self.decoder(self.stage, data)

    async def _download(self, key: ArtifactKey, path: Path) -> bool:
        """Fetch an artifact into the local cache; False if it is unavailable"""
        if self.remote is None:
            logger.warning(f"No {self.stage} artifact for {key.language} and no remote store configured")
            return False

        logger.info(f"DOWNLOADING {self.stage} model for {key.language}")
        try:
            data = await self.remote.fetch(key.remote_key)
        except ArtifactTransferError as e:
            model_downloads.labels(self.stage.value, key.language.code, 'failed').inc()
            logger.error(f"FAILED DOWNLOADING {self.stage} model for {key.language}: {e}")
            return False

        if data is None:
            model_downloads.labels(self.stage.value, key.language.code, 'not_found').inc()
            logger.info(f"No {self.stage} model published for {key.language} ({key.remote_key})")
            return False

        try:
            await self._run_blocking(self.local_cache.write, path, data)
        except OSError as e:
            model_downloads.labels(self.stage.value, key.language.code, 'failed').inc()
            logger.error(f"FAILED STORING {self.stage} model for {key.language}: {e}")
            return False

        self.stats['downloads'] += 1
        model_downloads.labels(self.stage.value, key.language.code, 'downloaded').inc()
        logger.info(f"DOWNLOADED {self.stage} model for {key.language}")
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics"""
        return {
            **self.stats,
            'stage': self.stage.value,
            'retain_after_use': self.retain_after_use,
            'loaded': [language.code for language, slot in self._slots.items() if slot.model is not None],
        }

    def __repr__(self):
        return f"ModelStore({self.stage}, pipeline={self.pipeline}, version={self.version})"
