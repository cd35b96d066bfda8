"""
Shared fixtures: an in-memory remote artifact store and small rule-based models
"""
import asyncio
import json
from typing import Any, Dict, Optional, Union

import pytest

from nlp_pipeline.exceptions import ArtifactTransferError
from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage
from nlp_pipeline.models.artifacts import LocalArtifactCache, RemoteArtifacts
from nlp_pipeline.models.base import ArtifactKey

SAMPLE_TEXT = "Dr. Smith works at ICIJ. He lives in Paris."

ENGLISH_ARTIFACTS: Dict[NlpStage, Dict[str, Any]] = {
    NlpStage.SEGMENT: {
        "engine": "rules",
        "stage": "segment",
        "abbreviations": ["Dr.", "Mr.", "Mrs.", "e.g."],
    },
    NlpStage.TOKENIZE: {
        "engine": "rules",
        "stage": "tokenize",
        "abbreviations": ["Dr.", "Mr.", "Mrs.", "e.g."],
    },
    NlpStage.TAG: {
        "engine": "rules",
        "stage": "tag",
        "tagset": "PENN_TREEBANK",
        "lexicon": {
            "Dr.": "NNP", "works": "VBZ", "at": "IN", "He": "PRP",
            "lives": "VBZ", "in": "IN", "the": "DT",
        },
        "suffixes": {"ing": "VBG", "ed": "VBD", "ly": "RB"},
    },
    NlpStage.RECOGNIZE: {
        "engine": "rules",
        "stage": "recognize",
        "finders": [
            {"category": "PERSON", "entries": ["Smith", "John Smith"]},
            {"category": "ORG", "entries": ["ICIJ"]},
            {"category": "LOCATION", "entries": ["Paris", "New York"]},
        ],
    },
}

GERMAN_ARTIFACTS: Dict[NlpStage, Dict[str, Any]] = {
    NlpStage.SEGMENT: {"engine": "rules", "stage": "segment", "abbreviations": ["Dr.", "z.B."]},
    NlpStage.TOKENIZE: {"engine": "rules", "stage": "tokenize", "abbreviations": ["Dr.", "z.B."]},
    NlpStage.TAG: {
        "engine": "rules",
        "stage": "tag",
        "tagset": "STTS",
        "lexicon": {"wohnt": "VVFIN", "in": "APPR"},
        "default_tag": "NN",
        "proper_noun_tag": "NE",
        "number_tag": "CARD",
        "punctuation_tag": "$.",
    },
}


class FakeRemoteArtifacts(RemoteArtifacts):
    """Remote store backed by a dict, with optional latency and failures"""

    def __init__(self, artifacts: Optional[Dict[str, bytes]] = None, delay: float = 0.0):
        self.artifacts = dict(artifacts or {})
        self.delay = delay
        self.failing = set()
        self.fetched = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    def publish(
        self,
        language: Language,
        stage: NlpStage,
        artifact: Union[Dict[str, Any], bytes],
        pipeline: str = "default",
        version: str = "1-5"
    ) -> str:
        key = ArtifactKey(pipeline, version, language, stage).remote_key
        if isinstance(artifact, bytes):
            self.artifacts[key] = artifact
        else:
            self.artifacts[key] = json.dumps(artifact).encode("utf-8")
        return key

    async def fetch(self, key: str) -> Optional[bytes]:
        self.fetched.append(key)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if key in self.failing:
                raise ArtifactTransferError(f"Simulated failure for {key}", key=key)
            return self.artifacts.get(key)
        finally:
            self.active -= 1

    async def close(self):
        self.closed = True


def publish_language(remote: FakeRemoteArtifacts, language: Language, artifacts, skip=(), **kwargs):
    for stage, artifact in artifacts.items():
        if stage not in skip:
            remote.publish(language, stage, artifact, **kwargs)


@pytest.fixture
def local_cache(tmp_path):
    return LocalArtifactCache(tmp_path / "models")


@pytest.fixture
def remote():
    """Remote store publishing the English and German rule models"""
    store = FakeRemoteArtifacts()
    publish_language(store, Language.ENGLISH, ENGLISH_ARTIFACTS)
    publish_language(store, Language.GERMAN, GERMAN_ARTIFACTS)
    return store
