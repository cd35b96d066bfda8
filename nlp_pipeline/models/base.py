"""
Base classes and interfaces for annotator models

Each stage is served by an opaque capability: segmenting text into sentences,
tokenizing a sentence, tagging a token sequence, or finding entities in one.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Tuple

from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage

# Offsets are half-open [start, end)
OffsetSpan = Tuple[int, int]


class EntityCategory(Enum):
    """Entity categories reported by entity finders"""
    PERSON = "PERSON"
    ORGANIZATION = "ORGANIZATION"
    LOCATION = "LOCATION"
    DATE = "DATE"
    MONEY = "MONEY"
    MISC = "MISC"

    @classmethod
    def parse(cls, value: str) -> "EntityCategory":
        """Normalize category names across model sources"""
        mappings = {
            "PER": "PERSON",
            "PERSON": "PERSON",
            "ORG": "ORGANIZATION",
            "ORGANIZATION": "ORGANIZATION",
            "ORGANISATION": "ORGANIZATION",
            "LOC": "LOCATION",
            "GPE": "LOCATION",
            "FAC": "LOCATION",
            "LOCATION": "LOCATION",
            "DATE": "DATE",
            "TIME": "DATE",
            "MONEY": "MONEY",
            "MISC": "MISC",
        }
        normalized = mappings.get(str(value).strip().upper())
        if normalized is None:
            raise ValueError(f"Unknown entity category: {value!r}")
        return cls(normalized)


class SentenceModel(ABC):
    """Splits a document into sentences"""

    @abstractmethod
    def segment(self, text: str) -> List[OffsetSpan]:
        """Ordered, non-overlapping sentence offsets over text"""
        pass


class TokenizerModel(ABC):
    """Splits a sentence into tokens"""

    @abstractmethod
    def tokenize(self, text: str) -> List[OffsetSpan]:
        """Ordered token offsets relative to text"""
        pass


class TaggerModel(ABC):
    """Assigns one part-of-speech label per token"""

    tagset: str = "UNKNOWN"

    @abstractmethod
    def tag(self, tokens: List[str]) -> List[str]:
        """
        Tag a whole sentence at once

        Tagging uses the surrounding tokens as context, so callers pass the
        complete token sequence of a sentence.
        """
        pass


class EntityFinder(ABC):
    """Finds entities of a single category in a token sequence"""

    def __init__(self, category: EntityCategory):
        self.category = category

    @abstractmethod
    def find(self, tokens: List[str]) -> List[OffsetSpan]:
        """Entity matches as token-index ranges [i, j)"""
        pass

    def __repr__(self):
        return f"{type(self).__name__}({self.category.value})"


@dataclass(frozen=True)
class ArtifactKey:
    """Identifies one serialized model: (pipeline, version, language, stage)"""
    pipeline: str
    version: str
    language: Language
    stage: NlpStage

    @property
    def filename(self) -> str:
        return f"{self.stage.artifact_name}.model"

    @property
    def remote_key(self) -> str:
        return f"{self.pipeline}/{self.version}/{self.language.code}/{self.filename}"

    def local_path(self, root: Path) -> Path:
        return Path(root) / self.pipeline / self.version / self.language.code / self.filename

    def __str__(self):
        return self.remote_key
