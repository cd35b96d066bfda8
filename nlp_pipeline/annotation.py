"""
Layered span annotation produced by a pipeline run

Each stage owns an ordered sequence of spans expressed as half-open character
offsets over the original input. Spans are recorded in discovery order, which
is sentence order then intra-sentence order, so the layers read in document
order without sorting.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
import hashlib
import json

from nlp_pipeline.exceptions import AnnotationError
from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage


@dataclass(frozen=True)
class Span:
    """Half-open offset interval [start, end) with an optional label"""
    start: int
    end: int
    label: Optional[str] = None

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise AnnotationError(f"Invalid span [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start

    def overlaps(self, start: int, end: int) -> bool:
        """True if the span intersects [start, end); an empty range matches spans containing start"""
        if start == end:
            return self.start <= start < self.end
        return self.start < end and start < self.end

    def contains(self, other: "Span") -> bool:
        return self.start <= other.start and other.end <= self.end

    def covered_text(self, text: str) -> str:
        return text[self.start:self.end]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"start": self.start, "end": self.end}
        if self.label is not None:
            data["label"] = self.label
        return data


class Annotation:
    """
    Annotation of one document by one pipeline in one language.

    Keyed by (document hash, pipeline, language). Writable while the run that
    created it is in progress; frozen afterwards.
    """

    def __init__(self, document_hash: str, pipeline: str, language: Language):
        self.document_hash = document_hash
        self.pipeline = pipeline
        self.language = language
        self._layers: Dict[NlpStage, List[Span]] = {stage: [] for stage in NlpStage}
        self._computed: List[NlpStage] = []
        self._frozen = False

    @staticmethod
    def hash_text(text: str) -> str:
        """Content hash used as the document part of the annotation key"""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    @classmethod
    def for_text(cls, text: str, pipeline: str, language: Language) -> "Annotation":
        return cls(cls.hash_text(text), pipeline, language)

    @property
    def key(self) -> Tuple[str, str, Language]:
        return self.document_hash, self.pipeline, self.language

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def stages(self) -> List[NlpStage]:
        """Stages computed during the run, in execution order"""
        return list(self._computed)

    def _check_writable(self, stage: NlpStage):
        if self._frozen:
            raise AnnotationError("Annotation is frozen", stage=str(stage))

    def mark(self, stage: NlpStage):
        """Record that a stage ran, even if it produced no spans"""
        self._check_writable(stage)
        if stage not in self._computed:
            self._computed.append(stage)

    def add(self, stage: NlpStage, start: int, end: int, label: Optional[str] = None) -> Span:
        """Append a span to a stage's layer"""
        self._check_writable(stage)
        span = Span(start, end, label)
        self._layers[stage].append(span)
        self.mark(stage)
        return span

    def freeze(self) -> "Annotation":
        self._frozen = True
        return self

    def get(self, stage: NlpStage) -> Tuple[Span, ...]:
        """Spans of a stage in recorded (document) order"""
        return tuple(self._layers[stage])

    def overlapping(self, stage: NlpStage, start: int, end: int) -> List[Span]:
        """Spans of a stage intersecting [start, end)"""
        return [span for span in self._layers[stage] if span.overlaps(start, end)]

    def count(self, stage: Optional[NlpStage] = None) -> int:
        if stage is not None:
            return len(self._layers[stage])
        return sum(len(spans) for spans in self._layers.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_hash": self.document_hash,
            "pipeline": self.pipeline,
            "language": self.language.code,
            "stages": [stage.value for stage in self._computed],
            "spans": {
                stage.value: [span.to_dict() for span in spans]
                for stage, spans in self._layers.items()
            }
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Annotation":
        """Rebuild a frozen annotation from its exported form"""
        annotation = cls(
            data["document_hash"],
            data["pipeline"],
            Language.parse(data["language"])
        )
        for stage_name in data.get("stages", []):
            annotation.mark(NlpStage.parse(stage_name))
        for stage_name, spans in data.get("spans", {}).items():
            stage = NlpStage.parse(stage_name)
            for span in spans:
                annotation.add(stage, span["start"], span["end"], span.get("label"))
        return annotation.freeze()

    def __eq__(self, other):
        if not isinstance(other, Annotation):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        counts = ", ".join(f"{stage}={len(self._layers[stage])}" for stage in self._computed)
        return f"Annotation({self.pipeline}, {self.language}, {counts})"


def spans_text(spans: Iterable[Span], text: str) -> List[str]:
    """Covered text of each span"""
    return [span.covered_text(text) for span in spans]
