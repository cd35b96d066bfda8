"""
Annotation stages and the dependency graph that gates them
"""
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Union

from nlp_pipeline.exceptions import UnsupportedLanguageError
from nlp_pipeline.language import Language


class NlpStage(Enum):
    """One layer of annotation"""
    SEGMENT = "segment"
    TOKENIZE = "tokenize"
    TAG = "tag"
    RECOGNIZE = "recognize"

    @property
    def artifact_name(self) -> str:
        """File stem of the serialized model for this stage"""
        return _ARTIFACT_NAMES[self]

    @classmethod
    def parse(cls, value: Union["NlpStage", str]) -> "NlpStage":
        """Resolve a member, its name, its value or a legacy alias (SENTENCE, TOKEN, POS, NER)"""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper()
        if normalized in cls.__members__:
            return cls[normalized]
        if normalized in _ALIASES:
            return _ALIASES[normalized]
        raise ValueError(f"Unknown stage: {value!r}")

    def __str__(self):
        return self.name


_ARTIFACT_NAMES = {
    NlpStage.SEGMENT: "sentence",
    NlpStage.TOKENIZE: "token",
    NlpStage.TAG: "pos",
    NlpStage.RECOGNIZE: "ner",
}

_ALIASES = {
    "SENTENCE": NlpStage.SEGMENT,
    "TOKEN": NlpStage.TOKENIZE,
    "POS": NlpStage.TAG,
    "NER": NlpStage.RECOGNIZE,
}


class StageGraph:
    """
    Resolves requested stages into an executable, dependency-ordered plan

    The dependency table is fixed; what varies per pipeline is the matrix of
    stages each language's models support.
    """

    # SEGMENT <-- TOKENIZE <-- {TAG, RECOGNIZE}
    DEPENDENCIES: Dict[NlpStage, FrozenSet[NlpStage]] = {
        NlpStage.SEGMENT: frozenset(),
        NlpStage.TOKENIZE: frozenset({NlpStage.SEGMENT}),
        NlpStage.TAG: frozenset({NlpStage.TOKENIZE}),
        NlpStage.RECOGNIZE: frozenset({NlpStage.TOKENIZE}),
    }

    # Tie-break between independent stages, keeps plans deterministic
    PRIORITY = (NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.TAG, NlpStage.RECOGNIZE)

    def __init__(self, supported_stages: Mapping[Language, Iterable[NlpStage]]):
        self._supported: Dict[Language, FrozenSet[NlpStage]] = {
            language: frozenset(stages) for language, stages in supported_stages.items()
        }

    @property
    def languages(self) -> List[Language]:
        return list(self._supported.keys())

    def is_supported(self, language: Language) -> bool:
        return language in self._supported

    def supported_stages(self, language: Language) -> FrozenSet[NlpStage]:
        """Stages the models of a language cover"""
        if language not in self._supported:
            raise UnsupportedLanguageError(
                f"No models declared for {language}", language=str(language)
            )
        return self._supported[language]

    @classmethod
    def dependencies(cls, stage: NlpStage) -> FrozenSet[NlpStage]:
        """Direct dependencies of a stage"""
        return cls.DEPENDENCIES[stage]

    @classmethod
    def closure(cls, stages: Iterable[NlpStage]) -> Set[NlpStage]:
        """Stages plus all of their transitive dependencies"""
        result: Set[NlpStage] = set()
        pending = list(stages)
        while pending:
            stage = pending.pop()
            if stage in result:
                continue
            result.add(stage)
            pending.extend(cls.DEPENDENCIES[stage])
        return result

    @classmethod
    def order(cls, stages: Iterable[NlpStage]) -> List[NlpStage]:
        """
        Topological order of a dependency-closed stage set

        Raises:
            ValueError: if a stage's dependency is missing from the set
        """
        remaining = set(stages)
        ordered: List[NlpStage] = []
        while remaining:
            ready = [
                stage for stage in cls.PRIORITY
                if stage in remaining and cls.DEPENDENCIES[stage].issubset(ordered)
            ]
            if not ready:
                missing = {dep for stage in remaining for dep in cls.DEPENDENCIES[stage]} - set(ordered)
                raise ValueError(f"Stage set is not dependency-closed, missing: {sorted(map(str, missing))}")
            ordered.append(ready[0])
            remaining.discard(ready[0])
        return ordered

    def resolve(
        self,
        language: Language,
        requested: Optional[Iterable[NlpStage]] = None
    ) -> List[NlpStage]:
        """
        Compute the stages to run, in execution order

        A requested stage survives only if it and every stage it depends on are
        supported for the language; others are dropped without error.

        Args:
            language: Target language
            requested: Stages asked for; None means every supported stage

        Returns:
            Dependency-closed list of stages in execution order

        Raises:
            UnsupportedLanguageError: if the language has no matrix entry
        """
        supported = self.supported_stages(language)
        wanted = set(supported) if requested is None else set(requested)
        kept = {stage for stage in wanted if self.closure([stage]).issubset(supported)}
        return self.order(self.closure(kept))
