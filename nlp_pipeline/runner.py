"""
Pipeline Runner

Turns raw text into an Annotation: resolves the stages to run, acquires their
models from the stores, then segments, tokenizes, tags and recognizes entities
sentence by sentence.
"""
from concurrent.futures import Executor
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import asyncio
import time

from nlp_pipeline.annotation import Annotation
from nlp_pipeline.exceptions import UnsupportedLanguageError
from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage, StageGraph
from nlp_pipeline.models.base import OffsetSpan
from nlp_pipeline.models.store import ModelStore
from logger import get_logger
from metrics import pipeline_runs, pipeline_duration

logger = get_logger(__name__)

_ANNOTATOR_NAMES = {
    NlpStage.SEGMENT: "SENTENCING",
    NlpStage.TOKENIZE: "TOKENIZING",
    NlpStage.TAG: "POS-TAGGING",
    NlpStage.RECOGNIZE: "NAME-FINDING",
}


class PipelineRunner:
    """
    Runs one pipeline over text

    Args:
        name: Pipeline name, recorded in every annotation key
        stage_graph: Supported-stage matrix and dependency resolution
        stores: One model store per stage
        tagsets: Tagging scheme in effect per language
        executor: Executor for model execution (loop default if None)
    """

    def __init__(
        self,
        name: str,
        stage_graph: StageGraph,
        stores: Mapping[NlpStage, ModelStore],
        tagsets: Optional[Mapping[Language, str]] = None,
        executor: Optional[Executor] = None
    ):
        missing = set(NlpStage) - set(stores)
        if missing:
            raise ValueError(f"Missing model stores for stages: {sorted(map(str, missing))}")
        self.name = name
        self.stage_graph = stage_graph
        self.stores: Dict[NlpStage, ModelStore] = dict(stores)
        self.tagsets: Dict[Language, str] = dict(tagsets or {})
        self.executor = executor

    @property
    def languages(self) -> List[Language]:
        return self.stage_graph.languages

    def supported_stages(self, language: Union[Language, str]) -> frozenset:
        """Stages the pipeline's models cover for a language"""
        return self.stage_graph.supported_stages(Language.parse(language))

    def tag_label_set(self, language: Union[Language, str]) -> Optional[str]:
        """Tagging scheme of the TAG stage for a language, None if it has no tagger"""
        language = Language.parse(language)
        if NlpStage.TAG not in self.supported_stages(language):
            return None
        return self.tagsets.get(language)

    async def run(
        self,
        text: str,
        language: Union[Language, str],
        stages: Optional[Iterable[Union[NlpStage, str]]] = None
    ) -> Annotation:
        """
        Annotate text

        Args:
            text: Whole input document
            language: Language of the text
            stages: Requested stages; None means every supported stage

        Returns:
            Frozen annotation; stages whose models are unavailable are absent

        Raises:
            UnsupportedLanguageError: if the pipeline has no models for the language
        """
        start = time.time()
        status = "failed"
        language_label = str(language)
        try:
            language = Language.parse(language)
            language_label = language.code
            if not self.stage_graph.is_supported(language):
                raise UnsupportedLanguageError(
                    f"Pipeline {self.name} has no models for {language}", language=str(language)
                )
            requested = None if stages is None else [NlpStage.parse(stage) for stage in stages]
            targets = self.stage_graph.resolve(language, requested)

            models: Dict[NlpStage, Any] = {}
            try:
                await self._initialize(language, targets, models)
                loop = asyncio.get_running_loop()
                annotation = await loop.run_in_executor(
                    self.executor, self._process, text, language, models
                )
            finally:
                await self._terminate(language, models)
            status = "success"
            return annotation
        except UnsupportedLanguageError:
            status = "rejected"
            raise
        finally:
            pipeline_runs.labels(self.name, language_label, status).inc()
            pipeline_duration.labels(self.name).observe(time.time() - start)

    async def _initialize(self, language: Language, targets: List[NlpStage], models: Dict[NlpStage, Any]):
        """
        Acquire models for the target stages, skipping stages whose dependencies failed

        Models are recorded as soon as they are acquired so the caller can
        release them even if acquisition is interrupted.
        """
        for stage in targets:
            if not StageGraph.dependencies(stage).issubset(models):
                logger.info(f"Skipping {stage} for {language}: dependencies unavailable")
                continue
            model = await self.stores[stage].acquire(language)
            if model is None:
                logger.warning(f"{stage} model unavailable for {language}, stage skipped")
                continue
            models[stage] = model
            if stage == NlpStage.TAG:
                self._check_tagset(language, model)

    def _check_tagset(self, language: Language, tagger: Any):
        declared = self.tagsets.get(language)
        emitted = getattr(tagger, "tagset", None)
        if declared and emitted and declared != emitted:
            logger.warning(
                f"{self.name} declares tagset {declared} for {language} "
                f"but the loaded tagger emits {emitted}"
            )

    async def _terminate(self, language: Language, models: Dict[NlpStage, Any]):
        for stage in models:
            await self.stores[stage].release(language)

    def _process(self, text: str, language: Language, models: Dict[NlpStage, Any]) -> Annotation:
        """Synchronous annotation of the whole document"""
        annotation = Annotation.for_text(text, self.name, language)
        for stage in models:
            annotation.mark(stage)

        if models:
            annotators = " ~ ".join(_ANNOTATOR_NAMES[stage] for stage in models)
            logger.info(f"{self.name} - {annotators} for {language}")

        sentencer = models.get(NlpStage.SEGMENT)
        if sentencer is None:
            return annotation.freeze()

        for sentence_start, sentence_end in sentencer.segment(text):
            annotation.add(NlpStage.SEGMENT, sentence_start, sentence_end)
            if NlpStage.TOKENIZE in models:
                self._process_sentence(
                    annotation, text[sentence_start:sentence_end], sentence_start, models
                )

        return annotation.freeze()

    def _process_sentence(
        self,
        annotation: Annotation,
        sentence: str,
        offset: int,
        models: Dict[NlpStage, Any]
    ):
        token_spans: List[OffsetSpan] = models[NlpStage.TOKENIZE].tokenize(sentence)
        if not token_spans:
            return
        tokens = [sentence[start:end] for start, end in token_spans]
        document_spans: List[Tuple[int, int]] = [
            (offset + start, offset + end) for start, end in token_spans
        ]

        for start, end in document_spans:
            annotation.add(NlpStage.TOKENIZE, start, end)

        tagger = models.get(NlpStage.TAG)
        if tagger is not None:
            tags = tagger.tag(tokens)
            if len(tags) != len(tokens):
                logger.warning(
                    f"Tagger returned {len(tags)} tags for {len(tokens)} tokens, "
                    f"sentence at {offset} left untagged"
                )
            else:
                for (start, end), tag in zip(document_spans, tags):
                    annotation.add(NlpStage.TAG, start, end, tag)

        finders = models.get(NlpStage.RECOGNIZE)
        if finders is not None:
            for finder in finders:
                for first, last in finder.find(tokens):
                    if not 0 <= first < last <= len(tokens):
                        logger.warning(f"{finder} returned out-of-range tokens [{first}, {last})")
                        continue
                    annotation.add(
                        NlpStage.RECOGNIZE,
                        document_spans[first][0],
                        document_spans[last - 1][1],
                        finder.category.value
                    )

    async def close(self):
        """Drop every cached model of this pipeline"""
        for store in self.stores.values():
            await store.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            'pipeline': self.name,
            'languages': [language.code for language in self.languages],
            'stores': {stage.value: store.get_stats() for stage, store in self.stores.items()},
        }
