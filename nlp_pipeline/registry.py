"""
Pipeline registry and factory

Pipelines are declared in a YAML file: which stages each language's models
cover, the tagset of each tagger, and which languages borrow another
language's models for a stage. One runner, with one model store per stage, is
built per pipeline on first use.
"""
from concurrent.futures import Executor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
import yaml

from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage, StageGraph
from nlp_pipeline.runner import PipelineRunner
from nlp_pipeline.models.artifacts import LocalArtifactCache, RemoteArtifacts
from nlp_pipeline.models.store import ModelStore
from logger import get_logger

logger = get_logger(__name__)


@dataclass
class PipelineDefinition:
    """Static description of a pipeline"""
    name: str
    version: str
    supported_stages: Dict[Language, Set[NlpStage]]
    tagsets: Dict[Language, str] = field(default_factory=dict)
    fallbacks: Dict[NlpStage, Dict[Language, Language]] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any], default_version: str = "1-5") -> "PipelineDefinition":
        supported: Dict[Language, Set[NlpStage]] = {}
        tagsets: Dict[Language, str] = {}
        for language_name, language_data in (data.get("languages") or {}).items():
            language = Language.parse(language_name)
            supported[language] = {NlpStage.parse(stage) for stage in language_data.get("stages", [])}
            if language_data.get("tagset"):
                tagsets[language] = language_data["tagset"]

        fallbacks: Dict[NlpStage, Dict[Language, Language]] = {}
        for stage_name, mapping in (data.get("fallbacks") or {}).items():
            fallbacks[NlpStage.parse(stage_name)] = {
                Language.parse(source): Language.parse(target)
                for source, target in mapping.items()
            }

        return cls(
            name=name,
            version=str(data.get("version", default_version)),
            supported_stages=supported,
            tagsets=tagsets,
            fallbacks=fallbacks,
            description=data.get("description", "")
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "languages": {
                language.code: {
                    "stages": [stage.value for stage in StageGraph.order(stages)],
                    "tagset": self.tagsets.get(language)
                }
                for language, stages in self.supported_stages.items()
            }
        }


def default_definitions(version: str = "1-5") -> Dict[str, PipelineDefinition]:
    """Built-in pipeline used when no definitions file is found"""
    all_stages = set(NlpStage)
    return {
        "default": PipelineDefinition(
            name="default",
            version=version,
            description="Sentence, token, part-of-speech and entity models for four languages",
            supported_stages={
                Language.ENGLISH: set(all_stages),
                Language.SPANISH: set(all_stages),
                Language.FRENCH: set(all_stages),
                Language.GERMAN: {NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.TAG},
            },
            tagsets={
                Language.ENGLISH: "PENN_TREEBANK",
                Language.SPANISH: "EAGLES",
                Language.FRENCH: "FRENCH_TREEBANK",
                Language.GERMAN: "STTS",
            },
            fallbacks={
                # Spanish sentence and token models are the English ones,
                # French entity finders are the English ones
                NlpStage.SEGMENT: {Language.SPANISH: Language.ENGLISH},
                NlpStage.TOKENIZE: {Language.SPANISH: Language.ENGLISH},
                NlpStage.RECOGNIZE: {Language.FRENCH: Language.ENGLISH},
            }
        )
    }


def load_pipeline_definitions(
    path: Optional[str] = None,
    default_version: str = "1-5"
) -> Dict[str, PipelineDefinition]:
    """
    Load pipeline definitions from YAML

    Args:
        path: Definitions file; falls back to built-in definitions if missing
        default_version: Model version of pipelines that do not declare one

    Raises:
        ValueError: if the file exists but is malformed
    """
    if not path or not Path(path).exists():
        logger.warning(f"Pipeline definitions not found at {path}, using built-in defaults")
        return default_definitions(default_version)

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    pipelines = data.get("pipelines")
    if not isinstance(pipelines, dict) or not pipelines:
        raise ValueError(f"No pipelines declared in {path}")

    definitions = {}
    for name, pipeline_data in pipelines.items():
        definitions[name] = PipelineDefinition.from_dict(name, pipeline_data or {}, default_version)
        logger.info(f"Loaded pipeline definition: {name}")
    return definitions


def build_runner(
    definition: PipelineDefinition,
    local_cache: LocalArtifactCache,
    remote: Optional[RemoteArtifacts] = None,
    retain_after_use: bool = True,
    purge_corrupt: bool = True,
    executor: Optional[Executor] = None
) -> PipelineRunner:
    """Create a runner with one model store per stage"""
    stores = {
        stage: ModelStore(
            stage,
            local_cache,
            remote=remote,
            pipeline=definition.name,
            version=definition.version,
            retain_after_use=retain_after_use,
            language_fallbacks=definition.fallbacks.get(stage),
            purge_corrupt=purge_corrupt,
            executor=executor
        )
        for stage in NlpStage
    }
    return PipelineRunner(
        definition.name,
        StageGraph(definition.supported_stages),
        stores,
        tagsets=definition.tagsets,
        executor=executor
    )


class PipelineRegistry:
    """Registry of pipeline definitions and their runners"""

    def __init__(
        self,
        definitions: Dict[str, PipelineDefinition],
        local_cache: LocalArtifactCache,
        remote: Optional[RemoteArtifacts] = None,
        retain_after_use: bool = True,
        purge_corrupt: bool = True,
        executor: Optional[Executor] = None
    ):
        self.definitions = dict(definitions)
        self.local_cache = local_cache
        self.remote = remote
        self.retain_after_use = retain_after_use
        self.purge_corrupt = purge_corrupt
        self.executor = executor
        self._runners: Dict[str, PipelineRunner] = {}
        logger.info(f"Registered {len(self.definitions)} pipelines")

    def list_pipelines(self) -> List[str]:
        return list(self.definitions.keys())

    def get_definition(self, name: str) -> PipelineDefinition:
        if name not in self.definitions:
            raise KeyError(f"Pipeline '{name}' not registered")
        return self.definitions[name]

    def get(self, name: str) -> PipelineRunner:
        """Get the pipeline's runner, creating it on first use"""
        if name not in self._runners:
            self._runners[name] = build_runner(
                self.get_definition(name),
                self.local_cache,
                remote=self.remote,
                retain_after_use=self.retain_after_use,
                purge_corrupt=self.purge_corrupt,
                executor=self.executor
            )
            logger.info(f"Created pipeline runner: {name}")
        return self._runners[name]

    async def close_all(self):
        """Drop cached models and close the remote store"""
        for name, runner in self._runners.items():
            await runner.close()
            logger.info(f"Closed pipeline: {name}")
        self._runners.clear()
        if self.remote is not None:
            await self.remote.close()
