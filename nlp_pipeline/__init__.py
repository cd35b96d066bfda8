"""
Staged annotation pipeline: sentences, tokens, part-of-speech tags and named
entities from per-language models loaded on demand.
"""
from .exceptions import (
    PipelineError,
    UnsupportedLanguageError,
    ArtifactTransferError,
    CorruptArtifactError,
    AnnotationError,
)
from .language import Language
from .stages import NlpStage, StageGraph
from .annotation import Annotation, Span
from .runner import PipelineRunner
from .registry import PipelineDefinition, PipelineRegistry, build_runner, load_pipeline_definitions

__all__ = [
    'PipelineError',
    'UnsupportedLanguageError',
    'ArtifactTransferError',
    'CorruptArtifactError',
    'AnnotationError',
    'Language',
    'NlpStage',
    'StageGraph',
    'Annotation',
    'Span',
    'PipelineRunner',
    'PipelineDefinition',
    'PipelineRegistry',
    'build_runner',
    'load_pipeline_definitions',
]
