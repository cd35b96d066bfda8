"""
Artifact decoding

Artifacts are UTF-8 JSON documents naming the engine that builds the model
and the stage it serves, e.g.::

    {"engine": "rules", "stage": "tokenize", "abbreviations": ["Dr."]}
    {"engine": "spacy", "stage": "recognize", "package": "en_core_web_sm"}
"""
from typing import Any, Callable, Dict
import json

from nlp_pipeline.exceptions import CorruptArtifactError
from nlp_pipeline.stages import NlpStage
from nlp_pipeline.models import rules


def _spacy_builders() -> Dict[NlpStage, Callable[[Dict[str, Any]], Any]]:
    # Imported on the first spaCy artifact
    from nlp_pipeline.models import spacy_models
    return {
        NlpStage.SEGMENT: spacy_models.build_sentence_model,
        NlpStage.TOKENIZE: spacy_models.build_tokenizer_model,
        NlpStage.TAG: spacy_models.build_tagger_model,
        NlpStage.RECOGNIZE: spacy_models.build_entity_finders,
    }


def _rules_builders() -> Dict[NlpStage, Callable[[Dict[str, Any]], Any]]:
    return {
        NlpStage.SEGMENT: rules.build_sentence_model,
        NlpStage.TOKENIZE: rules.build_tokenizer_model,
        NlpStage.TAG: rules.build_tagger_model,
        NlpStage.RECOGNIZE: rules.build_entity_finders,
    }


ENGINES: Dict[str, Callable[[], Dict[NlpStage, Callable[[Dict[str, Any]], Any]]]] = {
    "rules": _rules_builders,
    "spacy": _spacy_builders,
}


def parse_artifact(data: bytes) -> Dict[str, Any]:
    """Decode artifact bytes into its JSON document"""
    try:
        artifact = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptArtifactError(f"Artifact is not valid JSON: {e}", original_error=e)
    if not isinstance(artifact, dict):
        raise CorruptArtifactError("Artifact must be a JSON object")
    return artifact


def decode_model(stage: NlpStage, data: bytes) -> Any:
    """
    Build the in-memory model for a stage from artifact bytes

    Args:
        stage: Stage the artifact is expected to serve
        data: Raw artifact

    Returns:
        SentenceModel, TokenizerModel, TaggerModel, or a list of EntityFinder
        for RECOGNIZE

    Raises:
        CorruptArtifactError: if the artifact cannot be turned into a model
    """
    artifact = parse_artifact(data)

    try:
        declared = NlpStage.parse(artifact.get("stage", ""))
    except ValueError as e:
        raise CorruptArtifactError(str(e), stage=str(stage), original_error=e)
    if declared != stage:
        raise CorruptArtifactError(
            f"Artifact serves {declared}, expected {stage}", stage=str(stage)
        )

    engine = artifact.get("engine")
    if not isinstance(engine, str) or engine not in ENGINES:
        raise CorruptArtifactError(
            f"Unknown engine: {engine!r}. Valid options: {sorted(ENGINES)}", stage=str(stage)
        )

    try:
        model = ENGINES[engine]()[stage](artifact)
    except Exception as e:
        # Includes OSError for an uninstalled spaCy package
        raise CorruptArtifactError(
            f"Cannot build {engine} model: {e}", stage=str(stage), original_error=e
        )

    if stage == NlpStage.RECOGNIZE and not model:
        raise CorruptArtifactError("Entity artifact declares no finders", stage=str(stage))
    return model
