"""
spaCy backed annotator models

An artifact names a spaCy package (e.g. "en_core_web_sm") or a blank pipeline
("blank:en"); the package itself is installed separately.
"""
from typing import Any, Dict, Iterable, List, Optional
import spacy
from spacy.language import Language as SpacyPipeline
from spacy.tokens import Doc

from nlp_pipeline.models.base import (
    EntityCategory,
    EntityFinder,
    OffsetSpan,
    SentenceModel,
    TaggerModel,
    TokenizerModel,
)
from nlp_pipeline.models.rules import _trim
from logger import get_logger

logger = get_logger(__name__)

SENTENCE_COMPONENTS = ("parser", "senter", "sentencizer")
UNIVERSAL_TAGSET = "UNIVERSAL"

# Default mapping of spaCy entity labels onto entity categories
DEFAULT_ENTITY_LABELS = {
    "PERSON": ["PERSON", "PER"],
    "ORGANIZATION": ["ORG"],
    "LOCATION": ["GPE", "LOC", "FAC"],
}


def load_pipeline(package: str, max_length: Optional[int] = None) -> SpacyPipeline:
    """
    Load a spaCy pipeline

    Raises:
        OSError: if the package is not installed
    """
    if package.startswith("blank:"):
        nlp = spacy.blank(package.split(":", 1)[1])
    else:
        nlp = spacy.load(package)
    if max_length:
        nlp.max_length = max_length
    logger.info(f"Loaded spaCy pipeline: {package} ({', '.join(nlp.pipe_names) or 'tokenizer only'})")
    return nlp


def _annotate_words(nlp: SpacyPipeline, tokens: List[str]) -> Doc:
    """Run the pipeline components over a pre-tokenized sentence"""
    doc = Doc(nlp.vocab, words=tokens)
    for _, component in nlp.pipeline:
        doc = component(doc)
    return doc


class SpacySentenceModel(SentenceModel):

    def __init__(self, nlp: SpacyPipeline):
        if not any(name in nlp.pipe_names for name in SENTENCE_COMPONENTS):
            nlp.add_pipe("sentencizer", first=True)
        self.nlp = nlp

    def segment(self, text: str) -> List[OffsetSpan]:
        sentences = []
        for sent in self.nlp(text).sents:
            span = _trim(text, sent.start_char, sent.end_char)
            if span:
                sentences.append(span)
        return sentences


class SpacyTokenizerModel(TokenizerModel):

    def __init__(self, nlp: SpacyPipeline):
        self.nlp = nlp

    def tokenize(self, text: str) -> List[OffsetSpan]:
        return [
            (token.idx, token.idx + len(token.text))
            for token in self.nlp.make_doc(text)
            if not token.is_space
        ]


class SpacyTaggerModel(TaggerModel):
    """Universal POS (token.pos_) for the UNIVERSAL tagset, fine-grained tags (token.tag_) otherwise"""

    def __init__(self, nlp: SpacyPipeline, tagset: str):
        self.nlp = nlp
        self.tagset = tagset

    def tag(self, tokens: List[str]) -> List[str]:
        if not tokens:
            return []
        doc = _annotate_words(self.nlp, tokens)
        if self.tagset == UNIVERSAL_TAGSET:
            return [token.pos_ or "X" for token in doc]
        return [token.tag_ or "X" for token in doc]


class SpacyEntityFinder(EntityFinder):
    """Entities of the pipeline's NER component restricted to some labels"""

    def __init__(self, nlp: SpacyPipeline, category: EntityCategory, labels: Iterable[str]):
        super().__init__(category)
        self.nlp = nlp
        self.labels = set(labels)

    def find(self, tokens: List[str]) -> List[OffsetSpan]:
        if not tokens:
            return []
        doc = _annotate_words(self.nlp, tokens)
        return [(ent.start, ent.end) for ent in doc.ents if ent.label_ in self.labels]


def build_sentence_model(artifact: Dict[str, Any]) -> SpacySentenceModel:
    return SpacySentenceModel(load_pipeline(artifact["package"], artifact.get("max_length")))


def build_tokenizer_model(artifact: Dict[str, Any]) -> SpacyTokenizerModel:
    return SpacyTokenizerModel(load_pipeline(artifact["package"], artifact.get("max_length")))


def build_tagger_model(artifact: Dict[str, Any]) -> SpacyTaggerModel:
    return SpacyTaggerModel(load_pipeline(artifact["package"]), artifact.get("tagset", UNIVERSAL_TAGSET))


def build_entity_finders(artifact: Dict[str, Any]) -> List[SpacyEntityFinder]:
    nlp = load_pipeline(artifact["package"])
    labels = artifact.get("categories", DEFAULT_ENTITY_LABELS)
    return [
        SpacyEntityFinder(nlp, EntityCategory.parse(category), category_labels)
        for category, category_labels in labels.items()
    ]
