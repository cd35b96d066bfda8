"""
Tests for artifact decoding, including the spaCy engine on blank pipelines
"""
import json

import pytest
import spacy
from spacy.language import Language as SpacyLanguage

from nlp_pipeline.exceptions import CorruptArtifactError
from nlp_pipeline.stages import NlpStage
from nlp_pipeline.models.base import EntityCategory, SentenceModel, TaggerModel, TokenizerModel
from nlp_pipeline.models.codecs import decode_model, parse_artifact
from nlp_pipeline.models.rules import GazetteerFinder
from nlp_pipeline.models.spacy_models import SpacyTaggerModel

from conftest import ENGLISH_ARTIFACTS


@SpacyLanguage.component("proper_noun_tags")
def proper_noun_tags(doc):
    for token in doc:
        token.tag_ = "NNP"
        token.pos_ = "PROPN"
    return doc


def encode(artifact):
    return json.dumps(artifact).encode("utf-8")


def test_decode_rules_models():
    assert isinstance(decode_model(NlpStage.SEGMENT, encode(ENGLISH_ARTIFACTS[NlpStage.SEGMENT])), SentenceModel)
    assert isinstance(decode_model(NlpStage.TOKENIZE, encode(ENGLISH_ARTIFACTS[NlpStage.TOKENIZE])), TokenizerModel)

    tagger = decode_model(NlpStage.TAG, encode(ENGLISH_ARTIFACTS[NlpStage.TAG]))
    assert isinstance(tagger, TaggerModel)
    assert tagger.tagset == "PENN_TREEBANK"

    finders = decode_model(NlpStage.RECOGNIZE, encode(ENGLISH_ARTIFACTS[NlpStage.RECOGNIZE]))
    assert all(isinstance(f, GazetteerFinder) for f in finders)
    assert [f.category for f in finders] == [
        EntityCategory.PERSON, EntityCategory.ORGANIZATION, EntityCategory.LOCATION
    ]


def test_stage_alias_accepted():
    artifact = dict(ENGLISH_ARTIFACTS[NlpStage.SEGMENT], stage="SENTENCE")
    assert isinstance(decode_model(NlpStage.SEGMENT, encode(artifact)), SentenceModel)


@pytest.mark.parametrize("data", [
    b"\xff\xfe not utf-8",
    b"{not json",
    b"[1, 2, 3]",
])
def test_malformed_artifact(data):
    with pytest.raises(CorruptArtifactError):
        decode_model(NlpStage.SEGMENT, data)


def test_stage_mismatch():
    with pytest.raises(CorruptArtifactError) as exc_info:
        decode_model(NlpStage.TAG, encode(ENGLISH_ARTIFACTS[NlpStage.SEGMENT]))
    assert "expected TAG" in str(exc_info.value)


def test_unknown_stage_and_engine():
    with pytest.raises(CorruptArtifactError):
        decode_model(NlpStage.SEGMENT, encode({"engine": "rules", "stage": "parse"}))
    with pytest.raises(CorruptArtifactError):
        decode_model(NlpStage.SEGMENT, encode({"engine": "opennlp", "stage": "segment"}))
    with pytest.raises(CorruptArtifactError):
        decode_model(NlpStage.SEGMENT, encode({"stage": "segment"}))


def test_builder_failure_is_corrupt():
    # Tagger without a tagset
    with pytest.raises(CorruptArtifactError):
        decode_model(NlpStage.TAG, encode({"engine": "rules", "stage": "tag", "lexicon": {}}))
    # Invalid token pattern
    with pytest.raises(CorruptArtifactError):
        decode_model(NlpStage.TOKENIZE, encode({"engine": "rules", "stage": "tokenize", "pattern": "("}))


def test_entity_artifact_without_finders():
    with pytest.raises(CorruptArtifactError):
        decode_model(NlpStage.RECOGNIZE, encode({"engine": "rules", "stage": "recognize", "finders": []}))


def test_parse_artifact():
    assert parse_artifact(b'{"engine": "rules"}') == {"engine": "rules"}


class TestSpacyEngine:

    def test_uninstalled_package_is_corrupt(self):
        artifact = {"engine": "spacy", "stage": "tokenize", "package": "xx_not_an_installed_model"}
        with pytest.raises(CorruptArtifactError):
            decode_model(NlpStage.TOKENIZE, encode(artifact))

    def test_blank_sentence_model_adds_sentencizer(self):
        model = decode_model(NlpStage.SEGMENT, encode({"engine": "spacy", "stage": "segment", "package": "blank:en"}))
        assert "sentencizer" in model.nlp.pipe_names
        assert model.segment("Hello there. How are you?") == [(0, 12), (13, 25)]

    def test_blank_tokenizer(self):
        model = decode_model(NlpStage.TOKENIZE, encode({"engine": "spacy", "stage": "tokenize", "package": "blank:en"}))
        assert model.tokenize("Hello world!") == [(0, 5), (6, 11), (11, 12)]

    def test_blank_tagger_tags_every_token(self):
        model = decode_model(
            NlpStage.TAG,
            encode({"engine": "spacy", "stage": "tag", "package": "blank:en", "tagset": "UNIVERSAL"})
        )
        tokens = ["Hello", "world", "!"]
        assert len(model.tag(tokens)) == len(tokens)
        assert model.tagset == "UNIVERSAL"

    def test_blank_entity_finders(self):
        finders = decode_model(
            NlpStage.RECOGNIZE,
            encode({"engine": "spacy", "stage": "recognize", "package": "blank:en"})
        )
        assert {f.category for f in finders} == {
            EntityCategory.PERSON, EntityCategory.ORGANIZATION, EntityCategory.LOCATION
        }
        # A blank pipeline has no entity recognizer
        assert finders[0].find(["John", "Smith"]) == []

    def test_universal_tagset_emits_coarse_pos(self):
        nlp = spacy.blank("en")
        nlp.add_pipe("proper_noun_tags")
        assert SpacyTaggerModel(nlp, "UNIVERSAL").tag(["Paris", "London"]) == ["PROPN", "PROPN"]

    def test_treebank_tagset_emits_fine_grained_tags(self):
        nlp = spacy.blank("en")
        nlp.add_pipe("proper_noun_tags")
        assert SpacyTaggerModel(nlp, "PENN_TREEBANK").tag(["Paris", "London"]) == ["NNP", "NNP"]
