"""
Tests for languages, stages and stage resolution
"""
import pytest

from nlp_pipeline.exceptions import UnsupportedLanguageError
from nlp_pipeline.language import Language
from nlp_pipeline.stages import NlpStage, StageGraph

ALL = set(NlpStage)


@pytest.fixture
def graph():
    return StageGraph({
        Language.ENGLISH: ALL,
        Language.GERMAN: {NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.TAG},
        Language.FRENCH: {NlpStage.SEGMENT, NlpStage.TAG, NlpStage.RECOGNIZE},
    })


class TestLanguage:

    def test_parse_code_and_name(self):
        assert Language.parse("en") is Language.ENGLISH
        assert Language.parse("EN") is Language.ENGLISH
        assert Language.parse("german") is Language.GERMAN
        assert Language.parse(Language.FRENCH) is Language.FRENCH

    def test_parse_unknown_language(self):
        with pytest.raises(UnsupportedLanguageError):
            Language.parse("klingon")
        with pytest.raises(UnsupportedLanguageError):
            Language.parse(42)


class TestNlpStage:

    def test_parse_names_and_aliases(self):
        assert NlpStage.parse("segment") is NlpStage.SEGMENT
        assert NlpStage.parse("SENTENCE") is NlpStage.SEGMENT
        assert NlpStage.parse("token") is NlpStage.TOKENIZE
        assert NlpStage.parse("pos") is NlpStage.TAG
        assert NlpStage.parse("ner") is NlpStage.RECOGNIZE

    def test_parse_unknown_stage(self):
        with pytest.raises(ValueError):
            NlpStage.parse("parse")

    def test_artifact_names(self):
        assert [s.artifact_name for s in NlpStage] == ["sentence", "token", "pos", "ner"]


class TestStageGraph:

    def test_closure(self):
        assert StageGraph.closure([NlpStage.TAG]) == {NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.TAG}
        assert StageGraph.closure([]) == set()

    def test_order_breaks_ties_by_priority(self):
        assert StageGraph.order([NlpStage.RECOGNIZE, NlpStage.TAG, NlpStage.TOKENIZE, NlpStage.SEGMENT]) == [
            NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.TAG, NlpStage.RECOGNIZE
        ]

    def test_order_rejects_unclosed_set(self):
        with pytest.raises(ValueError):
            StageGraph.order([NlpStage.TAG])

    def test_resolve_all_supported_by_default(self, graph):
        assert graph.resolve(Language.ENGLISH) == [
            NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.TAG, NlpStage.RECOGNIZE
        ]

    def test_resolve_adds_dependencies(self, graph):
        assert graph.resolve(Language.ENGLISH, [NlpStage.RECOGNIZE]) == [
            NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.RECOGNIZE
        ]

    def test_resolve_drops_unsupported_stage(self, graph):
        assert graph.resolve(Language.GERMAN, [NlpStage.RECOGNIZE]) == []
        assert graph.resolve(Language.GERMAN, [NlpStage.RECOGNIZE, NlpStage.TAG]) == [
            NlpStage.SEGMENT, NlpStage.TOKENIZE, NlpStage.TAG
        ]

    def test_resolve_drops_stage_with_unsupported_dependency(self, graph):
        # TAG is declared for French but TOKENIZE is not
        assert graph.resolve(Language.FRENCH) == [NlpStage.SEGMENT]

    def test_resolve_empty_request(self, graph):
        assert graph.resolve(Language.ENGLISH, []) == []

    def test_unknown_language(self, graph):
        assert not graph.is_supported(Language.ITALIAN)
        with pytest.raises(UnsupportedLanguageError):
            graph.resolve(Language.ITALIAN)
