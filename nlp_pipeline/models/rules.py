"""
Rule and lexicon based annotator models

Lightweight models decoded from JSON artifacts: an abbreviation-aware sentence
splitter, a regex tokenizer, a lexicon tagger with suffix rules and gazetteer
entity finders.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import re

from nlp_pipeline.models.base import (
    EntityCategory,
    EntityFinder,
    OffsetSpan,
    SentenceModel,
    TaggerModel,
    TokenizerModel,
)

DEFAULT_TOKEN_PATTERN = r"\d+(?:[.,]\d+)*|\w+(?:[-']\w+)*|[^\w\s]"

# Closing punctuation allowed between a terminator and the following space
_CLOSERS = "\"')]}»”’"
# Opening punctuation allowed before a word
_OPENERS = "\"'([{«“‘"


def _trim(text: str, start: int, end: int) -> Optional[OffsetSpan]:
    """Shrink [start, end) to exclude surrounding whitespace; None if nothing is left"""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start == end:
        return None
    return start, end


class RuleSentenceSplitter(SentenceModel):
    """Splits after terminal punctuation unless the word is a known abbreviation"""

    def __init__(self, abbreviations: Iterable[str] = (), terminators: str = ".!?"):
        self.abbreviations = {a.lower() for a in abbreviations}
        self.terminators = terminators
        self._boundary = re.compile(
            f"[{re.escape(terminators)}]+[{re.escape(_CLOSERS)}]*(?=\\s|$)"
        )

    def _is_abbreviation(self, text: str, end: int) -> bool:
        word_start = end
        while word_start > 0 and not text[word_start - 1].isspace():
            word_start -= 1
        word = text[word_start:end].rstrip(_CLOSERS).lstrip(_OPENERS)
        if word.lower() in self.abbreviations:
            return True
        # Single-letter initials such as "J."
        return len(word) == 2 and word[0].isalpha() and word[0].isupper() and word[1] == "."

    def segment(self, text: str) -> List[OffsetSpan]:
        sentences: List[OffsetSpan] = []
        start = 0
        for match in self._boundary.finditer(text):
            if self._is_abbreviation(text, match.end()):
                continue
            span = _trim(text, start, match.end())
            if span:
                sentences.append(span)
            start = match.end()
        span = _trim(text, start, len(text))
        if span:
            sentences.append(span)
        return sentences


class RegexTokenizer(TokenizerModel):
    """Tokenizes with a regular expression, keeping listed abbreviations whole"""

    def __init__(self, pattern: str = DEFAULT_TOKEN_PATTERN, abbreviations: Iterable[str] = ()):
        alternatives = [
            f"(?<!\\w){re.escape(a)}"
            for a in sorted(set(abbreviations), key=len, reverse=True)
        ]
        alternatives.append(f"(?:{pattern})")
        self._pattern = re.compile("|".join(alternatives))

    def tokenize(self, text: str) -> List[OffsetSpan]:
        return [(m.start(), m.end()) for m in self._pattern.finditer(text) if m.end() > m.start()]


class LexiconTagger(TaggerModel):
    """
    Lexicon lookup backed by suffix rules and shape heuristics

    Order of precedence per token: exact lexicon entry, lowercase entry,
    number, punctuation, capitalized non-initial word (proper noun), longest
    matching suffix rule, default tag.
    """

    def __init__(
        self,
        lexicon: Dict[str, str],
        tagset: str,
        default_tag: str = "NN",
        proper_noun_tag: Optional[str] = "NNP",
        number_tag: Optional[str] = "CD",
        punctuation_tag: Optional[str] = ".",
        suffixes: Optional[Dict[str, str]] = None
    ):
        self.lexicon = dict(lexicon)
        self.lower_lexicon = {word.lower(): tag for word, tag in lexicon.items()}
        self.tagset = tagset
        self.default_tag = default_tag
        self.proper_noun_tag = proper_noun_tag
        self.number_tag = number_tag
        self.punctuation_tag = punctuation_tag
        self.suffixes: List[Tuple[str, str]] = sorted(
            (suffixes or {}).items(), key=lambda item: len(item[0]), reverse=True
        )

    def _tag_token(self, token: str, position: int) -> str:
        if token in self.lexicon:
            return self.lexicon[token]
        if token.lower() in self.lower_lexicon:
            return self.lower_lexicon[token.lower()]
        if self.number_tag and re.fullmatch(r"\d+(?:[.,]\d+)*", token):
            return self.number_tag
        if self.punctuation_tag and all(not c.isalnum() for c in token):
            return self.punctuation_tag
        if self.proper_noun_tag and position > 0 and token[:1].isupper():
            return self.proper_noun_tag
        for suffix, tag in self.suffixes:
            if token.lower().endswith(suffix) and len(token) > len(suffix):
                return tag
        if self.proper_noun_tag and token[:1].isupper():
            return self.proper_noun_tag
        return self.default_tag

    def tag(self, tokens: List[str]) -> List[str]:
        return [self._tag_token(token, i) for i, token in enumerate(tokens)]


class GazetteerFinder(EntityFinder):
    """Longest-match lookup of known names, plus optional single-token patterns"""

    def __init__(
        self,
        category: EntityCategory,
        entries: Iterable[str] = (),
        patterns: Iterable[str] = (),
        case_sensitive: bool = True
    ):
        super().__init__(category)
        self.case_sensitive = case_sensitive
        self._entries = {self._normalize(tuple(entry.split())) for entry in entries if entry.strip()}
        self._max_length = max((len(entry) for entry in self._entries), default=0)
        flags = 0 if case_sensitive else re.IGNORECASE
        self._patterns = [re.compile(p, flags) for p in patterns]

    def _normalize(self, tokens: Sequence[str]) -> Tuple[str, ...]:
        if self.case_sensitive:
            return tuple(tokens)
        return tuple(token.lower() for token in tokens)

    def _match_at(self, tokens: List[str], i: int) -> int:
        """Length of the longest match starting at token i, 0 if none"""
        for length in range(min(self._max_length, len(tokens) - i), 0, -1):
            if self._normalize(tokens[i:i + length]) in self._entries:
                return length
        if any(p.fullmatch(tokens[i]) for p in self._patterns):
            return 1
        return 0

    def find(self, tokens: List[str]) -> List[OffsetSpan]:
        matches: List[OffsetSpan] = []
        i = 0
        while i < len(tokens):
            length = self._match_at(tokens, i)
            if length:
                matches.append((i, i + length))
                i += length
            else:
                i += 1
        return matches


def build_sentence_model(artifact: Dict[str, Any]) -> RuleSentenceSplitter:
    return RuleSentenceSplitter(
        abbreviations=artifact.get("abbreviations", []),
        terminators=artifact.get("terminators", ".!?")
    )


def build_tokenizer_model(artifact: Dict[str, Any]) -> RegexTokenizer:
    return RegexTokenizer(
        pattern=artifact.get("pattern", DEFAULT_TOKEN_PATTERN),
        abbreviations=artifact.get("abbreviations", [])
    )


def build_tagger_model(artifact: Dict[str, Any]) -> LexiconTagger:
    return LexiconTagger(
        lexicon=artifact.get("lexicon", {}),
        tagset=artifact["tagset"],
        default_tag=artifact.get("default_tag", "NN"),
        proper_noun_tag=artifact.get("proper_noun_tag", "NNP"),
        number_tag=artifact.get("number_tag", "CD"),
        punctuation_tag=artifact.get("punctuation_tag", "."),
        suffixes=artifact.get("suffixes")
    )


def build_entity_finders(artifact: Dict[str, Any]) -> List[GazetteerFinder]:
    return [
        GazetteerFinder(
            EntityCategory.parse(finder["category"]),
            entries=finder.get("entries", []),
            patterns=finder.get("patterns", []),
            case_sensitive=finder.get("case_sensitive", True)
        )
        for finder in artifact["finders"]
    ]
