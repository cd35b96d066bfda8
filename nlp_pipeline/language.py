"""
Languages known to the annotation pipelines
"""
from enum import Enum
from typing import Union

from nlp_pipeline.exceptions import UnsupportedLanguageError


class Language(Enum):
    """Language with its ISO 639-1 code, used as the model lookup key"""
    ENGLISH = "en"
    SPANISH = "es"
    FRENCH = "fr"
    GERMAN = "de"
    ITALIAN = "it"
    PORTUGUESE = "pt"
    DUTCH = "nl"
    RUSSIAN = "ru"
    CHINESE = "zh"

    @property
    def code(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union["Language", str]) -> "Language":
        """Resolve a member, a name ("english") or a code ("en")"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnsupportedLanguageError(f"Unknown language: {value!r}")

        normalized = value.strip()
        if normalized.upper() in cls.__members__:
            return cls[normalized.upper()]
        for language in cls:
            if language.value == normalized.lower():
                return language
        raise UnsupportedLanguageError(f"Unknown language: {value!r}", language=value)

    def __str__(self):
        return self.name
