"""
Pipeline Exception Hierarchy

Separates rejected requests from model failures that only degrade an annotation.
"""
from enum import Enum
from typing import Optional


class ErrorSeverity(Enum):
    """Severity levels for pipeline errors"""
    REJECTED = "rejected"          # Request cannot be served at all
    UNAVAILABLE = "unavailable"    # A model is missing, the stage is skipped
    TRANSIENT = "transient"        # Transfer failed, next acquire retries
    CORRUPT = "corrupt"            # Artifact present but undecodable
    INVALID = "invalid"            # Misuse of the annotation data model


class PipelineError(Exception):
    """
    Base class for annotation pipeline errors

    Attributes:
        message: Human-readable error message
        severity: ErrorSeverity level
        stage: Stage the error relates to, if any
        language: Language the error relates to, if any
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.REJECTED,
        stage: Optional[str] = None,
        language: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.stage = stage
        self.language = language
        self.original_error = original_error

    def __str__(self):
        parts = [f"{self.severity.value.upper()}: {self.message}"]
        if self.stage:
            parts.append(f"(stage: {self.stage})")
        if self.language:
            parts.append(f"(language: {self.language})")
        return " ".join(parts)


class UnsupportedLanguageError(PipelineError):
    """
    Requested language is unknown or absent from the pipeline's stage matrix

    The request is rejected; no partial annotation is produced.
    """

    def __init__(self, message: str, language: Optional[str] = None):
        super().__init__(
            message=message,
            severity=ErrorSeverity.REJECTED,
            language=language
        )


class ArtifactTransferError(PipelineError):
    """
    Remote artifact fetch failed (network or IO)

    Treated as an unavailable model for the current call only.
    """

    def __init__(self, message: str, key: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(
            message=message,
            severity=ErrorSeverity.TRANSIENT,
            original_error=original_error
        )
        self.key = key


class CorruptArtifactError(PipelineError):
    """
    A fetched or cached artifact could not be decoded into a model

    Examples: malformed JSON, engine or stage mismatch, missing spaCy package
    """

    def __init__(self, message: str, stage: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(
            message=message,
            severity=ErrorSeverity.CORRUPT,
            stage=stage,
            original_error=original_error
        )


class AnnotationError(PipelineError):
    """Invalid span or mutation of a completed annotation"""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(
            message=message,
            severity=ErrorSeverity.INVALID,
            stage=stage
        )
