"""
Error taxonomy for the capture and transcription pipeline.

Components absorb and log these themselves; only session-significant
conditions are reported to the consumer, and always as strings.
"""

from typing import Optional

from .models import SourceKind


class TranscriptError(Exception):
    """Base class for pipeline errors."""


class AudioPermissionError(TranscriptError, PermissionError):
    """An audio source could not be acquired."""

    def __init__(self, source_kind: SourceKind, message: str, fatal: bool = False):
        super().__init__(message)
        self.source_kind = source_kind
        self.fatal = fatal


class NetworkError(TranscriptError):
    """Transcription request failed, timed out or returned a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceeded(TranscriptError):
    """Dispatch skipped by the rate limiter. Soft; not counted as a failure."""

    def __init__(self, message: str, per_minute: bool = False):
        super().__init__(message)
        self.per_minute = per_minute


class FormatError(TranscriptError):
    """Transcription response had an unrecognized shape."""
