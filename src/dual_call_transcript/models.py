"""
Records and tagged variants shared across the pipeline.
"""

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class Speaker(Enum):
    """Who produced an utterance. There is no 'unknown' speaker."""

    HOST = "Host"
    GUEST = "Guest"


class SourceKind(Enum):
    """Physical capture channel."""

    MICROPHONE = "microphone"
    SYSTEM = "system"

    @property
    def speaker_hint(self) -> Speaker:
        """Tentative speaker implied by the channel."""
        if self is SourceKind.MICROPHONE:
            return Speaker.HOST
        return Speaker.GUEST


class PipelineMode(Enum):
    DUAL_STREAM = "DUAL_STREAM"
    SINGLE_STREAM = "SINGLE_STREAM"


class AudioMode(Enum):
    """User's listening setup.

    HEADPHONES records both lanes. SPEAKERS records only the system lane,
    since the microphone would hear the speakers anyway.
    """

    HEADPHONES = "headphones"
    SPEAKERS = "speakers"


class DispatchOutcome(Enum):
    DISPATCHED = "dispatched"
    SILENCE_SKIPPED = "silence_skipped"
    RATE_LIMITED = "rate_limited"
    FILTERED = "filtered"
    FAILED = "failed"


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of encoded audio from one source."""

    source_kind: SourceKind
    sequence_number: int
    start_time: float
    end_time: float
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class PendingTranscript:
    """A filtered transcription result waiting for reconciliation."""

    source_kind: SourceKind
    text: str
    timestamp: float

    @property
    def speaker_hint(self) -> Speaker:
        return self.source_kind.speaker_hint


@dataclass(frozen=True)
class ReconciledTranscript:
    """Final speaker attribution for one utterance."""

    speaker: Speaker
    text: str
    timestamp: float
    audio_source: SourceKind

    @classmethod
    def from_pending(cls, pending: PendingTranscript) -> "ReconciledTranscript":
        """Attribute a pending transcript to its own channel's speaker."""
        return cls(
            speaker=pending.source_kind.speaker_hint,
            text=pending.text,
            timestamp=pending.timestamp,
            audio_source=pending.source_kind,
        )


def _message_id(speaker: Speaker) -> str:
    return f"{speaker.value}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class TranscriptMessage:
    """What the consumer callback receives."""

    id: str
    timestamp: float
    speaker: Speaker
    text: str
    audio_source: SourceKind
    simulated: bool = False

    @classmethod
    def from_reconciled(cls, transcript: ReconciledTranscript) -> "TranscriptMessage":
        return cls(
            id=_message_id(transcript.speaker),
            timestamp=transcript.timestamp,
            speaker=transcript.speaker,
            text=transcript.text,
            audio_source=transcript.audio_source,
        )

    @classmethod
    def simulated_message(cls, source_kind: SourceKind, text: str) -> "TranscriptMessage":
        speaker = source_kind.speaker_hint
        return cls(
            id=_message_id(speaker),
            timestamp=time.time(),
            speaker=speaker,
            text=text,
            audio_source=source_kind,
            simulated=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "speaker": self.speaker.value,
            "text": self.text,
            "audioSource": self.audio_source.value,
            "simulated": self.simulated,
        }
