"""
Dual Call Transcript

Captures microphone and system audio during live calls, transcribes each
channel through a remote service, and attributes every utterance to Host or
Guest by the channel that heard it, collapsing microphone echo of the guest.
"""

__version__ = "1.0.0"
__author__ = "Dual Call Transcript Team"
__description__ = "Dual-stream call transcription with channel-based speaker attribution"

from .config import Settings, get_settings
from .hallucination_filter import is_valid
from .models import (
    AudioMode,
    Chunk,
    PendingTranscript,
    PipelineMode,
    ReconciledTranscript,
    SourceKind,
    Speaker,
    TranscriptMessage,
)
from .reconciler import Reconciler, text_similarity
from .session import TranscriptSession

__all__ = [
    "AudioMode",
    "Chunk",
    "PendingTranscript",
    "PipelineMode",
    "ReconciledTranscript",
    "Reconciler",
    "Settings",
    "SourceKind",
    "Speaker",
    "TranscriptMessage",
    "TranscriptSession",
    "get_settings",
    "is_valid",
    "text_similarity",
]
