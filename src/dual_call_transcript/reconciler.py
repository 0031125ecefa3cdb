"""
Source comparison: decide who said what from which channel heard it.

The microphone hears the host, but also whatever the speakers play. The
system channel hears only the guest. So when both channels produce nearly
the same words at nearly the same time, it was the guest, and the mic copy
is echo.

State is one slot per source. A slot is overwritten if a newer transcript
for the same source arrives before the pair resolves.
"""

import logging
import re
import threading
from typing import List, Optional

from .models import PendingTranscript, ReconciledTranscript, SourceKind, Speaker

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")


def _normalize(text: str) -> str:
    return _PUNCTUATION.sub("", text.lower()).strip()


def text_similarity(a: str, b: str) -> float:
    """Word-overlap ratio in [0, 1] after lowercasing and stripping punctuation.

    Counts the words of `a` that also occur in `b`, divided by the word count
    of the longer text.
    """
    norm_a = _normalize(a or "")
    norm_b = _normalize(b or "")
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0

    words_a = norm_a.split()
    words_b = norm_b.split()
    vocabulary_b = set(words_b)
    overlap = sum(1 for word in words_a if word in vocabulary_b)
    return overlap / max(len(words_a), len(words_b))


class Reconciler:
    """Pairs microphone and system transcripts and resolves attribution.

    Args:
        similarity_threshold: At or above this, a close pair is one utterance.
        timing_window_ms: Pairs further apart than this are unrelated.
        dual_stream: False when only one lane exists; every transcript is
            then emitted immediately with its channel's speaker.
    """

    def __init__(
        self,
        similarity_threshold: float = 0.8,
        timing_window_ms: int = 2000,
        dual_stream: bool = True,
    ):
        self.similarity_threshold = similarity_threshold
        self.timing_window_ms = timing_window_ms
        self.dual_stream = dual_stream

        self._mic_slot: Optional[PendingTranscript] = None
        self._system_slot: Optional[PendingTranscript] = None
        self._lock = threading.Lock()

        # Stats
        self.overwritten = 0
        self.echoes_merged = 0

    @property
    def pending(self) -> List[PendingTranscript]:
        with self._lock:
            return [p for p in (self._mic_slot, self._system_slot) if p is not None]

    def add(self, pending: PendingTranscript) -> List[ReconciledTranscript]:
        """Take one transcript; return whatever it resolves (possibly nothing)."""
        if not self.dual_stream:
            return [ReconciledTranscript.from_pending(pending)]

        with self._lock:
            self._store(pending)
            if self._mic_slot is None or self._system_slot is None:
                return []
            return self._resolve(self._mic_slot, self._system_slot)

    def _store(self, pending: PendingTranscript):
        if pending.source_kind is SourceKind.MICROPHONE:
            previous, self._mic_slot = self._mic_slot, pending
        else:
            previous, self._system_slot = self._system_slot, pending

        if previous is not None:
            self.overwritten += 1
            logger.warning(
                f"Unpaired {pending.source_kind.value} transcript replaced before reconciliation: "
                f"{previous.text!r}"
            )

    def _resolve(self, mic: PendingTranscript, system: PendingTranscript) -> List[ReconciledTranscript]:
        self._mic_slot = None
        self._system_slot = None

        delta_ms = abs(mic.timestamp - system.timestamp) * 1000
        if delta_ms > self.timing_window_ms:
            logger.debug(f"Pair {delta_ms:.0f}ms apart; emitting separately")
            return self._both(mic, system)

        similarity = text_similarity(mic.text, system.text)
        if similarity >= self.similarity_threshold:
            self.echoes_merged += 1
            logger.debug(f"Mic echo of system audio (similarity {similarity:.2f}); keeping guest copy")
            return [ReconciledTranscript(
                speaker=Speaker.GUEST,
                text=system.text,
                timestamp=system.timestamp,
                audio_source=SourceKind.SYSTEM,
            )]

        logger.debug(f"Simultaneous distinct speech (similarity {similarity:.2f})")
        return self._both(mic, system)

    @staticmethod
    def _both(mic: PendingTranscript, system: PendingTranscript) -> List[ReconciledTranscript]:
        ordered = [mic, system] if mic.timestamp <= system.timestamp else [system, mic]
        return [ReconciledTranscript.from_pending(p) for p in ordered]

    def flush(self) -> List[ReconciledTranscript]:
        """Emit whatever is still pending, each attributed to its own channel."""
        with self._lock:
            remaining = [p for p in (self._mic_slot, self._system_slot) if p is not None]
            self._mic_slot = None
            self._system_slot = None
        remaining.sort(key=lambda p: p.timestamp)
        return [ReconciledTranscript.from_pending(p) for p in remaining]

    def clear(self) -> int:
        """Drop pending transcripts. Returns how many were dropped."""
        with self._lock:
            dropped = sum(1 for p in (self._mic_slot, self._system_slot) if p is not None)
            self._mic_slot = None
            self._system_slot = None
        return dropped
