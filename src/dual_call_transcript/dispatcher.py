"""
Transcription dispatcher: the gate between finished chunks and the network.

Silent chunks and rate-limited chunks are skipped without a request.
Failures are counted per source; a run of them marks the source degraded
and tells the consumer, but never stops the session.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Set

from . import hallucination_filter
from .errors import FormatError, NetworkError, RateLimitExceeded
from .models import Chunk, DispatchOutcome, PendingTranscript, SourceKind
from .transcription_client import TranscriptionClient

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Minimum interval per source plus a cap per rolling minute.

    Never blocks: acquire() either records the dispatch or raises
    RateLimitExceeded.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        max_per_minute: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval
        self.max_per_minute = max_per_minute
        self.clock = clock
        self.call_timestamps: Deque[float] = deque()
        self._last_dispatch: Dict[SourceKind, float] = {}
        self._lock = threading.Lock()

    def acquire(self, source_kind: SourceKind):
        """Claim a dispatch slot for source_kind.

        Raises:
            RateLimitExceeded: too soon after this source's last dispatch, or
                the per-minute cap is used up.
        """
        with self._lock:
            now = self.clock()
            while self.call_timestamps and now - self.call_timestamps[0] >= WINDOW_SECONDS:
                self.call_timestamps.popleft()

            last = self._last_dispatch.get(source_kind)
            if last is not None and now - last < self.min_interval:
                raise RateLimitExceeded(
                    f"{source_kind.value} dispatch {(now - last) * 1000:.0f}ms after the previous one "
                    f"(minimum {self.min_interval * 1000:.0f}ms)"
                )

            if len(self.call_timestamps) >= self.max_per_minute:
                raise RateLimitExceeded(
                    f"Rate limit exceeded: {self.max_per_minute} transcriptions per minute",
                    per_minute=True,
                )

            self.call_timestamps.append(now)
            self._last_dispatch[source_kind] = now

    def reset(self):
        with self._lock:
            self.call_timestamps.clear()
            self._last_dispatch.clear()


class TranscriptionDispatcher:
    """Filters, rate-limits and sends chunks; emits PendingTranscripts."""

    def __init__(
        self,
        client: TranscriptionClient,
        on_transcript: Callable[[PendingTranscript], None],
        on_error: Optional[Callable[[str], None]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        silence_threshold: int = 1000,
        max_consecutive_failures: int = 3,
    ):
        self.client = client
        self.on_transcript = on_transcript
        self.on_error = on_error
        self.rate_limiter = rate_limiter or RateLimiter()
        self.silence_threshold = silence_threshold
        self.max_consecutive_failures = max_consecutive_failures

        self.failure_counts: Dict[SourceKind, int] = {kind: 0 for kind in SourceKind}
        self.degraded: Set[SourceKind] = set()
        self.outcomes: Dict[DispatchOutcome, int] = {outcome: 0 for outcome in DispatchOutcome}
        self._lock = threading.Lock()

    def dispatch(self, chunk: Chunk) -> DispatchOutcome:
        """Process one chunk end to end."""
        outcome = self._dispatch(chunk)
        with self._lock:
            self.outcomes[outcome] += 1
        return outcome

    def _dispatch(self, chunk: Chunk) -> DispatchOutcome:
        kind = chunk.source_kind

        if chunk.size < self.silence_threshold:
            logger.debug(f"Skipping small {kind.value} chunk #{chunk.sequence_number} ({chunk.size} bytes)")
            return DispatchOutcome.SILENCE_SKIPPED

        try:
            self.rate_limiter.acquire(kind)
        except RateLimitExceeded as e:
            logger.warning(f"Rate limiting {kind.value} chunk #{chunk.sequence_number}: {e}")
            if e.per_minute:
                self._notify(f"{e}. Please wait before continuing.")
            return DispatchOutcome.RATE_LIMITED

        try:
            text = self.client.transcribe(chunk)
        except (NetworkError, FormatError) as e:
            self._record_failure(kind, e)
            return DispatchOutcome.FAILED

        self._record_success(kind)

        text = text.strip()
        if not hallucination_filter.is_valid(text):
            logger.debug(f"Filtered out {kind.value} transcript: {text!r}")
            return DispatchOutcome.FILTERED

        logger.info(f"[{kind.speaker_hint.value.upper()}] {text}")
        self.on_transcript(PendingTranscript(
            source_kind=kind,
            text=text,
            timestamp=chunk.end_time,
        ))
        return DispatchOutcome.DISPATCHED

    def _record_failure(self, kind: SourceKind, error: Exception):
        with self._lock:
            self.failure_counts[kind] += 1
            count = self.failure_counts[kind]
            newly_degraded = count >= self.max_consecutive_failures and kind not in self.degraded
            if newly_degraded:
                self.degraded.add(kind)

        logger.error(f"Transcription failed for {kind.value} ({count}/{self.max_consecutive_failures}): {error}")
        if newly_degraded:
            self._notify(
                f"Transcription failing for {kind.speaker_hint.value} ({kind.value} audio) after "
                f"{count} consecutive errors; consider switching to degraded mode"
            )

    def _record_success(self, kind: SourceKind):
        with self._lock:
            self.failure_counts[kind] = 0
            recovered = kind in self.degraded
            self.degraded.discard(kind)
        if recovered:
            logger.info(f"Transcription for {kind.value} audio recovered")

    def _notify(self, message: str):
        if self.on_error is None:
            return
        try:
            self.on_error(message)
        except Exception as e:
            logger.error(f"Error callback raised: {e}")

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                'outcomes': {outcome.value: n for outcome, n in self.outcomes.items()},
                'failure_counts': {kind.value: n for kind, n in self.failure_counts.items()},
                'degraded': sorted(kind.value for kind in self.degraded),
            }
