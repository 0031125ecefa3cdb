"""
Encoder sessions: turn a continuous audio source into discrete chunks.

The contract is start, stop -> chunk, restart; any capture primitive can sit
underneath. The scheduler owns the timing.
"""

import io
import logging
import threading
import time
import wave
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from .audio_capture import AudioSource
from .models import Chunk, SourceKind

logger = logging.getLogger(__name__)


class EncoderSession(ABC):
    """Start/stop/restart cycle over one audio source."""

    source_kind: SourceKind

    @abstractmethod
    def start(self):
        """Begin buffering audio for a new chunk."""

    @abstractmethod
    def stop(self) -> Optional[Chunk]:
        """Stop buffering and package what was captured.

        Returns None when no audio arrived since start().
        """

    @abstractmethod
    def restart(self):
        """Begin the next chunk immediately after stop()."""

    def close(self):
        """Detach from the source."""


def float32_to_pcm16(audio: np.ndarray) -> bytes:
    """Convert float32 [-1, 1] samples to 16-bit PCM bytes."""
    samples = (audio * 32767).clip(-32768, 32767).astype(np.int16)
    return samples.tobytes()


def encode_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    """Wrap mono float32 samples in a 16-bit WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(float32_to_pcm16(audio))
    return buffer.getvalue()


class WavEncoderSession(EncoderSession):
    """Buffers blocks from an AudioSource and emits WAV chunks.

    Blocks quieter than silence_rms_floor are counted but not kept, so a
    silent chunk encodes to a header-only payload that the dispatcher's
    size heuristic will skip.
    """

    def __init__(
        self,
        source: AudioSource,
        sample_rate: int = 16000,
        silence_rms_floor: float = 0.005,
    ):
        self.source = source
        self.source_kind = source.kind
        self.sample_rate = sample_rate
        self.silence_rms_floor = silence_rms_floor

        self._lock = threading.Lock()
        self._blocks: List[np.ndarray] = []
        self._received = 0
        self._recording = False
        self._start_time = 0.0
        self._stopped_at: Optional[float] = None
        self._sequence = 0

        # Gap between the last stop() and restart(), in seconds
        self.last_gap = 0.0
        self.max_gap = 0.0

        source.set_block_handler(self._on_block)

    @property
    def is_recording(self) -> bool:
        return self._recording

    def _on_block(self, block: np.ndarray):
        with self._lock:
            if not self._recording:
                return
            self._received += 1
            rms = float(np.sqrt(np.mean(block ** 2))) if block.size else 0.0
            if rms >= self.silence_rms_floor:
                self._blocks.append(block.copy())

    def start(self):
        with self._lock:
            self._blocks = []
            self._received = 0
            self._start_time = time.time()
            self._recording = True

    def stop(self) -> Optional[Chunk]:
        with self._lock:
            if not self._recording:
                return None
            self._recording = False
            end_time = time.time()
            self._stopped_at = time.monotonic()
            blocks, received = self._blocks, self._received
            self._blocks = []
            self._received = 0

        if received == 0:
            logger.debug(f"No {self.source_kind.value} audio captured since last start")
            return None

        audio = np.concatenate(blocks) if blocks else np.zeros(0, dtype=np.float32)
        self._sequence += 1
        chunk = Chunk(
            source_kind=self.source_kind,
            sequence_number=self._sequence,
            start_time=self._start_time,
            end_time=end_time,
            payload=encode_wav(audio, self.sample_rate),
        )
        logger.debug(
            f"{self.source_kind.value} chunk #{chunk.sequence_number}: "
            f"{len(blocks)}/{received} voiced blocks, {chunk.size} bytes"
        )
        return chunk

    def restart(self):
        self.start()
        if self._stopped_at is not None:
            self.last_gap = time.monotonic() - self._stopped_at
            self.max_gap = max(self.max_gap, self.last_gap)
            if self.last_gap > 0.2:
                logger.warning(f"{self.source_kind.value} restart gap {self.last_gap * 1000:.0f}ms")

    def close(self):
        with self._lock:
            self._recording = False
            self._blocks = []
        self.source.set_block_handler(None)
