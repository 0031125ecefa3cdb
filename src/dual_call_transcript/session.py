"""
Transcript session: owns the sources, the lanes and the reconciler.

Lifecycle: construct -> initialize() -> start() -> stop() -> cleanup().
Consumers register on_transcript / on_error callbacks; nothing raised inside
the pipeline crosses that boundary.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from .audio_capture import AudioSource, SoundDeviceSource, find_system_audio_device
from .config import Settings, get_settings
from .dispatcher import RateLimiter, TranscriptionDispatcher
from .encoder import WavEncoderSession
from .errors import AudioPermissionError
from .models import (
    AudioMode,
    PendingTranscript,
    PipelineMode,
    SourceKind,
    TranscriptMessage,
)
from .reconciler import Reconciler
from .scheduler import ChunkScheduler
from .simulation import SimulatedTranscriptFeed
from .transcription_client import TranscriptionClient

logger = logging.getLogger(__name__)

SourceFactory = Callable[[SourceKind, Optional[int]], AudioSource]


class TranscriptSession:
    """Dual-source capture session with channel-based speaker attribution."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[TranscriptionClient] = None,
        source_factory: Optional[SourceFactory] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self._owns_client = client is None
        self.source_factory = source_factory or self._default_source

        # Sources
        self.mic_source: Optional[AudioSource] = None
        self.system_source: Optional[AudioSource] = None
        self.remote_source: Optional[AudioSource] = None
        self.mode: Optional[PipelineMode] = None

        # Pipeline
        self.reconciler: Optional[Reconciler] = None
        self.dispatcher: Optional[TranscriptionDispatcher] = None
        self.scheduler: Optional[ChunkScheduler] = None
        self.simulation: Optional[SimulatedTranscriptFeed] = None

        # State
        self.recording = False
        self.muted = False
        self.simulated = False
        self._lock = threading.RLock()
        self._teardown_lock = threading.RLock()

        # Callbacks
        self._on_transcript: Optional[Callable[[TranscriptMessage], None]] = None
        self._on_error: Optional[Callable[[str], None]] = None

        # Stats
        self.session_start: Optional[float] = None
        self.transcript_count = 0

    # Callbacks

    def on_transcript(self, callback: Callable[[TranscriptMessage], None]):
        """Set callback for reconciled transcript messages."""
        self._on_transcript = callback

    def on_error(self, callback: Callable[[str], None]):
        """Set callback for human-readable error notices."""
        self._on_error = callback

    # Sources

    def _default_source(self, kind: SourceKind, device: Optional[int]) -> AudioSource:
        if kind is SourceKind.SYSTEM and device is None:
            device = find_system_audio_device()
            if device is None:
                raise AudioPermissionError(kind, "No system audio device found")
        return SoundDeviceSource(
            kind,
            device=device,
            sample_rate=self.settings.SAMPLE_RATE,
            block_duration=self.settings.BLOCK_DURATION_S,
        )

    def set_remote_source(self, source: AudioSource):
        """Use an externally fed stream (e.g. a WebRTC remote track) as guest audio.

        Must be called before initialize(); takes precedence over device capture.
        """
        if source.kind is not SourceKind.SYSTEM:
            raise ValueError("Remote source must be a system audio source")
        self.remote_source = source
        logger.info("Remote stream set for guest audio")

    def initialize(self) -> bool:
        """Acquire the microphone (required) and system audio (optional)."""
        if self.mic_source is not None:
            return True

        try:
            mic = self.source_factory(SourceKind.MICROPHONE, self.settings.MIC_DEVICE)
            mic.acquire()
        except AudioPermissionError as e:
            self._report_error(f"Microphone initialization failed: {e}")
            return False

        mic.set_muted(self.muted)
        self.mic_source = mic
        self.system_source = self._acquire_system_audio()
        self.mode = PipelineMode.DUAL_STREAM if self.system_source else PipelineMode.SINGLE_STREAM

        logger.info(
            f"Audio initialization complete: microphone=True, "
            f"system_audio={self.system_source is not None}, mode={self.mode.value}, "
            f"audio_mode={self.settings.AUDIO_MODE.value}"
        )
        return True

    def _acquire_system_audio(self) -> Optional[AudioSource]:
        try:
            if self.remote_source is not None:
                source = self.remote_source
            else:
                source = self.source_factory(SourceKind.SYSTEM, self.settings.SYSTEM_DEVICE)
            source.acquire()
            return source
        except AudioPermissionError as e:
            logger.warning(f"System audio unavailable, falling back to microphone-only mode: {e}")
            return None

    def _recording_sources(self) -> List[AudioSource]:
        if self.settings.AUDIO_MODE is AudioMode.SPEAKERS:
            return [self.system_source] if self.system_source else []
        return [s for s in (self.mic_source, self.system_source) if s is not None]

    # Lifecycle

    def _get_client(self) -> TranscriptionClient:
        if self.client is None:
            self.client = TranscriptionClient.from_settings(self.settings)
            self._owns_client = True
        return self.client

    def start(self) -> bool:
        """Start recording: live if the service is healthy, else simulated."""
        with self._lock:
            if self.recording:
                logger.warning("Session already recording")
                return True

            if self.mic_source is None:
                self._report_error("Audio not initialized. Call initialize() first.")
                return False

            sources = self._recording_sources()
            if not sources:
                self._report_error("Speakers mode requires system audio stream")
                return False

            self.session_start = time.time()
            client = self._get_client()

            if not client.health_check():
                if not self.settings.FALLBACK_TO_SIMULATION:
                    self._report_error("Transcription service unavailable")
                    return False
                self._report_error("Transcription service unavailable; using simulated transcripts")
                self.simulation = SimulatedTranscriptFeed(
                    [s.kind for s in sources], self._emit, interval=self.settings.chunk_duration
                )
                self.simulation.start()
                self.simulated = True
                self.recording = True
                return True

            settings = self.settings
            self.reconciler = Reconciler(
                similarity_threshold=settings.SIMILARITY_THRESHOLD,
                timing_window_ms=settings.TIMING_WINDOW_MS,
                dual_stream=len(sources) == 2,
            )
            self.dispatcher = TranscriptionDispatcher(
                client,
                on_transcript=self._handle_pending,
                on_error=self._report_error,
                rate_limiter=RateLimiter(
                    min_interval=settings.MIN_INTERVAL_MS / 1000.0,
                    max_per_minute=settings.MAX_CHUNKS_PER_MINUTE,
                ),
                silence_threshold=settings.SILENCE_THRESHOLD_BYTES,
                max_consecutive_failures=settings.MAX_CONSECUTIVE_FAILURES,
            )
            encoders = [
                WavEncoderSession(
                    source,
                    sample_rate=settings.SAMPLE_RATE,
                    silence_rms_floor=settings.SILENCE_RMS_FLOOR,
                )
                for source in sources
            ]
            self.scheduler = ChunkScheduler(
                encoders, self.dispatcher.dispatch, chunk_duration=settings.chunk_duration
            )
            self.scheduler.start()
            self.recording = True

            logger.info(
                f"Recording started: {', '.join(s.kind.value for s in sources)} "
                f"({'reconciling' if self.reconciler.dual_stream else 'single lane'})"
            )
            return True

    def _on_pipeline_thread(self) -> bool:
        """True inside a consumer callback fired from a dispatch or simulation thread."""
        scheduler, simulation = self.scheduler, self.simulation
        return bool(
            (scheduler is not None and scheduler.in_dispatch_thread())
            or (simulation is not None and simulation.in_feed_thread())
        )

    def _defer(self, target: Callable, *args):
        # A pipeline thread cannot wait for itself to finish
        logger.info(f"{target.__name__.strip('_')} requested from a pipeline thread; finishing in background")
        threading.Thread(target=target, args=args, name="session-teardown").start()

    def stop(self, cancel_pending: bool = False):
        """Stop recording.

        In-flight chunks are transcribed and pending transcripts emitted,
        unless cancel_pending is set; then they are dropped with a warning.
        Called from inside a callback, the stop completes on a background
        thread and `recording` turns False once it has.
        """
        if self._on_pipeline_thread():
            self._defer(self._stop, cancel_pending)
            return
        self._stop(cancel_pending)

    def _stop(self, cancel_pending: bool = False):
        with self._teardown_lock:
            with self._lock:
                if not self.recording:
                    return
                simulation = self.simulation
                scheduler = self.scheduler

            if simulation:
                simulation.stop()

            if scheduler:
                scheduler.stop(cancel_pending=cancel_pending)
                for encoder in scheduler.encoders.values():
                    encoder.close()

            with self._lock:
                if self.reconciler:
                    if cancel_pending:
                        dropped = self.reconciler.clear()
                        if dropped:
                            logger.warning(f"Dropped {dropped} unreconciled transcript(s) on cancel")
                    else:
                        for transcript in self.reconciler.flush():
                            self._emit(TranscriptMessage.from_reconciled(transcript))

                self.simulation = None
                self.simulated = False
                self.recording = False

        runtime = time.time() - self.session_start if self.session_start else 0
        logger.info(f"Recording stopped: {self.transcript_count} transcripts in {runtime:.1f}s")

    def cleanup(self):
        """Stop everything and release all sources. Safe from any state."""
        if self._on_pipeline_thread():
            self._defer(self._cleanup)
            return
        self._cleanup()

    def _cleanup(self):
        with self._teardown_lock:
            self._stop()
            self._release()

        logger.info("Session cleaned up")

    def _release(self):
        with self._lock:
            for source in (self.mic_source, self.system_source):
                if source is not None:
                    source.release()
            if self.reconciler:
                self.reconciler.clear()

            self.mic_source = None
            self.system_source = None
            self.remote_source = None
            self.mode = None
            self.scheduler = None
            self.dispatcher = None
            self.reconciler = None

            if self._owns_client and self.client is not None:
                self.client.close()
                self.client = None

    # Mute

    def set_muted(self, muted: bool):
        """Mute/unmute the microphone. Encoders keep running."""
        self.muted = muted
        if self.mic_source is not None:
            self.mic_source.set_muted(muted)

    def is_muted(self) -> bool:
        return self.muted

    # Pipeline plumbing

    def _handle_pending(self, pending: PendingTranscript):
        with self._lock:
            for transcript in self.reconciler.add(pending):
                self._emit(TranscriptMessage.from_reconciled(transcript))

    def _emit(self, message: TranscriptMessage):
        self.transcript_count += 1
        if self._on_transcript is None:
            logger.warning("No transcript callback registered")
            return
        try:
            self._on_transcript(message)
        except Exception as e:
            logger.error(f"Transcript callback raised: {e}")

    def _report_error(self, message: str):
        logger.error(message)
        if self._on_error is None:
            return
        try:
            self._on_error(message)
        except Exception as e:
            logger.error(f"Error callback raised: {e}")

    # Status

    def status(self) -> Dict:
        """Snapshot of the session for display or health checks."""
        status = {
            'initialized': self.mic_source is not None,
            'has_system_audio': self.system_source is not None,
            'recording': self.recording,
            'muted': self.muted,
            'simulated': self.simulated,
            'mode': self.mode.value if self.mode else None,
            'audio_mode': self.settings.AUDIO_MODE.value,
            'transcripts': self.transcript_count,
        }
        if self.dispatcher:
            status.update(self.dispatcher.get_stats())
        if self.scheduler:
            status['scheduler'] = self.scheduler.get_stats()
        return status

    def __enter__(self):
        if not self.initialize():
            raise RuntimeError("Microphone unavailable")
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
