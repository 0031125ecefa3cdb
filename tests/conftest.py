"""
Pytest configuration and fixtures for Dual Call Transcript tests.
"""

import os
import sys
import threading
import time

import numpy as np
import pytest

# Add src to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from dual_call_transcript.audio_capture import PushAudioSource
from dual_call_transcript.config import Settings
from dual_call_transcript.errors import AudioPermissionError, NetworkError
from dual_call_transcript.models import SourceKind


SAMPLE_RATE = 16000


@pytest.fixture
def sample_audio_data():
    """Generate sample audio data for testing."""
    duration = 1.0  # 1 second
    frequency = 440  # A4 note

    t = np.linspace(0, duration, int(SAMPLE_RATE * duration), False)
    audio_data = (0.5 * np.sin(2 * np.pi * frequency * t)).astype(np.float32)

    return audio_data, SAMPLE_RATE


@pytest.fixture
def loud_block():
    """0.3s of tone, well above the silence floor."""
    t = np.linspace(0, 0.3, int(SAMPLE_RATE * 0.3), False)
    return (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


@pytest.fixture
def silent_block():
    """0.3s of digital silence."""
    return np.zeros(int(SAMPLE_RATE * 0.3), dtype=np.float32)


@pytest.fixture
def make_settings():
    """Settings factory that ignores the environment's .env file."""
    def _make(**overrides):
        values = dict(
            CHUNK_DURATION_MS=60000,
            MIN_INTERVAL_MS=0,
            MAX_CHUNKS_PER_MINUTE=100,
            TRANSCRIPTION_API_URL="http://transcriber.test/api/transcribe",
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


class FakeTranscriptionClient:
    """Stands in for TranscriptionClient; answers per source."""

    def __init__(self, texts=None, healthy=True, error=None):
        self.texts = texts or {}
        self.healthy = healthy
        self.error = error
        self.calls = []
        self.closed = False
        self.lock = threading.Lock()

    def health_check(self):
        return self.healthy

    def transcribe(self, chunk):
        with self.lock:
            self.calls.append(chunk)
        if self.error is not None:
            raise self.error
        return self.texts.get(chunk.source_kind, "")

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeTranscriptionClient


class PushSourceFactory:
    """Source factory for sessions that hands out PushAudioSources."""

    def __init__(self, mic_available=True, system_available=True):
        self.mic_available = mic_available
        self.system_available = system_available
        self.sources = {}
        self.devices = {}

    def __call__(self, kind, device):
        available = self.mic_available if kind is SourceKind.MICROPHONE else self.system_available
        if not available:
            raise AudioPermissionError(
                kind, f"{kind.value} access denied", fatal=kind is SourceKind.MICROPHONE
            )
        source = PushAudioSource(kind)
        self.sources[kind] = source
        self.devices[kind] = device
        return source


@pytest.fixture
def source_factory():
    return PushSourceFactory


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll predicate until it is true or timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def network_error():
    return NetworkError("Transcription API error: 503 Service Unavailable", status_code=503)
