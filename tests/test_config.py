"""
Tests for config module.
"""

import pytest
from pydantic import ValidationError

from dual_call_transcript.config import Settings
from dual_call_transcript.models import AudioMode


class TestSettings:
    """Test cases for Settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.CHUNK_DURATION_MS == 8000
        assert settings.chunk_duration == 8.0
        assert settings.MIN_INTERVAL_MS == 1000
        assert settings.MAX_CHUNKS_PER_MINUTE == 20
        assert settings.SIMILARITY_THRESHOLD == 0.8
        assert settings.TIMING_WINDOW_MS == 2000
        assert settings.SILENCE_THRESHOLD_BYTES == 1000
        assert settings.MAX_CONSECUTIVE_FAILURES == 3
        assert settings.AUDIO_MODE is AudioMode.HEADPHONES
        assert settings.FALLBACK_TO_SIMULATION is True

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CALL_TRANSCRIPT_CHUNK_DURATION_MS", "5000")
        monkeypatch.setenv("CALL_TRANSCRIPT_AUDIO_MODE", "speakers")
        monkeypatch.setenv("CALL_TRANSCRIPT_MIC_DEVICE", "4")

        settings = Settings(_env_file=None)

        assert settings.chunk_duration == 5.0
        assert settings.AUDIO_MODE is AudioMode.SPEAKERS
        assert settings.MIC_DEVICE == 4

    def test_unprefixed_environment_ignored(self, monkeypatch):
        monkeypatch.setenv("CHUNK_DURATION_MS", "5000")

        assert Settings(_env_file=None).CHUNK_DURATION_MS == 8000

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("CALL_TRANSCRIPT_SIMILARITY_THRESHOLD=0.65\n")

        settings = Settings(_env_file=env_file)

        assert settings.SIMILARITY_THRESHOLD == 0.65

    def test_health_url_derived_from_api_url(self):
        settings = Settings(_env_file=None, TRANSCRIPTION_API_URL="http://host:3002/api/transcribe/")

        assert settings.health_url == "http://host:3002/api/transcribe/health"

    def test_explicit_health_url(self):
        settings = Settings(_env_file=None, TRANSCRIPTION_HEALTH_URL="http://host:3002/health")

        assert settings.health_url == "http://host:3002/health"

    @pytest.mark.parametrize("value", [-0.1, 1.5])
    def test_similarity_threshold_range(self, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, SIMILARITY_THRESHOLD=value)

    def test_chunk_duration_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, CHUNK_DURATION_MS=0)
