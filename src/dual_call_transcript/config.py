"""Pipeline configuration. Loads from CALL_TRANSCRIPT_* env vars or a .env file."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import AudioMode


class Settings(BaseSettings):
    """Tunable constants. Override via environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CALL_TRANSCRIPT_",
        env_file=".env",
        extra="ignore",
    )

    # Chunking: each lane stops/restarts its encoder every CHUNK_DURATION_MS
    CHUNK_DURATION_MS: int = Field(default=8000, gt=0)

    # Rate limiting
    MIN_INTERVAL_MS: int = Field(default=1000, ge=0)  # per source
    MAX_CHUNKS_PER_MINUTE: int = Field(default=20, gt=0)  # whole session

    # Source comparison
    SIMILARITY_THRESHOLD: float = 0.8
    TIMING_WINDOW_MS: int = Field(default=2000, ge=0)

    # Payloads smaller than this are treated as silence and never sent
    SILENCE_THRESHOLD_BYTES: int = Field(default=1000, ge=0)
    MAX_CONSECUTIVE_FAILURES: int = Field(default=3, gt=0)

    # Transcription collaborator
    TRANSCRIPTION_API_URL: str = "http://localhost:3002/api/transcribe"
    TRANSCRIPTION_HEALTH_URL: str = ""  # empty = <TRANSCRIPTION_API_URL>/health
    TRANSCRIPTION_MODEL: str = "whisper-1"
    REQUEST_TIMEOUT_S: float = Field(default=30.0, gt=0)
    HEALTH_TIMEOUT_S: float = Field(default=5.0, gt=0)

    # Capture: PCM mono, blocks of BLOCK_DURATION_S from the device callback
    SAMPLE_RATE: int = Field(default=16000, gt=0)
    BLOCK_DURATION_S: float = Field(default=0.3, gt=0)
    SILENCE_RMS_FLOOR: float = Field(default=0.005, ge=0)
    MIC_DEVICE: Optional[int] = None
    SYSTEM_DEVICE: Optional[int] = None  # None = auto-detect loopback/monitor

    AUDIO_MODE: AudioMode = AudioMode.HEADPHONES
    FALLBACK_TO_SIMULATION: bool = True

    LOG_LEVEL: str = "INFO"

    @field_validator("SIMILARITY_THRESHOLD")
    @classmethod
    def _check_ratio(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("SIMILARITY_THRESHOLD must be between 0 and 1")
        return value

    @property
    def chunk_duration(self) -> float:
        """Chunk duration in seconds."""
        return self.CHUNK_DURATION_MS / 1000.0

    @property
    def health_url(self) -> str:
        if self.TRANSCRIPTION_HEALTH_URL:
            return self.TRANSCRIPTION_HEALTH_URL
        return self.TRANSCRIPTION_API_URL.rstrip("/") + "/health"


def get_settings() -> Settings:
    return Settings()
