"""
HTTP client for the external transcription service.

POST multipart {audio, model, speaker, audioSource}; the reply is either
{"text": ...} or {"segments": [{"speaker": ..., "text": ...}, ...]}.
"""

import logging
from typing import Any, Optional

import httpx

from .errors import FormatError, NetworkError
from .models import Chunk

logger = logging.getLogger(__name__)


def parse_transcription_response(data: Any) -> str:
    """Extract transcript text from a response body.

    Segment speakers are ignored: attribution comes from the capture channel.

    Raises:
        FormatError: the body matches neither known shape.
    """
    if isinstance(data, dict):
        text = data.get("text")
        if isinstance(text, str):
            return text.strip()

        segments = data.get("segments")
        if isinstance(segments, list) and all(
            isinstance(s, dict) and isinstance(s.get("text"), str) for s in segments
        ):
            return " ".join(s["text"].strip() for s in segments if s["text"].strip())

    raise FormatError(f"Invalid transcription response format: {str(data)[:200]}")


class TranscriptionClient:
    """Talks to the transcription service over HTTP."""

    def __init__(
        self,
        api_url: str,
        health_url: Optional[str] = None,
        model: str = "whisper-1",
        timeout: float = 30.0,
        health_timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url
        self.health_url = health_url or api_url.rstrip("/") + "/health"
        self.model = model
        self.health_timeout = health_timeout
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings) -> "TranscriptionClient":
        return cls(
            api_url=settings.TRANSCRIPTION_API_URL,
            health_url=settings.health_url,
            model=settings.TRANSCRIPTION_MODEL,
            timeout=settings.REQUEST_TIMEOUT_S,
            health_timeout=settings.HEALTH_TIMEOUT_S,
        )

    def transcribe(self, chunk: Chunk) -> str:
        """Send one chunk and return its transcript text.

        Raises:
            NetworkError: request failed, timed out or got a non-2xx status.
            FormatError: response body was not a recognized shape.
        """
        kind = chunk.source_kind
        files = {
            "audio": (
                f"audio_{kind.value}_{chunk.sequence_number}.wav",
                chunk.payload,
                "audio/wav",
            )
        }
        data = {
            "model": self.model,
            "speaker": kind.speaker_hint.value,
            "audioSource": kind.value,
        }

        logger.debug(f"Sending {kind.value} chunk #{chunk.sequence_number} ({chunk.size} bytes) to {self.api_url}")
        try:
            response = self._client.post(self.api_url, data=data, files=files)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Transcription request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Transcription request failed: {e}") from e

        if not response.is_success:
            raise NetworkError(
                f"Transcription API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise FormatError(f"Transcription response is not JSON: {e}") from e

        return parse_transcription_response(body)

    def health_check(self) -> bool:
        """True if the service answers the health endpoint with a 2xx."""
        try:
            response = self._client.get(self.health_url, timeout=self.health_timeout)
        except httpx.TimeoutException:
            logger.warning("Transcription service check timed out")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Transcription service not available: {e}")
            return False

        if not response.is_success:
            logger.warning(f"Transcription health check returned {response.status_code}")
        return response.is_success

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
