"""
OpenAI Whisper API Adapter

Submits a recorded utterance plus a language hint to the Whisper
transcription endpoint and returns plain text.
"""
import logging
import os
from typing import Optional

import httpx

from .asr_base import ASRService, TranscriptionResult
from ..config import settings
from ..core.errors import ApiError

logger = logging.getLogger(__name__)

_MIME_TYPES = {
    ".wav": "audio/wav",
    ".m4a": "audio/m4a",
    ".mp3": "audio/mpeg",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
}


class OpenAIWhisperService(ASRService):
    """OpenAI Whisper API Service"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.api_url = api_url or settings.whisper_api_url
        self.model = model or settings.whisper_model
        self.timeout = timeout if timeout is not None else settings.http_timeout_sec
        self._transport = transport

    @property
    def name(self) -> str:
        return "OpenAI Whisper API"

    def is_available(self) -> bool:
        """Check if API key is configured"""
        return bool(self.api_key)

    async def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
    ) -> TranscriptionResult:
        if not self.is_available():
            raise ApiError(f"{self.name}: API key not configured", recoverable=False)

        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = {
            "model": self.model,
            "response_format": "json",
            "temperature": 0.0,  # most deterministic decoding
        }
        if language:
            data["language"] = language

        filename = os.path.basename(audio_path) or "recording.wav"
        mime = _MIME_TYPES.get(os.path.splitext(filename)[1].lower(), "application/octet-stream")

        logger.info(f"[ASR] POST {self.api_url} model={self.model} language={language}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                with open(audio_path, "rb") as f:
                    files = {"file": (filename, f, mime)}
                    resp = await client.post(self.api_url, headers=headers, data=data, files=files)
                resp.raise_for_status()
                result = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"[ASR] Whisper API error: HTTP {status}")
            raise ApiError(f"Speech-to-text failed: HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"[ASR] Whisper request failed: {e!r}")
            raise ApiError(f"Speech-to-text failed: {type(e).__name__}") from e
        except OSError as e:
            raise ApiError(f"Speech-to-text failed: cannot read recording ({e})") from e

        full_text = (result.get("text") or "").strip()
        logger.info(f"[ASR] Transcription: '{full_text[:60]}'")
        return TranscriptionResult(
            full_text=full_text,
            language=result.get("language"),
            duration_sec=result.get("duration"),
        )
