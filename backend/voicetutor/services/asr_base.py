"""
ASR Service Abstract Interface

Provides a unified interface for speech-to-text providers used by the
conversation flow (OpenAI Whisper API / others).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class TranscriptionResult:
    """Complete transcription result"""
    full_text: str  # Plain text of the utterance (may be empty for silence)
    language: Optional[str] = None  # Detected language
    duration_sec: Optional[float] = None  # Total audio duration

    @property
    def is_empty(self) -> bool:
        return not self.full_text.strip()


class ASRService(ABC):
    """ASR Service Abstract Base Class"""

    @abstractmethod
    async def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
    ) -> TranscriptionResult:
        """
        Transcribe a recorded utterance

        Parameters:
        - audio_path: Path of the recorded audio file
        - language: Optional ISO language hint (e.g., "en", "es")

        Returns:
        - TranscriptionResult

        Raises:
        - ApiError: backend unreachable or non-2xx response
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if service is available"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Service name (e.g., "OpenAI Whisper API")"""
        pass
