"""
Audio I/O Abstract Interface

Microphone capture into a file plus playback of synthesized audio.
Implementations signal microphone denial by raising the builtin
``PermissionError``; the conversation flow maps it into the error taxonomy.
"""
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class RecordedAudio:
    """A finished recording on disk (caller owns the file)"""
    path: str
    duration_sec: Optional[float] = None
    sample_rate: Optional[int] = None

    def cleanup(self) -> None:
        """Delete the recording file; missing files are ignored."""
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[Audio] Could not remove recording {self.path}: {e}")


class AudioIOAdapter(ABC):
    """Audio I/O Abstract Base Class"""

    @property
    @abstractmethod
    def is_recording(self) -> bool:
        pass

    @abstractmethod
    async def start_recording(self) -> None:
        """
        Start capturing microphone audio.

        Raises:
        - PermissionError: microphone access denied
        - RuntimeError: already recording or device failure
        """
        pass

    @abstractmethod
    async def stop_recording(self) -> RecordedAudio:
        """Stop capturing and return the recorded utterance."""
        pass

    @abstractmethod
    async def set_output_route(self, use_loudspeaker: bool) -> None:
        """Route playback to the loudspeaker (True) or the earpiece (False)."""
        pass

    @abstractmethod
    async def play(self, audio_path: str, on_start: Optional[Callable[[], None]] = None) -> None:
        """Play an audio file, resolving only after playback has completed."""
        pass
