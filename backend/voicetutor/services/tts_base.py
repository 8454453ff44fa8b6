"""
Speech Synthesis Abstract Interface

What the conversation flow needs from a text-to-speech service: speak and
wait for playback, plus a pause switch that turns ``speak`` into a no-op.
"""
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..schemas.synthesis import SynthesisSettings


class SpeechService(ABC):
    """Speech Synthesis Abstract Base Class"""

    def __init__(self):
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    @abstractmethod
    async def speak(
        self,
        text: str,
        voice: SynthesisSettings,
        language: Optional[str] = None,
        on_start: Optional[Callable[[], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Synthesize ``text`` and play it, resolving after playback completes.

        Resolves immediately without doing anything while paused.

        Raises:
        - SynthesisError: backend failure
        - AudioError: playback failure
        """
        pass
