"""
sounddevice Audio Adapter

Records the microphone through a PortAudio input stream into a 16-bit WAV
file and plays synthesized audio (mp3/wav decoded by libsndfile through soundfile)
on the selected output device. Blocking PortAudio calls run in a thread pool
so the event loop stays free.
"""
import asyncio
import logging
import tempfile
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import numpy as np
import sounddevice as sd
import soundfile as sf

from .audio_base import AudioIOAdapter, RecordedAudio
from ..config import settings

logger = logging.getLogger(__name__)

_PERMISSION_MARKERS = ("permission", "denied", "not authorized", "unauthorized")


def _is_permission_failure(exc: Exception) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _PERMISSION_MARKERS)


def _decode(audio_path: str):
    return sf.read(audio_path, dtype="float32")


class SoundDeviceAudioIO(AudioIOAdapter):
    """Microphone capture and speaker playback via sounddevice/PortAudio."""

    def __init__(
        self,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
        input_device: Optional[int] = None,
        loudspeaker_device: Optional[int] = None,
        earpiece_device: Optional[int] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.sample_rate = sample_rate or settings.audio_sample_rate
        self.channels = channels or settings.audio_channels
        self.input_device = input_device if input_device is not None else settings.audio_input_device
        self.loudspeaker_device = (
            loudspeaker_device if loudspeaker_device is not None else settings.audio_loudspeaker_device
        )
        self.earpiece_device = earpiece_device if earpiece_device is not None else settings.audio_earpiece_device
        self._output_device = self.loudspeaker_device
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="audio-io")
        self._stream: Optional[sd.InputStream] = None
        self._frames: List[np.ndarray] = []

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    def _on_audio(self, indata, frames, time_info, status):
        if status:
            logger.debug(f"[Audio] input status: {status}")
        self._frames.append(indata.copy())

    def _open_input_stream(self) -> sd.InputStream:
        stream = sd.InputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype="int16",
            device=self.input_device,
            callback=self._on_audio,
        )
        stream.start()
        return stream

    async def start_recording(self) -> None:
        if self._stream is not None:
            raise RuntimeError("Already recording")

        self._frames = []
        loop = asyncio.get_running_loop()
        try:
            self._stream = await loop.run_in_executor(self._executor, self._open_input_stream)
        except sd.PortAudioError as e:
            if _is_permission_failure(e):
                raise PermissionError("Audio permission not granted") from e
            raise RuntimeError(f"Failed to start recording: {e}") from e
        logger.info(f"[Audio] Recording started (rate={self.sample_rate}, device={self.input_device})")

    async def stop_recording(self) -> RecordedAudio:
        stream = self._stream
        if stream is None:
            raise RuntimeError("Not currently recording")
        self._stream = None

        def _close():
            stream.stop()
            stream.close()

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, _close)
        except sd.PortAudioError as e:
            raise RuntimeError(f"Failed to stop recording: {e}") from e

        frames, self._frames = self._frames, []
        if not frames:
            raise RuntimeError("No audio recorded")

        data = np.concatenate(frames, axis=0)
        with tempfile.NamedTemporaryFile(delete=False, suffix=".wav", prefix="utterance_") as wav_file:
            path = wav_file.name
        sf.write(path, data, self.sample_rate, subtype="PCM_16")

        duration = len(data) / float(self.sample_rate)
        logger.info(f"[Audio] Recording stopped: {path} ({duration:.2f}s)")
        return RecordedAudio(path=path, duration_sec=duration, sample_rate=self.sample_rate)

    async def set_output_route(self, use_loudspeaker: bool) -> None:
        self._output_device = self.loudspeaker_device if use_loudspeaker else self.earpiece_device
        logger.debug(f"[Audio] Output routed to {'loudspeaker' if use_loudspeaker else 'earpiece'} "
                     f"(device={self._output_device})")

    async def play(self, audio_path: str, on_start: Optional[Callable[[], None]] = None) -> None:
        device = self._output_device
        loop = asyncio.get_running_loop()
        data, sample_rate = await loop.run_in_executor(self._executor, _decode, audio_path)

        def _play():
            sd.play(data, sample_rate, device=device)
            sd.wait()

        if on_start is not None:
            on_start()
        await loop.run_in_executor(self._executor, _play)
