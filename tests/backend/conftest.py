from pathlib import Path
from typing import List, Optional

import pytest
import pytest_asyncio

from voicetutor.core.db import close_db, init_db
from voicetutor.schemas.conversation import ConversationSession, CurrentUser, StorageResult, UserProfile
from voicetutor.schemas.synthesis import SynthesisSettings
from voicetutor.services.asr_base import ASRService, TranscriptionResult
from voicetutor.services.audio_base import AudioIOAdapter, RecordedAudio
from voicetutor.services.auth import StaticAuthProvider
from voicetutor.services.chat_openai import build_chat_messages
from voicetutor.services.conversation_flow import ConversationFlowController
from voicetutor.services.storage import ConversationStorageService
from voicetutor.services.tts_base import SpeechService


TEST_DB_URL = "sqlite://:memory:"


@pytest_asyncio.fixture
async def db():
    """
    Fresh in-memory SQLite database with all tables, closed after the test.
    """
    await init_db(TEST_DB_URL, generate_schemas=True)
    yield
    await close_db()


# ---------------------------------------------------------------- fakes


class FakeAudio(AudioIOAdapter):
    """Records calls; writes a small placeholder file per utterance."""

    def __init__(self, tmp_dir: Path):
        self._tmp_dir = tmp_dir
        self._recording = False
        self.start_calls = 0
        self.stop_calls = 0
        self.routes: List[bool] = []
        self.played: List[str] = []
        self.start_error: Optional[BaseException] = None
        self.stop_error: Optional[BaseException] = None
        self.play_error: Optional[BaseException] = None

    @property
    def is_recording(self) -> bool:
        return self._recording

    async def start_recording(self) -> None:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        self._recording = True

    async def stop_recording(self) -> RecordedAudio:
        self.stop_calls += 1
        if self.stop_error is not None:
            raise self.stop_error
        self._recording = False
        path = self._tmp_dir / f"utterance_{self.stop_calls}.wav"
        path.write_bytes(b"RIFF")
        return RecordedAudio(path=str(path), duration_sec=1.0, sample_rate=16000)

    async def set_output_route(self, use_loudspeaker: bool) -> None:
        self.routes.append(use_loudspeaker)

    async def play(self, audio_path, on_start=None) -> None:
        if self.play_error is not None:
            raise self.play_error
        if on_start is not None:
            on_start()
        self.played.append(str(audio_path))


class FakeTranscriber(ASRService):
    def __init__(self, texts: Optional[List[str]] = None):
        self.texts = list(texts or [])
        self.calls = []
        self.error: Optional[BaseException] = None

    @property
    def name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    async def transcribe(self, audio_path, language=None) -> TranscriptionResult:
        self.calls.append((audio_path, language))
        if self.error is not None:
            raise self.error
        return TranscriptionResult(full_text=self.texts.pop(0) if self.texts else "")


class FakeChat:
    """Returns queued replies; keeps the messages each call would have sent."""

    def __init__(self, replies: Optional[List[str]] = None):
        self.replies = list(replies or [])
        self.calls = []
        self.error: Optional[BaseException] = None

    async def complete(self, context, instruction=None) -> str:
        self.calls.append(build_chat_messages(context, instruction))
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else "Reply"


class FakeSpeech(SpeechService):
    def __init__(self):
        super().__init__()
        self.spoken = []
        self.error: Optional[BaseException] = None

    async def speak(self, text, voice, language=None, on_start=None, on_end=None) -> None:
        if self._paused:
            return
        if self.error is not None:
            raise self.error
        if on_start is not None:
            on_start()
        self.spoken.append((text, voice, language))
        if on_end is not None:
            on_end()


class FakeStorage(ConversationStorageService):
    """In-memory gateway; set ``fail`` to make every write report failure."""

    def __init__(self):
        super().__init__(enabled=True)
        self.saved: List[ConversationSession] = []
        self.appended = []
        self.fail = False

    async def save_conversation(self, session):
        if self.fail:
            return StorageResult(success=False, error="database unavailable")
        self.saved.append(session)
        return StorageResult(success=True, data=session)

    async def append_messages(self, conversation_id, messages):
        if self.fail:
            return StorageResult(success=False, error="database unavailable")
        self.appended.append((conversation_id, list(messages)))
        return StorageResult(success=True)


# ---------------------------------------------------------------- fixtures


@pytest.fixture
def learner() -> CurrentUser:
    return CurrentUser(
        id="user-1",
        email="learner@example.com",
        profile=UserProfile(target_language="spanish", native_language="english", cefr_level="B1"),
    )


@pytest.fixture
def fake_audio(tmp_path):
    return FakeAudio(tmp_path)


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def fake_chat():
    return FakeChat(["¡Hola! ¿Cómo estás hoy?"])


@pytest.fixture
def fake_speech():
    return FakeSpeech()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def errors():
    """Errors received by the flow's error handler."""
    return []


@pytest.fixture
def flow(learner, fake_audio, fake_transcriber, fake_chat, fake_speech, fake_storage, errors):
    return ConversationFlowController(
        auth=StaticAuthProvider(learner),
        audio=fake_audio,
        transcriber=fake_transcriber,
        chat=fake_chat,
        speech=fake_speech,
        storage=fake_storage,
        error_handler=errors.append,
        tts_settings=SynthesisSettings(voice_id="voice-1"),
    )
