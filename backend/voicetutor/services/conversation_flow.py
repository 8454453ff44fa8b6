"""
Conversation Flow Controller

Orchestrates one spoken tutoring session:

    start_conversation  -> greeting turn (chat -> speak)
    handle_user_input   -> start microphone capture
    finish_user_input   -> stop capture -> transcribe -> chat -> speak -> persist

State lives in a single ``ConversationState`` owned by the controller.
Invariant: ``is_recording`` implies ``is_active`` and not ``is_paused``.

Every failure leaving a public operation is a ``ConversationError``: it is
classified, handed to the error handler, then re-raised to the caller.
Persistence is best-effort and never raises.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Type

from .asr_base import ASRService
from .audio_base import AudioIOAdapter
from .auth import AuthProvider, ProfileLoadError
from .chat_openai import OpenAIChatService
from .prompts import GREETING_INSTRUCTION, language_code
from .storage import ConversationStorageService
from .tts_base import SpeechService
from ..core.errors import (
    ApiError,
    AudioError,
    AuthError,
    ConversationError,
    InvalidStateError,
    ProfileError,
    classify_error,
)
from ..schemas.conversation import ConversationContext, CurrentUser, Message, MessageRole
from ..schemas.synthesis import SynthesisSettings

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[ConversationError], None]


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class ConversationState:
    is_active: bool = False
    is_recording: bool = False
    is_paused: bool = False
    session_id: str = field(default_factory=new_session_id)
    context: Optional[ConversationContext] = None
    conversation_id: Optional[str] = None  # persisted session id, if one was created
    turn_in_flight: bool = False
    unsaved_messages: List[Message] = field(default_factory=list)


def log_error_handler(error: ConversationError) -> None:
    logger.error(f"[Flow] Conversation error: {error!r}")


class ConversationFlowController:
    """Drives record -> transcribe -> chat -> speak turns for one learner."""

    def __init__(
        self,
        auth: AuthProvider,
        audio: AudioIOAdapter,
        transcriber: ASRService,
        chat: OpenAIChatService,
        speech: SpeechService,
        storage: Optional[ConversationStorageService] = None,
        error_handler: Optional[ErrorHandler] = None,
        tts_settings: Optional[SynthesisSettings] = None,
    ):
        self._auth = auth
        self._audio = audio
        self._transcriber = transcriber
        self._chat = chat
        self._speech = speech
        self._storage = storage
        self.error_handler: ErrorHandler = error_handler or log_error_handler
        self._tts_settings = (tts_settings or SynthesisSettings()).model_copy()
        self._state = ConversationState()

        self.on_message_added: Optional[Callable[[Message], None]] = None
        self.on_speech_start: Optional[Callable[[], None]] = None
        self.on_speech_end: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------ lifecycle

    async def start_conversation(self) -> None:
        """
        Start a new session for the signed-in user and play the greeting.

        Raises:
        - AuthError: nobody is signed in
        - ProfileError: the profile is missing or could not be loaded
        - ApiError / SynthesisError / AudioError: greeting turn failed; the
          conversation stays active (a greeting that failed to play stays in history)
        - InvalidStateError: another turn is still in progress
        """
        if self._state.turn_in_flight:
            raise InvalidStateError("A conversation turn is already in progress")

        try:
            user = await self._load_user()
            if self._state.is_recording:
                self._state.is_recording = False
                await self._stop_capture_quietly()

            profile = user.profile
            self._state = ConversationState(
                is_active=True,
                turn_in_flight=True,
                context=ConversationContext(
                    target_language=profile.target_language,
                    native_language=profile.native_language,
                    cefr_level=profile.cefr_level,
                ),
            )
            self._speech.resume()
            logger.info(f"[Flow] Conversation started: session={self._state.session_id} "
                        f"language={profile.target_language} level={profile.cefr_level}")

            await self._open_persisted_session(user)
            await self._greet()
        except Exception as exc:
            error = self._report_error(exc, context="Failed to start conversation")
            if error is exc:
                raise
            raise error from exc
        finally:
            self._state.turn_in_flight = False

    async def _load_user(self) -> CurrentUser:
        try:
            user = await self._auth.get_current_user()
        except ProfileLoadError as e:
            raise ProfileError(f"Failed to load user profile: {e}") from e
        if user is None:
            raise AuthError("User not authenticated")
        if user.profile is None:
            raise ProfileError("User profile not available")
        return user

    async def _greet(self) -> None:
        reply = await self._chat.complete(self._state.context, instruction=GREETING_INSTRUCTION)
        self._append(MessageRole.ASSISTANT, reply)
        await self._speak(reply)
        await self._persist_pending()

    async def pause_conversation(self) -> None:
        """Pause speech and interrupt any recording. Idempotent."""
        state = self._state
        state.is_paused = True
        self._speech.pause()
        if state.is_recording:
            state.is_recording = False
            await self._stop_capture_quietly()
        logger.info("[Flow] Conversation paused")

    def resume_conversation(self) -> None:
        """Unpause; recording is not restarted."""
        self._state.is_paused = False
        self._speech.resume()
        logger.info("[Flow] Conversation resumed")

    async def end_conversation(self) -> None:
        """End the session and flush unsaved messages; history stays readable until the next start."""
        state = self._state
        was_recording = state.is_recording
        state.is_active = False
        state.is_recording = False
        state.is_paused = False
        self._speech.pause()
        if was_recording:
            await self._stop_capture_quietly()
        await self._persist_pending()
        logger.info(f"[Flow] Conversation ended: session={state.session_id}")

    # ------------------------------------------------------------------ turns

    async def handle_user_input(self) -> None:
        """
        Begin capturing the learner's utterance.

        Raises:
        - InvalidStateError: not active, paused, already recording or mid-turn
        - MicrophonePermissionError: microphone access denied
        - AudioError: capture could not start
        """
        state = self._state
        if not state.is_active or state.is_paused:
            raise InvalidStateError("Conversation not active or paused")
        if state.is_recording:
            raise InvalidStateError("Already recording")
        if state.turn_in_flight:
            raise InvalidStateError("A conversation turn is already in progress")

        state.is_recording = True
        started = False
        try:
            await self._audio.start_recording()
            started = True
        except Exception as exc:
            error = self._report_error(exc, default=AudioError, context="Failed to start recording")
            if error is exc:
                raise
            raise error from exc
        finally:
            if not started:
                state.is_recording = False

        # paused or ended while the device was opening
        if self._state is not state or not state.is_recording:
            await self._stop_capture_quietly()
            return
        logger.info("[Flow] Recording started")

    async def finish_user_input(self) -> None:
        """
        Stop capturing and run the rest of the turn.

        An empty or whitespace-only transcription drops the turn silently.

        Raises:
        - InvalidStateError: not recording
        - AudioError: capture could not be stopped
        - ApiError: transcription or chat completion failed
        - SynthesisError / AudioError: the reply could not be spoken
        """
        state = self._state
        if not state.is_recording:
            raise InvalidStateError("Not currently recording")

        state.turn_in_flight = True
        recording = None
        try:
            try:
                recording = await self._audio.stop_recording()
            except Exception as exc:
                raise classify_error(exc, default=AudioError, context="Failed to stop recording") from exc
            finally:
                state.is_recording = False

            context = state.context
            transcript = await self._transcriber.transcribe(
                recording.path, language=language_code(context.target_language)
            )
            if transcript.is_empty:
                logger.info("[Flow] Empty transcription, dropping turn")
                return

            self._append(MessageRole.USER, transcript.full_text.strip())
            reply = await self._chat.complete(context)
            self._append(MessageRole.ASSISTANT, reply)
            await self._speak(reply)
            await self._persist_pending()
        except Exception as exc:
            error = self._report_error(exc, context="Failed to process user input")
            if error is exc:
                raise
            raise error from exc
        finally:
            state.turn_in_flight = False
            if recording is not None:
                recording.cleanup()

    async def start_continuous_recording(self) -> None:
        """Press-and-hold start; same as handle_user_input()."""
        await self.handle_user_input()

    async def stop_continuous_recording(self) -> None:
        """Press-and-hold release; same as finish_user_input()."""
        await self.finish_user_input()

    # ------------------------------------------------------------------ helpers

    def _report_error(
        self,
        exc: Exception,
        default: Type[ConversationError] = ApiError,
        context: str = "",
    ) -> ConversationError:
        error = classify_error(exc, default=default, context=context)
        self.error_handler(error)
        return error

    def _append(self, role: MessageRole, content: str) -> Message:
        message = Message(role=role, content=content)
        self._state.context.conversation_history.append(message)
        self._state.unsaved_messages.append(message)
        if self.on_message_added is not None:
            self.on_message_added(message)
        return message

    async def _speak(self, text: str) -> None:
        await self._speech.speak(
            text,
            self._tts_settings,
            language=self._state.context.target_language,
            on_start=self.on_speech_start,
            on_end=self.on_speech_end,
        )

    async def _stop_capture_quietly(self) -> None:
        try:
            recording = await self._audio.stop_recording()
        except Exception as e:
            logger.warning(f"[Flow] Failed to stop recording: {e}")
            return
        recording.cleanup()

    async def _open_persisted_session(self, user: CurrentUser) -> None:
        if self._storage is None:
            return
        context = self._state.context
        session = self._storage.create_new_session(user.id, context.target_language, context.cefr_level)
        session = session.model_copy(update={"session_id": self._state.session_id})
        result = await self._storage.save_conversation(session)
        if result.success:
            self._state.conversation_id = session.id
        else:
            logger.warning(f"[Flow] Conversation will not be persisted: {result.error}")

    async def _persist_pending(self) -> None:
        state = self._state
        if self._storage is None or state.conversation_id is None or not state.unsaved_messages:
            return
        pending = list(state.unsaved_messages)
        result = await self._storage.append_messages(state.conversation_id, pending)
        if result.success:
            del state.unsaved_messages[:len(pending)]
        else:
            logger.warning(f"[Flow] Failed to persist {len(pending)} messages: {result.error}")

    # ------------------------------------------------------------------ accessors

    @property
    def session_id(self) -> str:
        return self._state.session_id

    def get_current_context(self) -> Optional[ConversationContext]:
        context = self._state.context
        return context.model_copy(deep=True) if context is not None else None

    def get_conversation_history(self) -> List[Message]:
        context = self._state.context
        return list(context.conversation_history) if context is not None else []

    def is_recording(self) -> bool:
        return self._state.is_recording

    def is_paused(self) -> bool:
        return self._state.is_paused

    def is_active(self) -> bool:
        return self._state.is_active

    def get_tts_settings(self) -> SynthesisSettings:
        return self._tts_settings.model_copy()

    def set_tts_settings(self, tts_settings: SynthesisSettings) -> None:
        self._tts_settings = tts_settings.model_copy()

    def set_speaker_enabled(self, enabled: bool) -> None:
        self._tts_settings = self._tts_settings.model_copy(update={"use_loudspeaker": enabled})

    def get_speaker_enabled(self) -> bool:
        return self._tts_settings.use_loudspeaker

    def update_language_settings(self, target_language: str, cefr_level: str) -> None:
        """Switch language/level mid-session; the next chat call uses the new prompt."""
        if self._state.context is not None:
            self._state.context.target_language = target_language
            self._state.context.cefr_level = cefr_level

    def update_native_language_settings(self, native_language: str) -> None:
        if self._state.context is not None:
            self._state.context.native_language = native_language
