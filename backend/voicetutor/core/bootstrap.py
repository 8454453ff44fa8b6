# voicetutor/core/bootstrap.py
"""
Composition root.
Builds a ConversationFlowController with its collaborators from settings;
any collaborator can be passed in explicitly (tests, alternative devices).
"""
import logging
from typing import Optional

from ..config import settings
from ..schemas.synthesis import SynthesisSettings
from ..services.asr_base import ASRService
from ..services.asr_openai_adapter import OpenAIWhisperService
from ..services.audio_base import AudioIOAdapter
from ..services.auth import AuthProvider, TokenAuthProvider
from ..services.chat_openai import OpenAIChatService
from ..services.conversation_flow import ConversationFlowController, ErrorHandler
from ..services.storage import ConversationStorageService
from ..services.tts_base import SpeechService
from ..services.tts_elevenlabs import ElevenLabsSpeechService

logger = logging.getLogger(__name__)


def build_speech_service(audio: AudioIOAdapter) -> ElevenLabsSpeechService:
    if not settings.eleven_api_key:
        logger.warning("[bootstrap] ELEVENLABS_API_KEY not set -> only cached audio can be played.")
    return ElevenLabsSpeechService(player=audio)


def build_conversation_flow(
    auth: Optional[AuthProvider] = None,
    audio: Optional[AudioIOAdapter] = None,
    transcriber: Optional[ASRService] = None,
    chat: Optional[OpenAIChatService] = None,
    speech: Optional[SpeechService] = None,
    storage: Optional[ConversationStorageService] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> ConversationFlowController:
    """
    Wire a flow controller.

    Defaults: JWT auth from VOICETUTOR_ACCESS_TOKEN, sounddevice audio,
    Whisper transcription, OpenAI chat, ElevenLabs speech, and Tortoise
    storage when ENABLE_PERSISTENCE is on (the database must be initialized
    with ``init_db`` first).
    """
    if audio is None:
        # PortAudio is loaded on import; keep it out of the import path of callers that inject audio
        from ..services.audio_sounddevice import SoundDeviceAudioIO
        audio = SoundDeviceAudioIO()

    if transcriber is None:
        transcriber = OpenAIWhisperService()
        if not transcriber.is_available():
            logger.warning("[bootstrap] OPENAI_API_KEY not set -> transcription and chat will fail.")

    if storage is None and settings.enable_persistence:
        storage = ConversationStorageService()

    return ConversationFlowController(
        auth=auth or TokenAuthProvider(settings.access_token),
        audio=audio,
        transcriber=transcriber,
        chat=chat or OpenAIChatService(),
        speech=speech or build_speech_service(audio),
        storage=storage,
        error_handler=error_handler,
        tts_settings=SynthesisSettings(use_loudspeaker=settings.use_loudspeaker),
    )
