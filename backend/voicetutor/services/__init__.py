"""
Services Module

Provides the conversation flow and the external services it drives:
- ASR (Automatic Speech Recognition): OpenAI Whisper API
- Chat completion: OpenAI Chat Completions
- TTS (Text-to-Speech): ElevenLabs, with an on-disk audio cache
- Audio I/O: sounddevice (imported on demand, it loads PortAudio)
- Persistence: Tortoise ORM conversation store
"""

from .asr_base import ASRService, TranscriptionResult
from .asr_openai_adapter import OpenAIWhisperService
from .audio_base import AudioIOAdapter, RecordedAudio
from .auth import AuthProvider, ProfileLoadError, StaticAuthProvider, TokenAuthProvider
from .chat_openai import OpenAIChatService
from .conversation_flow import ConversationFlowController, ConversationState
from .storage import ConversationStorageService
from .tts_base import SpeechService
from .tts_cache import AudioCache, UsageTracker
from .tts_elevenlabs import ElevenLabsSpeechService

__all__ = [
    "ASRService",
    "TranscriptionResult",
    "OpenAIWhisperService",
    "AudioIOAdapter",
    "RecordedAudio",
    "AuthProvider",
    "ProfileLoadError",
    "StaticAuthProvider",
    "TokenAuthProvider",
    "OpenAIChatService",
    "ConversationFlowController",
    "ConversationState",
    "ConversationStorageService",
    "SpeechService",
    "AudioCache",
    "UsageTracker",
    "ElevenLabsSpeechService",
]
