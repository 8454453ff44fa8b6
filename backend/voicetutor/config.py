# voicetutor/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else None


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "Voice Tutor"
    env: str = os.getenv("ENV", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # OpenAI Whisper API Settings (for transcription)
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    whisper_api_url: str = os.getenv("WHISPER_API_URL", "https://api.openai.com/v1/audio/transcriptions")
    whisper_model: str = os.getenv("WHISPER_MODEL", "whisper-1")

    # OpenAI Chat Completion Settings (tutor replies)
    chat_api_url: str = os.getenv("CHAT_API_URL", "https://api.openai.com/v1/chat/completions")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-3.5-turbo")
    chat_max_tokens: int = int(os.getenv("CHAT_MAX_TOKENS", "150"))
    chat_temperature: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

    # ElevenLabs API Settings (for TTS)
    eleven_api_key: str | None = os.getenv("ELEVENLABS_API_KEY")
    eleven_api_base: str = os.getenv("ELEVENLABS_API_URL", "https://api.elevenlabs.io/v1")
    eleven_model_id: str = os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2")
    default_voice_id: str = os.getenv("DEFAULT_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")

    # Fallback voice per target language (ElevenLabs preset voices)
    voice_id_english: str = os.getenv("VOICE_ID_ENGLISH", "21m00Tcm4TlvDq8ikWAM")  # Rachel
    voice_id_spanish: str = os.getenv("VOICE_ID_SPANISH", "ErXwobaYiN019PkySvjV")  # Antoni
    voice_id_french: str = os.getenv("VOICE_ID_FRENCH", "EXAVITQu4vr4xnSDxMaL")  # Bella
    voice_id_german: str = os.getenv("VOICE_ID_GERMAN", "VR6AewLTigWG4xSOukaG")  # Arnold

    # Synthesized audio cache
    tts_cache_dir: str = os.getenv(
        "TTS_CACHE_DIR", os.path.join(os.path.expanduser("~"), ".cache", "voicetutor", "elevenlabs_cache")
    )
    tts_usage_stats_path: str = os.getenv(
        "TTS_USAGE_STATS_PATH", os.path.join(os.path.expanduser("~"), ".cache", "voicetutor", "usage_stats.json")
    )
    tts_cache_max_bytes: int = int(os.getenv("TTS_CACHE_MAX_BYTES", str(100 * 1024 * 1024)))  # 100MB
    tts_cache_max_age_sec: int = int(os.getenv("TTS_CACHE_MAX_AGE_SEC", str(7 * 24 * 60 * 60)))  # 7 days
    tts_optimize_interval_sec: int = int(os.getenv("TTS_OPTIMIZE_INTERVAL_SEC", str(60 * 60)))  # hourly

    # Timeout applied to every vendor HTTP call
    http_timeout_sec: float = float(os.getenv("HTTP_TIMEOUT_SEC", "60"))

    # Audio device settings (sounddevice device index, None = system default)
    audio_sample_rate: int = int(os.getenv("AUDIO_SAMPLE_RATE", "16000"))
    audio_channels: int = int(os.getenv("AUDIO_CHANNELS", "1"))
    audio_input_device: int | None = _env_optional_int("AUDIO_INPUT_DEVICE")
    audio_loudspeaker_device: int | None = _env_optional_int("AUDIO_LOUDSPEAKER_DEVICE")
    audio_earpiece_device: int | None = _env_optional_int("AUDIO_EARPIECE_DEVICE")
    use_loudspeaker: bool = _env_flag("USE_LOUDSPEAKER", "true")

    # Conversation persistence
    database_url: str = os.getenv("DATABASE_URL", "sqlite://voicetutor.sqlite3")
    enable_persistence: bool = _env_flag("ENABLE_PERSISTENCE", "true")

    # Auth (token issued elsewhere; only verified here)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    access_token: str | None = os.getenv("VOICETUTOR_ACCESS_TOKEN")

    def default_voices(self) -> dict[str, str]:
        """Fallback ElevenLabs voice per target language."""
        return {
            "english": self.voice_id_english,
            "spanish": self.voice_id_spanish,
            "french": self.voice_id_french,
            "german": self.voice_id_german,
        }


settings = Settings()  # Instantiate configuration
