"""
ElevenLabs Speech Service

Text-to-speech for tutor replies with a content-addressed audio cache in
front of the ElevenLabs API.

speak() pipeline:
1. clamp voice settings into their valid ranges
2. look the (text, settings) pair up in the cache; a fresh hit plays directly
3. on a miss call ``POST /text-to-speech/{voice_id}``, classify failures
   (429 rate limit / 402 quota / 404 voice / other), cache the bytes, play
4. update usage statistics

Eviction runs opportunistically at the start of speak(), at most once per
``tts_optimize_interval_sec``.
"""
import logging
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx

from .audio_base import AudioIOAdapter
from .prompts import VOICE_LANGUAGE_CODES, common_phrases, normalize_language, preview_text_for
from .tts_base import SpeechService
from .tts_cache import AudioCache, UsageTracker, cache_key
from ..config import settings
from ..core.errors import AudioError, ConversationError, SynthesisError, SynthesisErrorType
from ..schemas.synthesis import (
    SPEED_RANGE,
    UNIT_RANGE,
    AudioEmotion,
    AudioTag,
    CacheStats,
    ServiceStatus,
    SynthesisSettings,
    UsageStats,
    VoiceInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SEC = 60

# ElevenLabs has no emotion parameter; emotion drives the style exaggeration
EMOTION_STYLE: Dict[AudioEmotion, float] = {
    AudioEmotion.NEUTRAL: 0.0,
    AudioEmotion.CALM: 0.1,
    AudioEmotion.PROFESSIONAL: 0.1,
    AudioEmotion.FRIENDLY: 0.3,
    AudioEmotion.SAD: 0.4,
    AudioEmotion.HAPPY: 0.5,
    AudioEmotion.ANGRY: 0.6,
    AudioEmotion.EXCITED: 0.7,
}

AUDIO_TAGS: List[AudioTag] = [
    AudioTag(id="beginner-slow", name="Beginner Slow", description="Clear, slow speech for beginners",
             speed=0.7, emotion=AudioEmotion.FRIENDLY, stability=0.8, similarity_boost=0.7,
             use_case="New learners, complex vocabulary"),
    AudioTag(id="conversational", name="Conversational", description="Natural conversation pace",
             speed=1.0, emotion=AudioEmotion.NEUTRAL, stability=0.6, similarity_boost=0.5,
             use_case="Daily conversation practice"),
    AudioTag(id="excited-encouragement", name="Excited Encouragement",
             description="Energetic and motivating speech",
             speed=1.1, emotion=AudioEmotion.EXCITED, stability=0.5, similarity_boost=0.6,
             use_case="Celebrations, achievements"),
    AudioTag(id="calm-instruction", name="Calm Instruction", description="Peaceful and clear instructions",
             speed=0.9, emotion=AudioEmotion.CALM, stability=0.7, similarity_boost=0.5,
             use_case="Grammar explanations, corrections"),
    AudioTag(id="professional", name="Professional", description="Formal and business-like",
             speed=1.0, emotion=AudioEmotion.PROFESSIONAL, stability=0.8, similarity_boost=0.6,
             use_case="Business vocabulary, formal situations"),
    AudioTag(id="friendly-help", name="Friendly Help", description="Warm and supportive guidance",
             speed=0.8, emotion=AudioEmotion.FRIENDLY, stability=0.6, similarity_boost=0.5,
             use_case="Error correction, encouragement"),
    AudioTag(id="fast-advanced", name="Fast Advanced", description="Quick speech for advanced learners",
             speed=1.2, emotion=AudioEmotion.NEUTRAL, stability=0.5, similarity_boost=0.4,
             use_case="Advanced learners, native-like speed"),
    AudioTag(id="storytelling", name="Storytelling", description="Engaging narrative voice",
             speed=0.9, emotion=AudioEmotion.EXCITED, stability=0.6, similarity_boost=0.5,
             use_case="Stories, cultural content"),
]


def _clamp(value: float, bounds: tuple) -> float:
    low, high = bounds
    return max(low, min(high, value))


def clamp_settings(voice: SynthesisSettings) -> SynthesisSettings:
    """Clamp speed to [0.7, 1.2] and stability/similarity_boost to [0, 1]."""
    return voice.model_copy(update={
        "speed": _clamp(voice.speed, SPEED_RANGE),
        "stability": _clamp(voice.stability, UNIT_RANGE),
        "similarity_boost": _clamp(voice.similarity_boost, UNIT_RANGE),
    })


def _parse_retry_after(raw: Optional[str]) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SEC


def _voice_matches(voice: VoiceInfo, codes: List[str]) -> bool:
    lowered = [code.lower() for code in codes]
    if voice.language and any(code in voice.language.lower() for code in lowered):
        return True
    for verified in voice.verified_languages:
        language = str(verified.get("language") or "").lower()
        locale = str(verified.get("locale") or "").lower()
        if any(code in language or code in locale for code in lowered):
            return True
    return False


class ElevenLabsSpeechService(SpeechService):
    """ElevenLabs text-to-speech with audio caching and usage tracking"""

    def __init__(
        self,
        player: AudioIOAdapter,
        cache: Optional[AudioCache] = None,
        usage: Optional[UsageTracker] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        model_id: Optional[str] = None,
        default_voices: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self._player = player
        self.cache = cache or AudioCache()
        self.usage = usage or UsageTracker()
        self.api_key = api_key if api_key is not None else settings.eleven_api_key
        self.api_base = (api_base or settings.eleven_api_base).rstrip("/")
        self.model_id = model_id or settings.eleven_model_id
        self.default_voices = default_voices if default_voices is not None else settings.default_voices()
        self.timeout = timeout if timeout is not None else settings.http_timeout_sec
        self._transport = transport
        self._resolved_voices: Dict[str, str] = {}

    # ------------------------------------------------------------------ speak

    async def speak(
        self,
        text: str,
        voice: SynthesisSettings,
        language: Optional[str] = None,
        on_start: Optional[Callable[[], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
    ) -> None:
        if self._paused:
            logger.info("[TTS] Conversation paused, skipping speech")
            return
        if not text or not text.strip():
            logger.info("[TTS] skip empty text")
            return

        clamped = clamp_settings(voice)
        if not clamped.voice_id:
            clamped = clamped.model_copy(update={"voice_id": await self.get_default_voice_for_language(language)})

        await self.optimize_usage()

        key = cache_key(text, clamped)
        entry = self.cache.get(key)
        if entry is not None:
            logger.info(f"[TTS] Using cached audio ({key[:12]})")
            await self._play(entry.path, clamped.use_loudspeaker, on_start, on_end)
            self.usage.record(len(text), cache_hit=True)
            return

        audio = await self._request_speech(text, clamped)
        try:
            path = self.cache.put(key, audio).path
        except OSError as e:
            logger.error(f"[TTS] Failed to cache audio, playing uncached: {e}")
            with tempfile.NamedTemporaryFile(delete=False, suffix=".mp3") as tmp:
                tmp.write(audio)
            try:
                await self._play(tmp.name, clamped.use_loudspeaker, on_start, on_end)
            finally:
                Path(tmp.name).unlink(missing_ok=True)
        else:
            await self._play(path, clamped.use_loudspeaker, on_start, on_end)
        self.usage.record(len(text), cache_hit=False)

    async def generate_speech_with_emotion(
        self,
        text: str,
        emotion: AudioEmotion,
        voice: SynthesisSettings,
        language: Optional[str] = None,
    ) -> None:
        await self.speak(text, voice.model_copy(update={"emotion": emotion}), language=language)

    async def preview_voice(self, voice_id: str, sample_text: str, language: str) -> None:
        preview = SynthesisSettings(voice_id=voice_id)
        await self.speak(sample_text or preview_text_for(language), preview, language=language)

    async def _play(
        self,
        path: str,
        use_loudspeaker: bool,
        on_start: Optional[Callable[[], None]],
        on_end: Optional[Callable[[], None]],
    ) -> None:
        try:
            await self._player.set_output_route(use_loudspeaker)
            await self._player.play(path, on_start=on_start)
        except ConversationError:
            raise
        except Exception as e:
            logger.error(f"[TTS] Audio playback error: {e}")
            raise AudioError(f"Audio playback failed: {e}") from e
        finally:
            if on_end is not None:
                on_end()

    # ------------------------------------------------------------------ HTTP

    def _headers(self, accept: str = "application/json") -> Dict[str, str]:
        return {
            "xi-api-key": self.api_key or "",
            "accept": accept,
            "content-type": "application/json",
        }

    def _require_key(self) -> None:
        if not self.api_key:
            raise SynthesisError(
                SynthesisErrorType.API_DOWN,
                "ELEVENLABS_API_KEY is missing",
                suggested_actions=["Verify API key"],
            )

    async def _request_speech(self, text: str, voice: SynthesisSettings) -> bytes:
        """Call the synthesis endpoint with already clamped settings."""
        self._require_key()

        url = f"{self.api_base}/text-to-speech/{voice.voice_id}"
        voice_settings = {
            "stability": voice.stability,
            "similarity_boost": voice.similarity_boost,
            "style": EMOTION_STYLE.get(voice.emotion, 0.0),
        }
        if voice.speed != 1.0:
            voice_settings["speed"] = voice.speed
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": voice_settings,
        }

        logger.info(f"[TTS] HTTP POST {url} chars={len(text)} speed={voice.speed} "
                    f"stability={voice.stability} similarity={voice.similarity_boost}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, headers=self._headers(accept="audio/mpeg"), json=payload)
        except httpx.HTTPError as e:
            logger.error(f"[TTS] Request failed: {e!r}")
            raise SynthesisError(
                SynthesisErrorType.NETWORK_ERROR, f"ElevenLabs request failed: {type(e).__name__}"
            ) from e

        if not resp.is_success:
            error = self.handle_api_error(resp)
            logger.error(f"[TTS] Speech synthesis failed: {error!r}")
            raise error
        return resp.content

    async def _get_json(self, path: str) -> dict:
        self._require_key()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.api_base}{path}", headers=self._headers())
        except httpx.HTTPError as e:
            raise SynthesisError(
                SynthesisErrorType.NETWORK_ERROR, f"ElevenLabs request failed: {type(e).__name__}"
            ) from e
        if not resp.is_success:
            raise self.handle_api_error(resp)
        return resp.json()

    def handle_api_error(self, response: httpx.Response) -> SynthesisError:
        """Classify a non-success ElevenLabs response."""
        status = response.status_code
        message = f"HTTP {status}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("message")
            if isinstance(detail, dict):
                detail = detail.get("message") or detail.get("status")
            if detail:
                message = str(detail)

        retry_after = None
        if status == 429:
            error_type = SynthesisErrorType.RATE_LIMIT
            retry_after = _parse_retry_after(response.headers.get("retry-after"))
        elif status == 402:
            error_type = SynthesisErrorType.QUOTA_EXCEEDED
        elif status == 404:
            error_type = SynthesisErrorType.VOICE_UNAVAILABLE
        else:
            error_type = SynthesisErrorType.API_DOWN
        return SynthesisError(error_type, message, retry_after=retry_after)

    # ------------------------------------------------------------------ voices

    @staticmethod
    def _voice_from_json(voice: dict) -> VoiceInfo:
        labels = voice.get("labels") or {}
        verified = voice.get("verified_languages") or []
        language = labels.get("language") or (verified[0].get("language") if verified else None) or "en"
        return VoiceInfo(
            voice_id=voice["voice_id"],
            name=voice.get("name", ""),
            language=language,
            gender=labels.get("gender"),
            description=voice.get("description"),
            verified_languages=verified,
            labels=labels,
        )

    async def get_available_voices(self, language: str) -> List[VoiceInfo]:
        """Voices matching the language; every voice when none match."""
        data = await self._get_json("/voices")
        voices = [self._voice_from_json(v) for v in data.get("voices", [])]
        codes = VOICE_LANGUAGE_CODES.get(normalize_language(language), ["en"])
        filtered = [v for v in voices if _voice_matches(v, codes)]
        return filtered or voices

    async def get_voice_info(self, voice_id: str) -> Optional[VoiceInfo]:
        try:
            return self._voice_from_json(await self._get_json(f"/voices/{voice_id}"))
        except (SynthesisError, KeyError) as e:
            logger.warning(f"[TTS] Voice {voice_id} not available: {e}")
            return None

    async def get_default_voice_for_language(self, language: Optional[str]) -> str:
        name = normalize_language(language)
        if name in self._resolved_voices:
            return self._resolved_voices[name]

        voice_id = None
        try:
            voices = await self.get_available_voices(name)
            if voices:
                voice_id = voices[0].voice_id
        except SynthesisError as e:
            logger.warning(f"[TTS] Could not list voices for {name}, using configured default: {e.message}")
        if not voice_id:
            voice_id = self.default_voices.get(name) or settings.default_voice_id
        self._resolved_voices[name] = voice_id
        return voice_id

    # ------------------------------------------------------------------ presets

    def get_audio_tags(self) -> List[AudioTag]:
        return [tag.model_copy() for tag in AUDIO_TAGS]

    def get_audio_tag_by_id(self, tag_id: str) -> Optional[AudioTag]:
        return next((tag.model_copy() for tag in AUDIO_TAGS if tag.id == tag_id), None)

    def apply_audio_tag(self, tag_id: str, base: Optional[SynthesisSettings] = None) -> SynthesisSettings:
        """Settings from a preset, keeping the base voice and output route."""
        tag = self.get_audio_tag_by_id(tag_id)
        if tag is None:
            raise ValueError(f"Audio tag not found: {tag_id}")
        base = base or SynthesisSettings()
        return SynthesisSettings(
            voice_id=base.voice_id,
            speed=tag.speed,
            emotion=tag.emotion,
            stability=tag.stability,
            similarity_boost=tag.similarity_boost,
            use_loudspeaker=base.use_loudspeaker,
        )

    # ------------------------------------------------------------------ cache & usage

    async def preload_common_phrases(self, language: str, cefr_level: str) -> int:
        """
        Synthesize and cache (without playing) the common phrases for a level.

        Returns:
            Number of phrases newly cached; failures are logged and skipped
        """
        voice = SynthesisSettings(voice_id=await self.get_default_voice_for_language(language))
        cached = 0
        for phrase in common_phrases(language, cefr_level):
            key = cache_key(phrase, voice)
            if self.cache.get(key) is not None:
                continue
            try:
                self.cache.put(key, await self._request_speech(phrase, voice))
                cached += 1
            except (SynthesisError, OSError) as e:
                logger.error(f"[TTS] Failed to preload phrase '{phrase}': {e}")
        return cached

    def clear_audio_cache(self) -> None:
        try:
            self.cache.clear()
        except OSError as e:
            logger.error(f"[TTS] Failed to clear cache: {e}")

    def get_cache_stats(self) -> CacheStats:
        entries = self.cache.entries()
        return CacheStats(
            total_size=sum(entry.size_bytes for entry in entries),
            entry_count=len(entries),
            hit_rate=self.usage.hit_rate,
        )

    def get_usage_stats(self) -> UsageStats:
        return self.usage.snapshot()

    async def optimize_usage(self, force: bool = False) -> bool:
        """
        Evict stale/oversized cache content, at most once per interval.

        Returns:
            True when an eviction pass ran
        """
        if not force and not self.usage.should_optimize():
            return False
        try:
            removed = self.cache.evict()
        except OSError as e:
            logger.error(f"[TTS] Failed to optimize cache: {e}")
            return False
        self.usage.mark_optimized()
        logger.info(f"[TTS] Cache optimization removed {removed} entries")
        return True

    async def get_service_status(self) -> ServiceStatus:
        try:
            data = await self._get_json("/user")
        except SynthesisError as e:
            logger.warning(f"[TTS] Service status unavailable: {e.message}")
            return ServiceStatus(is_available=False, recommended_usage="minimal")

        subscription = data.get("subscription") or {}
        limit = subscription.get("character_limit")
        count = subscription.get("character_count")
        quota_remaining = limit - count if limit is not None and count is not None else None

        recommended = "normal"
        if quota_remaining is not None and quota_remaining < 1000:
            recommended = "minimal"
        elif quota_remaining is not None and quota_remaining < 5000:
            recommended = "conservative"
        return ServiceStatus(is_available=True, quota_remaining=quota_remaining, recommended_usage=recommended)
