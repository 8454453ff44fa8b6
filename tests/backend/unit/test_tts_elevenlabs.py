"""
Unit tests for services.tts_elevenlabs module.
ElevenLabs calls go through httpx.MockTransport; audio lands in a temp cache.
"""
import json
import os
import tempfile
from unittest.mock import patch

import httpx
import pytest

from voicetutor.core.errors import AudioError, SynthesisError, SynthesisErrorType
from voicetutor.schemas.synthesis import AudioEmotion, SynthesisSettings
from voicetutor.services.tts_cache import AudioCache, UsageTracker, cache_key
from voicetutor.services.tts_elevenlabs import ElevenLabsSpeechService, clamp_settings

AUDIO = b"ID3fake-mp3-bytes"

VOICES = {
    "voices": [
        {"voice_id": "en-voice", "name": "Rachel", "labels": {"language": "en", "gender": "female"}},
        {"voice_id": "es-voice", "name": "Antoni", "labels": {"gender": "male"},
         "verified_languages": [{"language": "es", "locale": "es-ES"}]},
    ]
}


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _fresh(template: httpx.Response) -> httpx.Response:
    return httpx.Response(template.status_code, headers=template.headers, content=template.content)


class Backend:
    """Scripted ElevenLabs backend; records every request."""

    def __init__(self):
        self.requests = []
        self.tts_response = httpx.Response(200, content=AUDIO, headers={"content-type": "audio/mpeg"})
        self.voices_response = httpx.Response(200, json=VOICES)
        self.user_response = httpx.Response(200, json={"subscription": {"character_limit": 10000,
                                                                        "character_count": 2000}})
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if "/text-to-speech/" in request.url.path:
            return _fresh(self.tts_response)
        if request.url.path.endswith("/voices"):
            return _fresh(self.voices_response)
        if request.url.path.endswith("/user"):
            return _fresh(self.user_response)
        return httpx.Response(404, json={"detail": "not found"})

    @property
    def tts_requests(self):
        return [r for r in self.requests if "/text-to-speech/" in r.url.path]


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(tmp_path, backend, fake_audio, clock):
    return ElevenLabsSpeechService(
        player=fake_audio,
        cache=AudioCache(cache_dir=str(tmp_path / "cache"), max_bytes=10_000, max_age_sec=3600, clock=clock),
        usage=UsageTracker(stats_path=str(tmp_path / "usage.json"), optimize_interval_sec=600, clock=clock),
        api_key="test-key",
        api_base="https://api.elevenlabs.test/v1",
        model_id="eleven_multilingual_v2",
        default_voices={"english": "fallback-en", "spanish": "fallback-es"},
        transport=httpx.MockTransport(backend),
    )


def _sent_voice_settings(request: httpx.Request) -> dict:
    return json.loads(request.content)["voice_settings"]


class TestSpeak:
    """Tests for speak(): cache, request payload and playback."""

    @pytest.mark.asyncio
    async def test_second_identical_call_is_a_cache_hit(self, service, backend, fake_audio):
        voice = SynthesisSettings(voice_id="voice-1")

        await service.speak("Hola, ¿qué tal?", voice)
        await service.speak("Hola, ¿qué tal?", voice)

        assert len(backend.tts_requests) == 1
        assert len(fake_audio.played) == 2
        stats = service.get_usage_stats()
        assert stats.total_requests == 2
        assert stats.total_characters == 2 * len("Hola, ¿qué tal?")
        assert stats.cache_hit_rate == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_request_shape(self, service, backend):
        await service.speak("Hello", SynthesisSettings(voice_id="voice-1"))

        request = backend.tts_requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/text-to-speech/voice-1"
        assert request.headers["xi-api-key"] == "test-key"
        body = json.loads(request.content)
        assert body["text"] == "Hello"
        assert body["model_id"] == "eleven_multilingual_v2"
        assert body["voice_settings"]["stability"] == 0.6
        assert body["voice_settings"]["similarity_boost"] == 0.5
        assert "speed" not in body["voice_settings"]

    @pytest.mark.asyncio
    async def test_speed_is_clamped_before_sending(self, service, backend):
        await service.speak("fast", SynthesisSettings(voice_id="v", speed=10))
        await service.speak("slow", SynthesisSettings(voice_id="v", speed=0))

        assert _sent_voice_settings(backend.tts_requests[0])["speed"] == 1.2
        assert _sent_voice_settings(backend.tts_requests[1])["speed"] == 0.7

    @pytest.mark.asyncio
    async def test_loudspeaker_flag_routes_but_shares_cache_entry(self, service, backend, fake_audio):
        await service.speak("Hola", SynthesisSettings(voice_id="v", use_loudspeaker=True))
        await service.speak("Hola", SynthesisSettings(voice_id="v", use_loudspeaker=False))

        assert len(backend.tts_requests) == 1
        assert fake_audio.routes == [True, False]

    @pytest.mark.asyncio
    async def test_paused_speak_is_silent_noop(self, service, backend, fake_audio):
        service.pause()

        await service.speak("Hola", SynthesisSettings(voice_id="v"))

        assert backend.requests == []
        assert fake_audio.played == []
        service.resume()
        await service.speak("Hola", SynthesisSettings(voice_id="v"))
        assert len(fake_audio.played) == 1

    @pytest.mark.asyncio
    async def test_empty_text_is_skipped(self, service, backend):
        await service.speak("   ", SynthesisSettings(voice_id="v"))
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_callbacks_wrap_playback(self, service):
        events = []
        await service.speak("Hola", SynthesisSettings(voice_id="v"),
                            on_start=lambda: events.append("start"), on_end=lambda: events.append("end"))
        assert events == ["start", "end"]

    @pytest.mark.asyncio
    async def test_playback_failure_is_audio_error_and_end_still_fires(self, service, fake_audio):
        fake_audio.play_error = OSError("output device busy")
        ended = []

        with pytest.raises(AudioError, match="output device busy"):
            await service.speak("Hola", SynthesisSettings(voice_id="v"), on_end=lambda: ended.append(True))
        assert ended == [True]

    @pytest.mark.asyncio
    async def test_cache_write_failure_plays_temp_file_and_removes_it(self, service, fake_audio):
        with patch.object(service.cache, "put", side_effect=OSError("disk full")):
            await service.speak("Hola", SynthesisSettings(voice_id="v"))

        assert len(fake_audio.played) == 1
        assert fake_audio.played[0].endswith(".mp3")
        assert not os.path.exists(fake_audio.played[0])
        assert service.get_usage_stats().total_requests == 1

    @pytest.mark.asyncio
    async def test_temp_file_removed_when_uncached_playback_fails(self, service, fake_audio):
        fake_audio.play_error = OSError("output device busy")
        created = []
        real_named_tmp = tempfile.NamedTemporaryFile

        def _tracking(*args, **kwargs):
            handle = real_named_tmp(*args, **kwargs)
            created.append(handle.name)
            return handle

        with patch.object(service.cache, "put", side_effect=OSError("disk full")), \
                patch("tempfile.NamedTemporaryFile", side_effect=_tracking):
            with pytest.raises(AudioError):
                await service.speak("Hola", SynthesisSettings(voice_id="v"))

        assert len(created) == 1
        assert not os.path.exists(created[0])

    @pytest.mark.asyncio
    async def test_expired_entry_is_regenerated(self, service, backend, clock):
        voice = SynthesisSettings(voice_id="v")
        await service.speak("Hola", voice)
        clock.now += 3601

        await service.speak("Hola", voice)

        assert len(backend.tts_requests) == 2

    @pytest.mark.asyncio
    async def test_emotion_changes_cache_key_and_style(self, service, backend):
        voice = SynthesisSettings(voice_id="v")
        await service.speak("Hola", voice)
        await service.generate_speech_with_emotion("Hola", AudioEmotion.EXCITED, voice)

        assert len(backend.tts_requests) == 2
        assert _sent_voice_settings(backend.tts_requests[1])["style"] == 0.7


class TestErrorClassification:
    """Non-2xx and transport failures map onto SynthesisError types."""

    @pytest.mark.asyncio
    async def test_rate_limit_with_retry_after(self, service, backend, fake_audio):
        backend.tts_response = httpx.Response(429, headers={"retry-after": "30"},
                                              json={"detail": {"status": "too_many_requests",
                                                               "message": "Too many requests"}})

        with pytest.raises(SynthesisError) as exc_info:
            await service.speak("Hola", SynthesisSettings(voice_id="v"))

        error = exc_info.value
        assert error.error_type == SynthesisErrorType.RATE_LIMIT
        assert error.retry_after == 30
        assert error.message == "Too many requests"
        assert error.recoverable is True
        assert fake_audio.played == []
        assert service.get_cache_stats().entry_count == 0

    @pytest.mark.asyncio
    async def test_rate_limit_defaults_to_sixty_seconds(self, service, backend):
        backend.tts_response = httpx.Response(429)

        with pytest.raises(SynthesisError) as exc_info:
            await service.speak("Hola", SynthesisSettings(voice_id="v"))
        assert exc_info.value.retry_after == 60

    @pytest.mark.asyncio
    async def test_quota_exceeded_is_not_recoverable(self, service, backend):
        backend.tts_response = httpx.Response(402, json={"detail": "quota exceeded"})

        with pytest.raises(SynthesisError) as exc_info:
            await service.speak("Hola", SynthesisSettings(voice_id="v"))
        assert exc_info.value.error_type == SynthesisErrorType.QUOTA_EXCEEDED
        assert exc_info.value.recoverable is False

    @pytest.mark.asyncio
    async def test_unknown_voice(self, service, backend):
        backend.tts_response = httpx.Response(404, json={"detail": "voice not found"})

        with pytest.raises(SynthesisError) as exc_info:
            await service.speak("Hola", SynthesisSettings(voice_id="missing"))
        assert exc_info.value.error_type == SynthesisErrorType.VOICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_server_error_is_api_down(self, service, backend):
        backend.tts_response = httpx.Response(503, text="unavailable")

        with pytest.raises(SynthesisError) as exc_info:
            await service.speak("Hola", SynthesisSettings(voice_id="v"))
        assert exc_info.value.error_type == SynthesisErrorType.API_DOWN
        assert exc_info.value.message == "HTTP 503"

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self, service, backend):
        backend.error = httpx.ConnectError("connection refused")

        with pytest.raises(SynthesisError) as exc_info:
            await service.speak("Hola", SynthesisSettings(voice_id="v"))
        assert exc_info.value.error_type == SynthesisErrorType.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_missing_api_key(self, service, backend):
        service.api_key = None

        with pytest.raises(SynthesisError) as exc_info:
            await service.speak("Hola", SynthesisSettings(voice_id="v"))
        assert exc_info.value.error_type == SynthesisErrorType.API_DOWN
        assert backend.requests == []


class TestVoices:
    @pytest.mark.asyncio
    async def test_empty_voice_id_resolves_to_language_voice(self, service, backend):
        await service.speak("Hola", SynthesisSettings(voice_id=""), language="spanish")

        assert backend.tts_requests[0].url.path.endswith("/text-to-speech/es-voice")

    @pytest.mark.asyncio
    async def test_default_voice_falls_back_to_configured(self, service, backend):
        backend.voices_response = httpx.Response(500)

        assert await service.get_default_voice_for_language("es") == "fallback-es"

    @pytest.mark.asyncio
    async def test_default_voice_is_resolved_once(self, service, backend):
        await service.get_default_voice_for_language("english")
        await service.get_default_voice_for_language("english")

        assert len([r for r in backend.requests if r.url.path.endswith("/voices")]) == 1

    @pytest.mark.asyncio
    async def test_available_voices_fall_back_to_all(self, service):
        voices = await service.get_available_voices("german")
        assert [v.voice_id for v in voices] == ["en-voice", "es-voice"]

    @pytest.mark.asyncio
    async def test_voice_info_none_on_failure(self, service):
        assert await service.get_voice_info("nope") is None

    @pytest.mark.asyncio
    async def test_preview_uses_language_sample(self, service, backend):
        await service.preview_voice("es-voice", "", "spanish")

        body = json.loads(backend.tts_requests[0].content)
        assert body["text"].startswith("Hola!")


class TestPresetsAndStats:
    def test_clamp_settings(self):
        clamped = clamp_settings(SynthesisSettings(speed=0.1, stability=-1, similarity_boost=3))
        assert (clamped.speed, clamped.stability, clamped.similarity_boost) == (0.7, 0.0, 1.0)

    def test_audio_tags(self, service):
        tags = service.get_audio_tags()
        assert len(tags) == 8
        assert service.get_audio_tag_by_id("beginner-slow").speed == 0.7
        assert service.get_audio_tag_by_id("unknown") is None

    def test_apply_audio_tag_keeps_voice_and_route(self, service):
        base = SynthesisSettings(voice_id="v", use_loudspeaker=False)
        applied = service.apply_audio_tag("calm-instruction", base)

        assert applied.voice_id == "v"
        assert applied.use_loudspeaker is False
        assert applied.emotion == AudioEmotion.CALM
        assert applied.speed == 0.9

    def test_apply_unknown_tag_raises(self, service):
        with pytest.raises(ValueError):
            service.apply_audio_tag("shouting")

    @pytest.mark.asyncio
    async def test_preload_caches_without_playing(self, service, backend, fake_audio):
        cached = await service.preload_common_phrases("spanish", "A1")

        assert cached == 5
        assert fake_audio.played == []
        assert await service.preload_common_phrases("spanish", "A1") == 0

    @pytest.mark.asyncio
    async def test_cache_stats_and_clear(self, service):
        await service.speak("Hola", SynthesisSettings(voice_id="v"))
        stats = service.get_cache_stats()
        assert stats.entry_count == 1
        assert stats.total_size == len(AUDIO)

        service.clear_audio_cache()
        assert service.get_cache_stats().entry_count == 0
        assert service.get_usage_stats().total_requests == 1

    @pytest.mark.asyncio
    async def test_optimize_usage_respects_interval(self, service, clock):
        assert await service.optimize_usage() is False
        clock.now += 601
        assert await service.optimize_usage() is True
        assert await service.optimize_usage() is False
        assert await service.optimize_usage(force=True) is True

    @pytest.mark.asyncio
    async def test_oversized_cache_is_cleared_on_next_speak(self, service, clock):
        service.cache.max_bytes = 10
        voice = SynthesisSettings(voice_id="v")
        await service.speak("uno", voice)
        await service.speak("dos", voice)
        clock.now += 601

        await service.speak("tres", voice)

        keys = {entry.cache_key for entry in service.cache.entries()}
        assert keys == {cache_key("tres", clamp_settings(voice))}

    @pytest.mark.asyncio
    async def test_service_status(self, service, backend):
        status = await service.get_service_status()
        assert status.is_available is True
        assert status.quota_remaining == 8000
        assert status.recommended_usage == "normal"

        backend.user_response = httpx.Response(200, json={"subscription": {"character_limit": 10000,
                                                                           "character_count": 9500}})
        assert (await service.get_service_status()).recommended_usage == "minimal"

        backend.user_response = httpx.Response(401, json={"detail": "invalid key"})
        status = await service.get_service_status()
        assert status.is_available is False
