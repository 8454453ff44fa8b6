# voicetutor/schemas/synthesis.py
"""
Pydantic schemas for speech synthesis: voice settings, presets, cache and usage.
"""
import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .conversation import utcnow

SPEED_RANGE = (0.7, 1.2)
UNIT_RANGE = (0.0, 1.0)


class AudioEmotion(str, Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    EXCITED = "excited"
    CALM = "calm"
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"


class SynthesisSettings(BaseModel):
    """
    Voice parameters supplied by the caller.

    Values are not range-checked here; the synthesis service clamps them
    (speed to [0.7, 1.2], stability and similarity_boost to [0, 1]) before use.
    An empty voice_id means "default voice for the target language".
    """
    voice_id: str = ""
    speed: float = 1.0
    emotion: AudioEmotion = AudioEmotion.NEUTRAL
    stability: float = 0.6
    similarity_boost: float = 0.5
    use_loudspeaker: bool = True


class AudioTag(BaseModel):
    """Voice preset for a learning scenario."""
    id: str
    name: str
    description: str
    speed: float
    emotion: AudioEmotion
    stability: float
    similarity_boost: float
    use_case: str


class AudioCacheEntry(BaseModel):
    cache_key: str
    path: str
    size_bytes: int
    created_at: dt.datetime


class UsageStats(BaseModel):
    total_requests: int = 0
    total_characters: int = 0
    cache_hit_rate: float = 0.0
    last_optimization_check: dt.datetime = Field(default_factory=utcnow)


class CacheStats(BaseModel):
    total_size: int
    entry_count: int
    hit_rate: float


class VoiceInfo(BaseModel):
    voice_id: str
    name: str
    language: str = "en"
    gender: Optional[str] = None
    description: Optional[str] = None
    verified_languages: List[dict] = Field(default_factory=list)
    labels: dict = Field(default_factory=dict)


class ServiceStatus(BaseModel):
    is_available: bool
    quota_remaining: Optional[int] = None
    recommended_usage: str = "normal"  # normal / conservative / minimal
