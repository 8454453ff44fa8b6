"""
Synthesized Audio Cache

Content-addressed on-disk cache for synthesized speech plus the running
usage statistics that go with it.

Layout:
- one ``<cache_key>.mp3`` file per entry in ``cache_dir``; the file
  modification time is the entry's creation time
- usage statistics in a JSON file outside the cache directory, so clearing
  the cache keeps them

Eviction is deliberately coarse: entries past ``max_age_sec`` are purged,
and if the remaining total still exceeds ``max_bytes`` the whole cache is
cleared (synthesis is idempotent, so anything evicted can be regenerated).
"""
import datetime as dt
import hashlib
import json
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import ValidationError

from ..config import settings
from ..schemas.synthesis import AudioCacheEntry, SynthesisSettings, UsageStats

logger = logging.getLogger(__name__)

CACHE_SUFFIX = ".mp3"


def cache_key(text: str, voice: SynthesisSettings) -> str:
    """
    sha256 over the text and every setting that changes the audio bytes.

    ``use_loudspeaker`` only routes playback, so it is not part of the key.
    """
    payload = json.dumps(
        {
            "text": text,
            "voice_id": voice.voice_id,
            "speed": round(voice.speed, 4),
            "emotion": voice.emotion.value,
            "stability": round(voice.stability, 4),
            "similarity_boost": round(voice.similarity_boost, 4),
        },
        sort_keys=True,
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class AudioCache:
    """On-disk audio cache keyed by ``cache_key``."""

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        max_bytes: Optional[int] = None,
        max_age_sec: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir or settings.tts_cache_dir)
        self.max_bytes = max_bytes if max_bytes is not None else settings.tts_cache_max_bytes
        self.max_age_sec = max_age_sec if max_age_sec is not None else settings.tts_cache_max_age_sec
        self._clock = clock
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}{CACHE_SUFFIX}"

    def _entry(self, path: Path) -> Optional[AudioCacheEntry]:
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        return AudioCacheEntry(
            cache_key=path.stem,
            path=str(path),
            size_bytes=stat.st_size,
            created_at=dt.datetime.fromtimestamp(stat.st_mtime, tz=dt.timezone.utc),
        )

    def _is_expired(self, entry: AudioCacheEntry) -> bool:
        return self._clock() - entry.created_at.timestamp() >= self.max_age_sec

    def get(self, key: str) -> Optional[AudioCacheEntry]:
        """Return a fresh entry; an expired one is deleted and treated as a miss."""
        path = self.path_for(key)
        entry = self._entry(path)
        if entry is None:
            return None
        if self._is_expired(entry):
            logger.info(f"[TTS cache] Entry {key[:12]} expired, removing")
            path.unlink(missing_ok=True)
            return None
        return entry

    def put(self, key: str, audio: bytes) -> AudioCacheEntry:
        """Store audio bytes under ``key``, replacing any existing entry."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp_path = path.with_name(path.name + ".part")
        tmp_path.write_bytes(audio)
        os.replace(tmp_path, path)
        # The write itself set mtime to the wall clock; align it with the cache clock
        now = self._clock()
        os.utime(path, (now, now))
        return self._entry(path)

    def entries(self) -> List[AudioCacheEntry]:
        if not self.cache_dir.exists():
            return []
        found = []
        for path in sorted(self.cache_dir.glob(f"*{CACHE_SUFFIX}")):
            entry = self._entry(path)
            if entry is not None:
                found.append(entry)
        return found

    def total_size(self) -> int:
        return sum(entry.size_bytes for entry in self.entries())

    def purge_expired(self) -> int:
        removed = 0
        for entry in self.entries():
            if self._is_expired(entry):
                Path(entry.path).unlink(missing_ok=True)
                removed += 1
        return removed

    def clear(self) -> None:
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def evict(self) -> int:
        """
        Purge expired entries, then clear everything if still over budget.

        Returns:
            Number of entries removed
        """
        removed = self.purge_expired()
        remaining = self.entries()
        total = sum(entry.size_bytes for entry in remaining)
        if total > self.max_bytes:
            logger.info(f"[TTS cache] Size {total} bytes exceeds budget {self.max_bytes}, clearing cache")
            self.clear()
            removed += len(remaining)
        return removed


class UsageTracker:
    """Running request/character/hit-rate statistics, persisted as JSON."""

    def __init__(
        self,
        stats_path: Optional[str] = None,
        optimize_interval_sec: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.stats_path = Path(stats_path or settings.tts_usage_stats_path)
        self.optimize_interval_sec = (
            optimize_interval_sec if optimize_interval_sec is not None else settings.tts_optimize_interval_sec
        )
        self._clock = clock
        self._stats = UsageStats(last_optimization_check=self._now())
        self.load()

    def _now(self) -> dt.datetime:
        return dt.datetime.fromtimestamp(self._clock(), tz=dt.timezone.utc)

    def load(self) -> None:
        if not self.stats_path.exists():
            return
        try:
            self._stats = UsageStats.model_validate_json(self.stats_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(f"[TTS usage] Failed to load usage stats: {e}")

    def save(self) -> None:
        try:
            self.stats_path.parent.mkdir(parents=True, exist_ok=True)
            self.stats_path.write_text(self._stats.model_dump_json(), encoding="utf-8")
        except OSError as e:
            logger.error(f"[TTS usage] Failed to save usage stats: {e}")

    def record(self, characters: int, cache_hit: bool) -> None:
        stats = self._stats
        stats.total_requests += 1
        stats.total_characters += characters
        hits_before = stats.cache_hit_rate * (stats.total_requests - 1)
        stats.cache_hit_rate = (hits_before + (1 if cache_hit else 0)) / stats.total_requests
        self.save()

    def should_optimize(self) -> bool:
        elapsed = self._clock() - self._stats.last_optimization_check.timestamp()
        return elapsed >= self.optimize_interval_sec

    def mark_optimized(self) -> None:
        self._stats.last_optimization_check = self._now()
        self.save()

    @property
    def hit_rate(self) -> float:
        return self._stats.cache_hit_rate

    def snapshot(self) -> UsageStats:
        return self._stats.model_copy()
