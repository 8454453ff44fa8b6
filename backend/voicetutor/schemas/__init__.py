"""
Schemas Module

Pydantic models shared by the services:
- Conversation: messages, context, persisted sessions, storage results
- Synthesis: voice settings, presets, cache entries, usage statistics
"""
from .conversation import (
    ConversationContext,
    ConversationHistoryFilter,
    ConversationHistoryResult,
    ConversationSession,
    CurrentUser,
    Message,
    MessageRole,
    StorageResult,
    UserProfile,
)
from .synthesis import (
    AudioCacheEntry,
    AudioEmotion,
    AudioTag,
    CacheStats,
    ServiceStatus,
    SynthesisSettings,
    UsageStats,
    VoiceInfo,
)

__all__ = [
    "ConversationContext",
    "ConversationHistoryFilter",
    "ConversationHistoryResult",
    "ConversationSession",
    "CurrentUser",
    "Message",
    "MessageRole",
    "StorageResult",
    "UserProfile",
    "AudioCacheEntry",
    "AudioEmotion",
    "AudioTag",
    "CacheStats",
    "ServiceStatus",
    "SynthesisSettings",
    "UsageStats",
    "VoiceInfo",
]
