# voicetutor/schemas/conversation.py
"""
Pydantic schemas for conversation turns, context and persisted sessions.
"""
import datetime as dt
import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """
    One utterance in a conversation.
    Immutable once created; list order is chronological order.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_message_id)
    role: MessageRole
    content: str
    created_at: dt.datetime = Field(default_factory=utcnow)


class ConversationContext(BaseModel):
    """
    Language/level context plus the running turn history.
    Owned by the conversation flow; chat completion only reads it.
    """
    target_language: str
    native_language: str = "english"
    cefr_level: str
    conversation_history: List[Message] = Field(default_factory=list)


class UserProfile(BaseModel):
    target_language: str
    native_language: str = "english"
    cefr_level: str


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    profile: Optional[UserProfile] = None  # None when the user has not completed onboarding


class ConversationSession(BaseModel):
    """Persisted conversation (gateway-owned)."""
    id: str
    user_id: str
    session_id: str
    language: str
    cefr_level: str
    messages: List[Message] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


class ConversationHistoryFilter(BaseModel):
    user_id: Optional[str] = None
    language: Optional[str] = None
    cefr_level: Optional[str] = None
    date_from: Optional[dt.datetime] = None
    date_to: Optional[dt.datetime] = None
    limit: int = 10
    offset: int = 0


class StorageResult(BaseModel):
    """Outcome of a persistence call; failures are values, not exceptions."""
    success: bool
    error: Optional[str] = None
    data: Optional[ConversationSession] = None


class ConversationHistoryResult(BaseModel):
    success: bool
    error: Optional[str] = None
    data: List[ConversationSession] = Field(default_factory=list)
    total_count: int = 0
