# voicetutor/core/errors.py
"""
Unified error taxonomy for the conversation core.

Every failure surfaced by the conversation flow is a ``ConversationError``
subclass carrying a human-readable message, a ``kind`` and a ``recoverable``
flag, so callers can react without knowing which vendor or device failed.
"""
from enum import Enum
from typing import Optional, Type

import httpx


class ErrorKind(str, Enum):
    AUTH = "auth"
    PROFILE = "profile"
    PERMISSION = "permission"
    AUDIO = "audio"
    API = "api"
    SYNTHESIS = "synthesis"
    INVALID_STATE = "invalid_state"


class SynthesisErrorType(str, Enum):
    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    VOICE_UNAVAILABLE = "voice_unavailable"
    API_DOWN = "api_down"
    NETWORK_ERROR = "network_error"


SUGGESTED_ACTIONS: dict[SynthesisErrorType, list[str]] = {
    SynthesisErrorType.RATE_LIMIT: [
        "Wait before making another request",
        "Consider using cached audio",
        "Reduce request frequency",
    ],
    SynthesisErrorType.QUOTA_EXCEEDED: [
        "Check your ElevenLabs subscription",
        "Upgrade your plan",
        "Use cached audio when possible",
    ],
    SynthesisErrorType.VOICE_UNAVAILABLE: [
        "Select a different voice",
        "Check voice availability",
        "Use default voice for language",
    ],
    SynthesisErrorType.API_DOWN: [
        "Check internet connection",
        "Try again later",
        "Verify API key",
    ],
    SynthesisErrorType.NETWORK_ERROR: [
        "Check internet connection",
        "Try again later",
    ],
}


class ConversationError(Exception):
    """Base class of every error the conversation core surfaces."""

    kind: ErrorKind = ErrorKind.API
    default_recoverable: bool = True

    def __init__(self, message: str, recoverable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "message": self.message, "recoverable": self.recoverable}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, recoverable={self.recoverable})"


class AuthError(ConversationError):
    """No authenticated user; needs an external sign-in."""

    kind = ErrorKind.AUTH
    default_recoverable = False


class ProfileError(ConversationError):
    """The user has no usable profile (target language, level)."""

    kind = ErrorKind.PROFILE


class MicrophonePermissionError(ConversationError):
    """Microphone access was denied."""

    kind = ErrorKind.PERMISSION


class AudioError(ConversationError):
    """Recording or playback device failure."""

    kind = ErrorKind.AUDIO


class ApiError(ConversationError):
    """Transcription or chat-completion backend failure."""

    kind = ErrorKind.API

    def __init__(self, message: str, status_code: Optional[int] = None, recoverable: Optional[bool] = None):
        super().__init__(message, recoverable)
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["statusCode"] = self.status_code
        return data


class SynthesisError(ConversationError):
    """Text-to-speech backend failure, sub-classified by ``error_type``."""

    kind = ErrorKind.SYNTHESIS

    def __init__(
        self,
        error_type: SynthesisErrorType,
        message: str,
        retry_after: Optional[int] = None,
        suggested_actions: Optional[list[str]] = None,
    ):
        super().__init__(message, recoverable=error_type is not SynthesisErrorType.QUOTA_EXCEEDED)
        self.error_type = error_type
        self.retry_after = retry_after
        self.suggested_actions = (
            list(suggested_actions) if suggested_actions is not None else list(SUGGESTED_ACTIONS[error_type])
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "errorType": self.error_type.value,
            "retryAfter": self.retry_after,
            "suggestedActions": list(self.suggested_actions),
        })
        return data

    def __repr__(self) -> str:
        return (
            f"SynthesisError(type={self.error_type.value}, message={self.message!r}, "
            f"retry_after={self.retry_after})"
        )


class InvalidStateError(ConversationError):
    """Operation invoked in a state that forbids it (caller bug)."""

    kind = ErrorKind.INVALID_STATE
    default_recoverable = False


def classify_error(
    exc: BaseException,
    default: Type[ConversationError] = ApiError,
    context: str = "",
) -> ConversationError:
    """
    Map an arbitrary exception onto the taxonomy.

    Taxonomy errors pass through unchanged. A builtin ``PermissionError``
    (raised by audio adapters on microphone denial) becomes a
    ``MicrophonePermissionError``; httpx failures become ``ApiError``;
    anything else becomes ``default``.

    Args:
        exc: The exception to classify
        default: Taxonomy class used for unrecognized exceptions
        context: Prefix for the message (e.g. "Failed to stop recording")

    Returns:
        ConversationError: The classified error (may be ``exc`` itself)
    """
    if isinstance(exc, ConversationError):
        return exc

    prefix = f"{context}: " if context else ""

    if isinstance(exc, PermissionError):
        return MicrophonePermissionError("Microphone permission required for voice input")

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return ApiError(f"{prefix}HTTP {status}", status_code=status)

    if isinstance(exc, httpx.HTTPError):
        return ApiError(f"{prefix}{type(exc).__name__}: {exc}")

    if default is SynthesisError:
        return SynthesisError(SynthesisErrorType.API_DOWN, f"{prefix}{exc}")
    if default is ApiError:
        return ApiError(f"{prefix}{exc}")
    return default(f"{prefix}{exc}")
