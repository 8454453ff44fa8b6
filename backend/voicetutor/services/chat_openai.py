"""
OpenAI Chat Completion Service

Sends the tutor system prompt plus the ordered turn history to the chat
completion endpoint and returns the next assistant utterance.
"""
import logging
from typing import Dict, List, Optional

import httpx

from .prompts import FALLBACK_REPLY, build_system_prompt
from ..config import settings
from ..core.errors import ApiError
from ..schemas.conversation import ConversationContext


logger = logging.getLogger(__name__)


def build_chat_messages(context: ConversationContext, instruction: Optional[str] = None) -> List[Dict[str, str]]:
    """
    System prompt rebuilt from the current context, then every turn in order.

    ``instruction`` is appended as a trailing user message without being
    recorded in the history (used for the scripted greeting).
    """
    messages = [{"role": "system", "content": build_system_prompt(context.target_language, context.cefr_level)}]
    messages.extend(
        {"role": msg.role.value, "content": msg.content}
        for msg in context.conversation_history
    )
    if instruction:
        messages.append({"role": "user", "content": instruction})
    return messages


class OpenAIChatService:
    """OpenAI Chat Completion Service"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.api_url = api_url or settings.chat_api_url
        self.model = model or settings.chat_model
        self.max_tokens = max_tokens if max_tokens is not None else settings.chat_max_tokens
        self.temperature = temperature if temperature is not None else settings.chat_temperature
        self.timeout = timeout if timeout is not None else settings.http_timeout_sec
        self._transport = transport

    def is_available(self) -> bool:
        """Check if API key is configured"""
        return bool(self.api_key)

    async def complete(self, context: ConversationContext, instruction: Optional[str] = None) -> str:
        """
        Get the next assistant reply.

        Parameters:
            context: Current conversation context (read only)
            instruction: Optional one-off instruction appended after the history

        Returns:
            Assistant reply text

        Raises:
            ApiError: backend unreachable or non-2xx response
        """
        if not self.is_available():
            raise ApiError("ChatGPT API failed: API key not configured", recoverable=False)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": build_chat_messages(context, instruction),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        logger.info(
            f"[Chat] Calling {self.model} with {len(payload['messages'])} messages "
            f"(language={context.target_language}, level={context.cefr_level})"
        )
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.api_url, headers=headers, json=payload)
                resp.raise_for_status()
                result = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"[Chat] ChatGPT API error: HTTP {status}")
            raise ApiError(f"ChatGPT API failed: HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"[Chat] ChatGPT request failed: {e!r}")
            raise ApiError(f"ChatGPT API failed: {type(e).__name__}") from e

        choices = result.get("choices") or []
        content = ""
        if choices:
            content = ((choices[0].get("message") or {}).get("content") or "").strip()
        return content or FALLBACK_REPLY
